"""
Validación y normalización de datos de entrada.
Todas las funciones lanzan ValidationError con el campo ofensor.
"""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from app.exceptions import ValidationError

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def clean_text(value: Any) -> Optional[str]:
    """Strip; cadenas vacías pasan a None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_text(data: Dict[str, Any], field: str, label: str) -> str:
    value = clean_text(data.get(field))
    if not value:
        raise ValidationError(f'{label} es requerido', field=field)
    return value


def validate_email(value: Any, field: str = 'email', required: bool = False) -> Optional[str]:
    email = clean_text(value)
    if email is None:
        if required:
            raise ValidationError('El email es requerido', field=field)
        return None
    if not EMAIL_PATTERN.match(email):
        raise ValidationError('Email inválido', field=field)
    return email.lower()


def parse_decimal(value: Any, field: str, minimum: Optional[Decimal] = None,
                  required: bool = False) -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{field} es requerido', field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field} debe ser numérico', field=field)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} debe ser numérico', field=field)
    if not number.is_finite():
        raise ValidationError(f'{field} debe ser numérico', field=field)
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} debe ser mayor o igual a {minimum}', field=field)
    return number


def parse_int(value: Any, field: str, minimum: Optional[int] = None,
              required: bool = False) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{field} es requerido', field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field} debe ser un número entero', field=field)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f'{field} debe ser un número entero', field=field)
        number = int(value)
    else:
        try:
            number = int(str(value).strip())
        except ValueError:
            raise ValidationError(f'{field} debe ser un número entero', field=field)
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} debe ser mayor o igual a {minimum}', field=field)
    return number


def parse_date(value: Any, field: str) -> Optional[date]:
    """Acepta date, datetime o 'YYYY-MM-DD' (también ISO con hora)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f'{field} debe tener formato YYYY-MM-DD', field=field)


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f'{field} debe ser una fecha ISO 8601', field=field)
