"""
Utilidades de serialización para respuestas JSON.
Convierte Decimal y fechas a tipos JSON.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Optional, Union


def to_float(value: Union[int, float, Decimal, str, None]) -> Optional[float]:
    """
    Convierte un valor numérico a float para JSON.

    Examples:
        to_float(Decimal('150.50')) -> 150.5
        to_float('12') -> 12.0
        to_float(None) -> None
    """
    if value is None or value == "":
        return None
    try:
        return float(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        return None


def iso(value: Union[date, datetime, str, None]) -> Optional[str]:
    """Fecha/hora en formato ISO 8601 (o el string tal cual si ya lo es)."""
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)

