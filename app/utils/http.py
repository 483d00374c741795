"""Helpers compartidos por los blueprints JSON."""
from typing import Any, Dict, Optional

from flask import current_app, request

from app.exceptions import ValidationError
from app.utils.pagination import get_pagination_params


def get_payload(allow_form: bool = False) -> Dict[str, Any]:
    """
    Cuerpo del request como dict.

    Con allow_form=True también acepta multipart/x-www-form-urlencoded.
    """
    data = request.get_json(silent=True)
    if data is None and allow_form and request.form:
        data = request.form.to_dict()
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError('El cuerpo del request debe ser un objeto JSON')
    return data


def pagination_args():
    """(page, limit, search) desde los query args, con límites de la config."""
    return get_pagination_params(
        request.args,
        default_limit=current_app.config.get('DEFAULT_PAGE_SIZE', 10),
        max_limit=current_app.config.get('MAX_PAGE_SIZE', 100),
    )


def deletion_reason() -> Optional[str]:
    data = request.get_json(silent=True) or {}
    reason = data.get('reason') if isinstance(data, dict) else None
    return (reason or request.args.get('reason') or '').strip() or None
