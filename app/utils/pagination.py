"""
Paginación para endpoints de listado.

Formato de respuesta:
    {"data": [...], "pagination": {"page", "limit", "total", "totalPages"}}
"""
import math
from typing import Any, Dict, List, Tuple

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def _positive_int(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def get_pagination_params(args, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT) -> Tuple[int, int, str]:
    """
    Lee page, limit y search de los query args.

    Valores inválidos vuelven al default; limit se recorta a max_limit.
    """
    page = _positive_int(args.get('page'), 1)
    limit = min(_positive_int(args.get('limit'), default_limit), max_limit)
    search = (args.get('search') or '').strip()
    return page, limit, search


def paginate_query(query, page: int, limit: int) -> Tuple[List[Any], int]:
    """Ejecuta count + página sobre una Query del ORM. Devuelve (items, total)."""
    total = query.order_by(None).count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    return items, total


def build_paginated_response(data: List[Any], page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        'data': data,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'totalPages': math.ceil(total / limit) if limit else 0,
        },
    }
