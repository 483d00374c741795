"""
Product service - tenant-scoped catalog CRUD with soft delete.

Stock is only changed here by explicit edits; sales adjust it through
sales_service with a conditional update.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from app.exceptions import ValidationError
from app.models import Product
from app.services.access_scope import AccessScope
from app.services.deletion_log_service import log_deletion
from app.services.repository import get_scoped, live_query, apply_search, resolve_target_optic
from app.utils.pagination import paginate_query
from app.utils.validators import clean_text, require_text, parse_decimal, parse_int

logger = logging.getLogger(__name__)

SEARCH_COLUMNS = (Product.name, Product.brand, Product.model, Product.description)
TEXT_FIELDS = ('brand', 'model', 'color', 'size', 'image_url', 'description')


def _product_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    fields = {}

    if not partial or 'name' in data:
        fields['name'] = require_text(data, 'name', 'El nombre')
    for name in TEXT_FIELDS:
        if not partial or name in data:
            fields[name] = clean_text(data.get(name))

    if not partial or 'price' in data:
        price = parse_decimal(data.get('price'), 'price', minimum=Decimal('0'))
        fields['price'] = (price if price is not None else Decimal('0')).quantize(Decimal('0.01'))
    if not partial or 'stock_quantity' in data:
        stock = parse_int(data.get('stock_quantity'), 'stock_quantity', minimum=0)
        fields['stock_quantity'] = stock if stock is not None else 0

    return fields


def get_all(session, scope: AccessScope, page: int = 1, limit: int = 10,
            search: Optional[str] = None) -> Tuple[List[Product], int]:
    query = apply_search(live_query(session, Product, scope), search, SEARCH_COLUMNS)
    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    return paginate_query(query, page, limit)


def get_by_id(session, product_id: int, scope: AccessScope) -> Product:
    return get_scoped(session, Product, product_id, scope, 'Producto no encontrado')


def search(session, term: str, scope: AccessScope, limit: int = 20) -> List[Product]:
    query = apply_search(live_query(session, Product, scope), term, SEARCH_COLUMNS)
    return query.order_by(Product.name).limit(limit).all()


def create(session, data: Dict[str, Any], scope: AccessScope) -> Product:
    """
    Create a product.

    Raises:
        ValidationError: empty name, negative or non-numeric price/stock
    """
    fields = _product_fields(data)

    try:
        optic_id = resolve_target_optic(session, scope, data.get('optic_id'))
        product = Product(optic_id=optic_id, **fields)
        session.add(product)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Product created: id={product.id} '{product.name}' optic_id={optic_id}")
    return product


def update(session, product_id: int, data: Dict[str, Any], scope: AccessScope) -> Product:
    fields = _product_fields(data, partial=True)
    if not fields:
        raise ValidationError('No se proporcionaron campos para actualizar')

    try:
        product = get_by_id(session, product_id, scope)
        for name, value in fields.items():
            setattr(product, name, value)
        session.commit()
    except Exception:
        session.rollback()
        raise

    return product


def soft_delete(session, product_id: int, scope: AccessScope, reason: Optional[str] = None) -> Dict[str, Any]:
    try:
        product = get_by_id(session, product_id, scope)
        snapshot = product.to_dict()

        product.deleted_at = datetime.now(timezone.utc)
        log_deletion(session, 'products', product.id, scope.user_id, snapshot, reason)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Product soft-deleted: id={product_id} by user {scope.user_id}")
    return snapshot


def get_low_stock(session, scope: AccessScope, threshold: int = 5, limit: int = 10) -> List[Product]:
    """Live products at or below the threshold, lowest stock first."""
    query = live_query(session, Product, scope).filter(Product.stock_quantity <= threshold)
    return query.order_by(Product.stock_quantity.asc(), Product.name).limit(limit).all()
