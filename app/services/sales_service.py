"""
Sales service with transactional logic - Multi-Tenant.

A sale and its items, together with the stock adjustment of every registered
product, are written in ONE transaction. Stock is decremented with an atomic
conditional UPDATE so a product can never go below zero, even when two sales
race for the last unit.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import joinedload, selectinload

from app.database import execute, execute_single
from app.exceptions import ValidationError, InsufficientStockError
from app.models import Client, Product, Sale, SaleItem, PRESCRIPTION_FIELDS, AXIS_FIELDS
from app.services.access_scope import AccessScope
from app.services.deletion_log_service import log_deletion
from app.services.repository import get_scoped, search_condition, resolve_target_optic
from app.utils.pagination import paginate_query
from app.utils.validators import clean_text, parse_decimal, parse_int, parse_datetime

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
TOTAL_TOLERANCE = Decimal('0.01')
# esf, cil and add are stored as NUMERIC(5, 2)
DIOPTER_LIMIT = Decimal('99.99')

STOCK_DECREMENT_SQL = """
    UPDATE products
    SET stock_quantity = stock_quantity - ?, updated_at = CURRENT_TIMESTAMP
    WHERE id = ? AND optic_id = ? AND deleted_at IS NULL AND stock_quantity >= ?
"""

STOCK_RESTORE_SQL = """
    UPDATE products
    SET stock_quantity = stock_quantity + ?, updated_at = CURRENT_TIMESTAMP
    WHERE id = ? AND optic_id = ?
"""

# product_id values the frontend sends for free-text items
UNREGISTERED_PRODUCT_MARKERS = ('', 'unregistered')


# =====================================================
# PAYLOAD PARSING (no writes)
# =====================================================

def _parse_prescription(data: Dict[str, Any], prefix: str = '', partial: bool = False) -> Dict[str, Any]:
    """OD/OI esf, cil, add as diopters (2 decimals); eje as integer degrees 0-180."""
    values = {}
    for field in PRESCRIPTION_FIELDS:
        if partial and field not in data:
            continue
        label = f'{prefix}{field}'
        if field in AXIS_FIELDS:
            axis = parse_int(data.get(field), label, minimum=0)
            if axis is not None and axis > 180:
                raise ValidationError(f'{label} debe estar entre 0 y 180', field=label)
            values[field] = axis
        else:
            diopters = parse_decimal(data.get(field), label)
            if diopters is not None:
                diopters = diopters.quantize(CENT)
                if abs(diopters) > DIOPTER_LIMIT:
                    raise ValidationError(
                        f'{label} debe estar entre -{DIOPTER_LIMIT} y {DIOPTER_LIMIT}', field=label
                    )
            values[field] = diopters
    return values


def _parse_product_ref(value: Any, field: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and value.strip().lower() in UNREGISTERED_PRODUCT_MARKERS):
        return None
    return parse_int(value, field, minimum=1)


def _parse_items(raw_items: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError('Debe incluir al menos un producto', field='items')

    items = []
    for index, raw in enumerate(raw_items):
        prefix = f'items[{index}].'
        if not isinstance(raw, dict):
            raise ValidationError(f'items[{index}] inválido', field='items')

        product_id = _parse_product_ref(raw.get('product_id'), f'{prefix}product_id')
        product_name = clean_text(raw.get('unregistered_product_name'))
        if product_id is None and not product_name:
            raise ValidationError(
                f'items[{index}]: debe indicar product_id o unregistered_product_name',
                field=f'{prefix}product_id',
            )
        if product_id is not None and product_name:
            raise ValidationError(
                f'items[{index}]: product_id y unregistered_product_name son excluyentes',
                field=f'{prefix}product_id',
            )

        unit_price = parse_decimal(raw.get('unit_price'), f'{prefix}unit_price', minimum=Decimal('0'))
        if unit_price is None and product_id is None:
            raise ValidationError(f'{prefix}unit_price es requerido', field=f'{prefix}unit_price')

        items.append({
            'product_id': product_id,
            'unregistered_product_name': product_name,
            'quantity': parse_int(raw.get('quantity'), f'{prefix}quantity', minimum=1, required=True),
            'unit_price': unit_price,
            'notes': clean_text(raw.get('notes')),
            'prescription': _parse_prescription(raw, prefix),
        })
    return items


def _parse_header(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    header = {}

    if not partial or 'client_id' in data:
        header['client_id'] = parse_int(data.get('client_id'), 'client_id', minimum=1)
    if not partial or 'unregistered_client_name' in data:
        header['unregistered_client_name'] = clean_text(data.get('unregistered_client_name'))
    if header.get('client_id') is not None and header.get('unregistered_client_name'):
        raise ValidationError(
            'client_id y unregistered_client_name son excluyentes', field='unregistered_client_name'
        )

    if not partial or 'notes' in data:
        header['notes'] = clean_text(data.get('notes'))
    if 'sale_date' in data:
        header['sale_date'] = parse_datetime(data.get('sale_date'), 'sale_date')
    header.update(_parse_prescription(data, partial=partial))
    return header


# =====================================================
# TRANSACTION STEPS
# =====================================================

def _resolve_client(session, client_id: Optional[int], optic_id: int) -> Optional[int]:
    if client_id is None:
        return None
    exists = session.query(Client.id).filter(
        Client.id == client_id,
        Client.optic_id == optic_id,
        Client.deleted_at.is_(None),
    ).first()
    if not exists:
        raise ValidationError('Cliente inválido', field='client_id')
    return client_id


def _lock_products(session, product_ids, optic_id: int) -> Dict[int, Product]:
    """Lock product rows FOR UPDATE (ordered by id) and return them keyed by id."""
    if not product_ids:
        return {}

    products = session.query(Product).filter(
        Product.id.in_(product_ids),
        Product.optic_id == optic_id,
        Product.deleted_at.is_(None),
    ).order_by(Product.id).with_for_update().populate_existing().all()

    found = {p.id: p for p in products}
    for product_id in product_ids:
        if product_id not in found:
            raise ValidationError(f'Producto inválido: {product_id}', field='items')
    return found


def _price_lines(items: List[Dict[str, Any]], products: Dict[int, Product]) -> Tuple[List[Dict[str, Any]], Decimal]:
    """Resolve unit prices and compute line totals and the sale total."""
    lines = []
    total = Decimal('0.00')
    for item in items:
        unit_price = item['unit_price']
        if unit_price is None:
            unit_price = Decimal(str(products[item['product_id']].price))
        unit_price = unit_price.quantize(CENT)
        line_total = (unit_price * item['quantity']).quantize(CENT)

        lines.append(dict(item, unit_price=unit_price, total_price=line_total))
        total += line_total
    return lines, total.quantize(CENT)


def _check_declared_total(declared: Optional[Decimal], computed: Decimal) -> None:
    if declared is None:
        return
    if abs(declared - computed) > TOTAL_TOLERANCE:
        raise ValidationError(
            f'total_amount ({declared}) no coincide con la suma de los items ({computed})',
            field='total_amount',
        )


def _required_quantities(lines: List[Dict[str, Any]]) -> Dict[int, int]:
    required = OrderedDict()
    for line in sorted(lines, key=lambda line: line['product_id'] or 0):
        if line['product_id'] is not None:
            required[line['product_id']] = required.get(line['product_id'], 0) + line['quantity']
    return required


def _decrement_stock(session, required: Dict[int, int], products: Dict[int, Product], optic_id: int) -> None:
    """
    Validate then decrement stock per product.

    Raises:
        InsufficientStockError: when a product cannot cover the requested quantity
    """
    for product_id, quantity in required.items():
        product = products[product_id]
        if product.stock_quantity < quantity:
            raise InsufficientStockError(product.name, quantity, product.stock_quantity)

    for product_id, quantity in required.items():
        result = execute(STOCK_DECREMENT_SQL, [quantity, product_id, optic_id, quantity], session=session)
        if result.rowcount == 0:
            row = execute_single(
                'SELECT stock_quantity FROM products WHERE id = ?', [product_id], session=session
            )
            available = row['stock_quantity'] if row else 0
            raise InsufficientStockError(products[product_id].name, quantity, available)


def _restore_stock(session, items, optic_id: int) -> None:
    """Give back the quantities of registered products."""
    restored = OrderedDict()
    for item in sorted(items, key=lambda i: i.product_id or 0):
        if item.product_id is not None:
            restored[item.product_id] = restored.get(item.product_id, 0) + item.quantity

    for product_id, quantity in restored.items():
        execute(STOCK_RESTORE_SQL, [quantity, product_id, optic_id], session=session)


def _add_items(session, sale: Sale, lines: List[Dict[str, Any]]) -> None:
    for line in lines:
        session.add(SaleItem(
            sale_id=sale.id,
            product_id=line['product_id'],
            unregistered_product_name=line['unregistered_product_name'],
            quantity=line['quantity'],
            unit_price=line['unit_price'],
            total_price=line['total_price'],
            notes=line['notes'],
            **line['prescription']
        ))


def _apply_items(session, items: List[Dict[str, Any]], optic_id: int, declared_total: Optional[Decimal]):
    """Lock, price, check and decrement. Returns (lines, total)."""
    required_ids = sorted({item['product_id'] for item in items if item['product_id'] is not None})
    products = _lock_products(session, required_ids, optic_id)

    lines, total = _price_lines(items, products)
    _check_declared_total(declared_total, total)
    _decrement_stock(session, _required_quantities(lines), products, optic_id)
    return lines, total


# =====================================================
# PUBLIC API
# =====================================================

def _sales_query(session, scope: AccessScope):
    query = session.query(Sale).filter(Sale.deleted_at.is_(None)).options(
        selectinload(Sale.items).joinedload(SaleItem.product),
        joinedload(Sale.client),
        joinedload(Sale.user),
    )
    return scope.apply(query, Sale.optic_id)


def _apply_sale_search(query, term: Optional[str]):
    condition = search_condition(term, (Client.first_name, Client.last_name, Sale.unregistered_client_name))
    if condition is None:
        return query
    return query.outerjoin(Client, Sale.client_id == Client.id).filter(condition)


def get_all(session, scope: AccessScope, page: int = 1, limit: int = 10,
            search: Optional[str] = None) -> Tuple[List[Sale], int]:
    query = _apply_sale_search(_sales_query(session, scope), search)
    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    return paginate_query(query, page, limit)


def get_by_id(session, sale_id: int, scope: AccessScope) -> Sale:
    return get_scoped(session, Sale, sale_id, scope, 'Venta no encontrada')


def search(session, term: str, scope: AccessScope, limit: int = 20) -> List[Sale]:
    query = _apply_sale_search(_sales_query(session, scope), term)
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()


def create_sale(session, data: Dict[str, Any], scope: AccessScope) -> Sale:
    """
    Record a sale with its items and decrement stock (tenant-scoped).

    Steps:
    1. Validate payload shape (before any write)
    2. Verify the registered client belongs to the optic
    3. Lock product rows, resolve prices, aggregate quantities
    4. Decrement stock with a conditional update per product
    5. Insert header and items, commit

    Args:
        session: SQLAlchemy session
        data: Sale payload (client reference, items, prescription, notes)
        scope: Caller scope; the sale is written into its optic

    Returns:
        The persisted Sale, reloaded with items

    Raises:
        ValidationError: malformed payload, invalid client or product, total mismatch
        InsufficientStockError: a product cannot cover the requested quantity
    """
    header = _parse_header(data)
    items = _parse_items(data.get('items'))
    declared_total = parse_decimal(data.get('total_amount'), 'total_amount', minimum=Decimal('0'))

    try:
        optic_id = resolve_target_optic(session, scope, data.get('optic_id'))
        header['client_id'] = _resolve_client(session, header['client_id'], optic_id)
        lines, total = _apply_items(session, items, optic_id, declared_total)

        if header.get('sale_date') is None:
            header.pop('sale_date', None)
        sale = Sale(optic_id=optic_id, user_id=scope.user_id, total_amount=total, **header)
        session.add(sale)
        session.flush()

        _add_items(session, sale, lines)
        sale_id = sale.id
        session.commit()
    except (ValidationError, InsufficientStockError) as e:
        session.rollback()
        logger.warning(f"Sale rejected for optic {optic_id}: {e.message}")
        raise
    except Exception:
        session.rollback()
        logger.error(f"Error creating sale for optic {optic_id}", exc_info=True)
        raise

    logger.info(f"Sale created: id={sale_id} optic_id={optic_id} total={total} items={len(lines)}")
    return get_by_id(session, sale_id, scope)


def update_sale(session, sale_id: int, data: Dict[str, Any], scope: AccessScope) -> Sale:
    """
    Update header fields and, when items are supplied, replace the items.

    Replacing items restores the old quantities first and then validates and
    decrements the new ones in the same transaction.
    """
    header = _parse_header(data, partial=True)
    items = _parse_items(data['items']) if 'items' in data else None
    declared_total = parse_decimal(data.get('total_amount'), 'total_amount', minimum=Decimal('0'))
    if not header and items is None and declared_total is None:
        raise ValidationError('No se proporcionaron campos para actualizar')

    try:
        sale = get_scoped(session, Sale, sale_id, scope, 'Venta no encontrada', lock=True)

        if header.get('client_id') is not None:
            header['client_id'] = _resolve_client(session, header['client_id'], sale.optic_id)
            header['unregistered_client_name'] = None
        elif header.get('unregistered_client_name'):
            header['client_id'] = None
        if 'sale_date' in header and header['sale_date'] is None:
            header.pop('sale_date')

        for name, value in header.items():
            setattr(sale, name, value)

        if items is not None:
            _restore_stock(session, sale.items, sale.optic_id)
            sale.items.clear()
            session.flush()

            lines, total = _apply_items(session, items, sale.optic_id, declared_total)
            _add_items(session, sale, lines)
            sale.total_amount = total
        elif declared_total is not None:
            _check_declared_total(declared_total, Decimal(str(sale.total_amount)))

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Sale updated: id={sale_id} by user {scope.user_id}")
    return get_by_id(session, sale_id, scope)


def soft_delete_sale(session, sale_id: int, scope: AccessScope, reason: Optional[str] = None) -> Dict[str, Any]:
    """Log a snapshot, restore stock and mark the sale deleted in one transaction."""
    try:
        sale = get_scoped(session, Sale, sale_id, scope, 'Venta no encontrada', lock=True)
        snapshot = sale.to_dict(include_items=True)

        _restore_stock(session, sale.items, sale.optic_id)
        sale.deleted_at = datetime.now(timezone.utc)
        log_deletion(session, 'sales', sale.id, scope.user_id, snapshot, reason)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Sale soft-deleted: id={sale_id} by user {scope.user_id}, stock restored")
    return snapshot
