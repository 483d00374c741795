"""
Dashboard service for multi-tenant optics.
Provides aggregated metrics, recent activity and per-user section settings.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from app.exceptions import ValidationError
from app.models import Client, DashboardConfig, DEFAULT_SECTIONS, Product, Sale, SaleItem
from app.services.access_scope import AccessScope
from app.services.product_service import get_low_stock
from app.utils.formatters import iso, to_float

logger = logging.getLogger(__name__)


def month_range(now: datetime = None) -> Tuple[datetime, datetime]:
    """[first day of this month, first day of next month) in UTC."""
    now = now or datetime.now(timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _live_sales(session, scope: AccessScope, *columns):
    query = session.query(*columns).filter(Sale.deleted_at.is_(None))
    return scope.apply(query, Sale.optic_id)


def _count_live(session, model, scope: AccessScope) -> int:
    query = session.query(func.count(model.id)).filter(model.deleted_at.is_(None))
    return scope.apply(query, model.optic_id).scalar() or 0


def get_stats(session, scope: AccessScope, now: datetime = None) -> Dict[str, Any]:
    """
    Tenant totals over non-deleted rows.

    Returns:
        dict with keys:
            - total_products, total_clients, total_sales: int
            - total_revenue: float
            - month_sales: int, month_revenue: float (current calendar month)
    """
    start, end = month_range(now)

    total_sales, total_revenue = _live_sales(
        session, scope, func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount), 0)
    ).one()

    month_sales, month_revenue = _live_sales(
        session, scope, func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount), 0)
    ).filter(Sale.sale_date >= start, Sale.sale_date < end).one()

    return {
        'total_products': _count_live(session, Product, scope),
        'total_clients': _count_live(session, Client, scope),
        'total_sales': total_sales or 0,
        'total_revenue': to_float(total_revenue) or 0.0,
        'month_sales': month_sales or 0,
        'month_revenue': to_float(month_revenue) or 0.0,
    }


def get_recent_sales(session, scope: AccessScope, limit: int = 10) -> List[Dict[str, Any]]:
    """Most recent sales with the client display name."""
    sales = _live_sales(session, scope, Sale).options(
        joinedload(Sale.client), joinedload(Sale.user)
    ).order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()

    return [
        {
            'id': sale.id,
            'client_name': sale.client_name,
            'total_amount': to_float(sale.total_amount),
            'sale_date': iso(sale.sale_date),
            'user_name': sale.user.username if sale.user else None,
        }
        for sale in sales
    ]


def get_top_products(session, scope: AccessScope, limit: int = 5) -> List[Dict[str, Any]]:
    """Registered products ranked by quantity sold in live sales."""
    quantity = func.coalesce(func.sum(SaleItem.quantity), 0).label('total_quantity_sold')
    revenue = func.coalesce(func.sum(SaleItem.total_price), 0).label('total_revenue')

    query = session.query(Product.id, Product.name, Product.price, quantity, revenue).join(
        SaleItem, SaleItem.product_id == Product.id
    ).join(
        Sale, Sale.id == SaleItem.sale_id
    ).filter(
        Sale.deleted_at.is_(None),
        Product.deleted_at.is_(None),
    )
    query = scope.apply(query, Sale.optic_id)

    rows = query.group_by(Product.id, Product.name, Product.price).order_by(
        quantity.desc(), Product.name
    ).limit(limit).all()

    return [
        {
            'id': row.id,
            'name': row.name,
            'base_price': to_float(row.price),
            'total_quantity_sold': int(row.total_quantity_sold or 0),
            'total_revenue': to_float(row.total_revenue) or 0.0,
        }
        for row in rows
    ]


def get_low_stock_products(session, scope: AccessScope, threshold: int = 5, limit: int = 10) -> List[Dict[str, Any]]:
    return [
        {
            'id': product.id,
            'name': product.name,
            'brand': product.brand,
            'stock_quantity': product.stock_quantity,
            'price': to_float(product.price),
        }
        for product in get_low_stock(session, scope, threshold=threshold, limit=limit)
    ]


def get_dashboard_stats(session, scope: AccessScope) -> Dict[str, Any]:
    """Everything the dashboard page renders, keyed like its sections."""
    stats = get_stats(session, scope)
    return {
        'totalSales': stats['total_sales'],
        'totalRevenue': stats['total_revenue'],
        'totalClients': stats['total_clients'],
        'totalProducts': stats['total_products'],
        'monthSales': stats['month_sales'],
        'monthRevenue': stats['month_revenue'],
        'topProducts': get_top_products(session, scope),
        'recentSales': get_recent_sales(session, scope, limit=5),
    }


# =====================================================
# SECTION CONFIGURATION
# =====================================================

def _config_owner(scope: AccessScope) -> Tuple[int, int]:
    if scope.home_optic_id is None:
        raise ValidationError('No se pudo determinar la óptica', field='optic_id')
    return scope.user_id, scope.home_optic_id


def get_config(session, scope: AccessScope) -> DashboardConfig:
    """Config for the caller, created with every section visible on first read."""
    user_id, optic_id = _config_owner(scope)
    config = session.query(DashboardConfig).filter_by(user_id=user_id, optic_id=optic_id).first()
    if config:
        return config

    try:
        config = DashboardConfig(
            user_id=user_id,
            optic_id=optic_id,
            sections_visible=json.dumps(DEFAULT_SECTIONS),
        )
        session.add(config)
        session.commit()
        return config
    except IntegrityError:
        # Another request created it first
        session.rollback()
        return session.query(DashboardConfig).filter_by(user_id=user_id, optic_id=optic_id).one()


def update_config(session, scope: AccessScope, sections: Any) -> DashboardConfig:
    """
    Merge visible-section flags into the caller's config.

    Raises:
        ValidationError: not an object, unknown section, or non-boolean flag
    """
    if isinstance(sections, str):
        try:
            sections = json.loads(sections)
        except ValueError:
            raise ValidationError('sections_visible debe ser un objeto JSON', field='sections_visible')
    if not isinstance(sections, dict):
        raise ValidationError('sections_visible debe ser un objeto', field='sections_visible')

    for key, value in sections.items():
        if key not in DEFAULT_SECTIONS:
            raise ValidationError(f'Sección desconocida: {key}', field='sections_visible')
        if not isinstance(value, bool):
            raise ValidationError(f'La sección {key} debe ser true o false', field='sections_visible')

    config = get_config(session, scope)
    merged = dict(DEFAULT_SECTIONS)
    merged.update(config.sections)
    merged.update(sections)

    try:
        config.sections_visible = json.dumps(merged)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Dashboard config updated for user {scope.user_id}")
    return config
