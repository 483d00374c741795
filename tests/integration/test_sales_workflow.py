"""
Integration tests for the sale transaction workflow.
Stock changes and sale rows must commit or roll back together.
"""

import threading
from decimal import Decimal

import pytest

from app.database import get_session
from app.exceptions import ValidationError, InsufficientStockError, NotFoundError, ForbiddenError
from app.models import Sale, SaleItem, DeletionLog
from app.services import sales_service


def _sale_count(session, optic_id):
    return session.query(Sale).filter(Sale.optic_id == optic_id).count()


class TestCreateSale:
    """Happy paths of the sale workflow."""

    def test_lens_x_scenario(self, session, scope1, optic1, make_product, make_client, stock_of):
        """Selling 3 of 10 leaves 7 and totals 3 x price."""
        product_id = make_product(optic1, stock=10, price='50.00', name='Lens X')
        client_id = make_client(optic1)

        sale = sales_service.create_sale(session, {
            'client_id': client_id,
            'items': [{'product_id': product_id, 'quantity': 3, 'unit_price': 50}],
        }, scope1)

        assert stock_of(product_id) == 7
        data = sale.to_dict()
        assert data['total_amount'] == 150.0
        assert data['client_name'] == 'Ana García'
        assert data['optic_id'] == optic1
        assert len(data['items']) == 1
        assert data['items'][0]['product_name'] == 'Lens X'
        assert data['items'][0]['total_price'] == 150.0

    def test_walk_in_client_and_free_text_item(self, session, scope1, optic1, make_product, stock_of):
        """Unregistered client and product names are stored; stock is untouched."""
        product_id = make_product(optic1, stock=4)

        sale = sales_service.create_sale(session, {
            'unregistered_client_name': 'Juan Pérez',
            'items': [
                {'product_id': 'unregistered', 'unregistered_product_name': 'Reparación de armazón',
                 'quantity': 1, 'unit_price': '20.00'},
            ],
        }, scope1)

        data = sale.to_dict()
        assert data['client_id'] is None
        assert data['client_name'] == 'Juan Pérez'
        assert data['items'][0]['product_id'] is None
        assert data['items'][0]['product_name'] == 'Reparación de armazón'
        assert data['total_amount'] == 20.0
        assert stock_of(product_id) == 4

    def test_unit_price_defaults_to_product_price(self, session, scope1, optic1, make_product):
        product_id = make_product(optic1, stock=5, price='120.00')

        sale = sales_service.create_sale(session, {
            'items': [{'product_id': product_id, 'quantity': 2}],
        }, scope1)

        assert sale.total_amount == Decimal('240.00')
        assert sale.items[0].unit_price == Decimal('120.00')

    def test_multiple_items_and_prescription(self, session, scope1, optic1, make_product, stock_of):
        frame_id = make_product(optic1, stock=3, price='80.00')
        lens_id = make_product(optic1, stock=10, price='35.50')

        sale = sales_service.create_sale(session, {
            'od_esf': '-1.25', 'od_cil': '-0.50', 'od_eje': 90,
            'oi_esf': -1.00, 'oi_eje': 180,
            'notes': 'Entrega en 7 días',
            'total_amount': 151.0,
            'items': [
                {'product_id': frame_id, 'quantity': 1, 'unit_price': 80},
                {'product_id': lens_id, 'quantity': 2, 'unit_price': '35.50', 'od_add': '2.00'},
            ],
        }, scope1)

        assert stock_of(frame_id) == 2
        assert stock_of(lens_id) == 8
        data = sale.to_dict()
        assert data['total_amount'] == 151.0
        assert data['od_esf'] == -1.25
        assert data['od_eje'] == 90
        assert data['items'][1]['od_add'] == 2.0

    def test_admin_sells_into_payload_optic(self, session, admin_scope, optic2, make_product, stock_of):
        product_id = make_product(optic2, stock=2)

        sale = sales_service.create_sale(session, {
            'optic_id': optic2,
            'items': [{'product_id': product_id, 'quantity': 1}],
        }, admin_scope)

        assert sale.optic_id == optic2
        assert stock_of(product_id) == 1

    def test_admin_cannot_sell_into_unknown_optic(self, session, admin_scope):
        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(session, {
                'optic_id': 987654321,
                'unregistered_client_name': 'Mostrador',
                'items': [{'unregistered_product_name': 'Limpieza', 'quantity': 1, 'unit_price': 3}],
            }, admin_scope)

        assert exc.value.field == 'optic_id'
        assert session.query(Sale).filter(Sale.optic_id == 987654321).count() == 0


class TestRejectedSale:
    """Every failure leaves stock and sales untouched."""

    def test_insufficient_stock_leaves_stock_unchanged(self, session, scope1, optic1, make_product, stock_of):
        product_id = make_product(optic1, stock=2)

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(session, {
                'items': [{'product_id': product_id, 'quantity': 3, 'unit_price': 10}],
            }, scope1)

        assert exc.value.status_code == 409
        assert exc.value.available == 2
        assert stock_of(product_id) == 2
        assert _sale_count(session, optic1) == 0

    def test_failure_on_second_item_rolls_back_first(self, session, scope1, optic1, make_product, stock_of):
        plenty_id = make_product(optic1, stock=10)
        scarce_id = make_product(optic1, stock=1)

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(session, {
                'items': [
                    {'product_id': plenty_id, 'quantity': 5},
                    {'product_id': scarce_id, 'quantity': 2},
                ],
            }, scope1)

        assert stock_of(plenty_id) == 10
        assert stock_of(scarce_id) == 1
        assert session.query(SaleItem).filter(SaleItem.product_id == plenty_id).count() == 0

    def test_quantities_are_aggregated_per_product(self, session, scope1, optic1, make_product, stock_of):
        product_id = make_product(optic1, stock=3)

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(session, {
                'items': [
                    {'product_id': product_id, 'quantity': 2},
                    {'product_id': product_id, 'quantity': 2},
                ],
            }, scope1)

        assert stock_of(product_id) == 3

    def test_client_and_walk_in_name_are_exclusive(self, session, scope1, optic1, make_client):
        client_id = make_client(optic1)

        with pytest.raises(ValidationError):
            sales_service.create_sale(session, {
                'client_id': client_id,
                'unregistered_client_name': 'Otro',
                'items': [{'unregistered_product_name': 'X', 'quantity': 1, 'unit_price': 1}],
            }, scope1)

    def test_client_of_another_optic_is_invalid(self, session, scope1, optic2, make_client):
        foreign_client = make_client(optic2)

        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(session, {
                'client_id': foreign_client,
                'items': [{'unregistered_product_name': 'X', 'quantity': 1, 'unit_price': 1}],
            }, scope1)
        assert exc.value.field == 'client_id'

    def test_product_of_another_optic_is_invalid(self, session, scope1, optic1, optic2, make_product, stock_of):
        foreign_product = make_product(optic2, stock=10)

        with pytest.raises(ValidationError):
            sales_service.create_sale(session, {
                'items': [{'product_id': foreign_product, 'quantity': 1}],
            }, scope1)

        assert stock_of(foreign_product) == 10
        assert _sale_count(session, optic1) == 0

    def test_declared_total_must_match_items(self, session, scope1, optic1, make_product, stock_of):
        product_id = make_product(optic1, stock=5, price='10.00')

        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(session, {
                'total_amount': 25,
                'items': [{'product_id': product_id, 'quantity': 2}],
            }, scope1)

        assert exc.value.field == 'total_amount'
        assert stock_of(product_id) == 5

    @pytest.mark.parametrize('items', [
        [],
        None,
        [{'product_id': None, 'quantity': 1, 'unit_price': 5}],
        [{'unregistered_product_name': 'X', 'quantity': 0, 'unit_price': 5}],
        [{'unregistered_product_name': 'X', 'quantity': 1, 'unit_price': -1}],
        [{'unregistered_product_name': 'X', 'quantity': 1}],
    ])
    def test_malformed_items(self, session, scope1, items):
        with pytest.raises(ValidationError):
            sales_service.create_sale(session, {'items': items}, scope1)

    def test_axis_out_of_range(self, session, scope1):
        with pytest.raises(ValidationError):
            sales_service.create_sale(session, {
                'od_eje': 200,
                'items': [{'unregistered_product_name': 'X', 'quantity': 1, 'unit_price': 1}],
            }, scope1)

    @pytest.mark.parametrize('field, value', [
        ('od_esf', 1000),
        ('oi_cil', '-100'),
        ('od_add', '123.45'),
    ])
    def test_diopters_outside_column_range(self, session, scope1, optic1, make_product, stock_of, field, value):
        product_id = make_product(optic1, stock=4)

        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(session, {
                field: value,
                'items': [{'product_id': product_id, 'quantity': 1}],
            }, scope1)

        assert exc.value.field == field
        assert stock_of(product_id) == 4
        assert session.query(SaleItem).filter(SaleItem.product_id == product_id).count() == 0

    def test_diopters_at_the_limit(self, session, scope1):
        sale = sales_service.create_sale(session, {
            'od_esf': '99.99',
            'oi_esf': '-99.99',
            'items': [{'unregistered_product_name': 'X', 'quantity': 1, 'unit_price': 1}],
        }, scope1)

        assert sale.od_esf == Decimal('99.99')
        assert sale.oi_esf == Decimal('-99.99')


class TestSaleReadUpdateDelete:

    def _sell(self, session, scope, product_id, quantity):
        return sales_service.create_sale(session, {
            'items': [{'product_id': product_id, 'quantity': quantity}],
        }, scope).id

    def test_get_by_id_scoping(self, session, scope1, scope2, admin_scope, optic1, make_product):
        sale_id = self._sell(session, scope1, make_product(optic1, stock=5), 1)

        assert sales_service.get_by_id(session, sale_id, scope1).id == sale_id
        assert sales_service.get_by_id(session, sale_id, admin_scope).id == sale_id
        with pytest.raises(ForbiddenError):
            sales_service.get_by_id(session, sale_id, scope2)
        with pytest.raises(NotFoundError):
            sales_service.get_by_id(session, 987654321, scope1)

    def test_soft_delete_restores_stock_and_logs(self, session, scope1, optic1, make_product, stock_of):
        product_id = make_product(optic1, stock=5)
        sale_id = self._sell(session, scope1, product_id, 2)
        assert stock_of(product_id) == 3

        snapshot = sales_service.soft_delete_sale(session, sale_id, scope1, reason='Error de carga')

        assert snapshot['id'] == sale_id
        assert stock_of(product_id) == 5
        with pytest.raises(NotFoundError):
            sales_service.get_by_id(session, sale_id, scope1)

        log = session.query(DeletionLog).filter_by(table_name='sales', record_id=sale_id).one()
        assert log.deleted_by == scope1.user_id
        assert log.reason == 'Error de carga'
        assert log.snapshot['items'][0]['quantity'] == 2

    def test_update_replaces_items_and_adjusts_stock(self, session, scope1, optic1, make_product, stock_of):
        first_id = make_product(optic1, stock=5, price='10.00')
        second_id = make_product(optic1, stock=5, price='30.00')
        sale_id = self._sell(session, scope1, first_id, 2)

        sale = sales_service.update_sale(session, sale_id, {
            'notes': 'Cambio de producto',
            'items': [{'product_id': second_id, 'quantity': 3}],
        }, scope1)

        assert stock_of(first_id) == 5
        assert stock_of(second_id) == 2
        assert sale.total_amount == Decimal('90.00')
        assert sale.notes == 'Cambio de producto'
        assert [item.product_id for item in sale.items] == [second_id]

    def test_update_with_insufficient_stock_keeps_original(self, session, scope1, optic1, make_product, stock_of):
        product_id = make_product(optic1, stock=5)
        sale_id = self._sell(session, scope1, product_id, 2)

        with pytest.raises(InsufficientStockError):
            sales_service.update_sale(session, sale_id, {
                'items': [{'product_id': product_id, 'quantity': 6}],
            }, scope1)

        assert stock_of(product_id) == 3
        sale = sales_service.get_by_id(session, sale_id, scope1)
        assert [item.quantity for item in sale.items] == [2]

    def test_update_header_only(self, session, scope1, optic1, make_product, make_client):
        sale_id = self._sell(session, scope1, make_product(optic1, stock=5), 1)
        client_id = make_client(optic1, first_name='Lucía', last_name='Ruiz')

        sale = sales_service.update_sale(session, sale_id, {'client_id': client_id, 'od_esf': '-2.00'}, scope1)

        assert sale.client_name == 'Lucía Ruiz'
        assert sale.od_esf == Decimal('-2.00')

    def test_update_total_without_items_must_match(self, session, scope1, optic1, make_product):
        sale_id = self._sell(session, scope1, make_product(optic1, stock=5, price='40.00'), 2)

        with pytest.raises(ValidationError) as exc:
            sales_service.update_sale(session, sale_id, {'total_amount': 999}, scope1)
        assert exc.value.field == 'total_amount'

        sale = sales_service.update_sale(session, sale_id, {'total_amount': '80.00', 'notes': 'ok'}, scope1)
        assert sale.total_amount == Decimal('80.00')
        assert sale.notes == 'ok'

    def test_update_with_only_matching_total_is_accepted(self, session, scope1, optic1, make_product):
        sale_id = self._sell(session, scope1, make_product(optic1, stock=5, price='40.00'), 1)

        sale = sales_service.update_sale(session, sale_id, {'total_amount': 40}, scope1)

        assert sale.total_amount == Decimal('40.00')

    def test_list_and_search(self, session, scope1, scope2, optic1, optic2, make_product):
        sales_service.create_sale(session, {
            'unregistered_client_name': 'Marta Gómez',
            'items': [{'unregistered_product_name': 'Estuche', 'quantity': 1, 'unit_price': 5}],
        }, scope1)
        sales_service.create_sale(session, {
            'unregistered_client_name': 'Marta Gómez',
            'items': [{'unregistered_product_name': 'Estuche', 'quantity': 1, 'unit_price': 5}],
        }, scope2)

        sales, total = sales_service.get_all(session, scope1, page=1, limit=10)
        assert total == 1
        assert sales[0].optic_id == optic1

        found = sales_service.search(session, 'marta', scope1)
        assert [s.optic_id for s in found] == [optic1]


class TestConcurrentSales:
    """No oversell when more sales race for a product than it has units."""

    WORKERS = 5
    STOCK = 3

    def test_only_available_units_are_sold(self, session, scope1, optic1, make_product, stock_of):
        product_id = make_product(optic1, stock=self.STOCK)
        results = []
        barrier = threading.Barrier(self.WORKERS)

        def sell():
            worker_session = get_session()
            try:
                barrier.wait()
                sales_service.create_sale(worker_session, {
                    'items': [{'product_id': product_id, 'quantity': 1}],
                }, scope1)
                results.append('ok')
            except InsufficientStockError:
                results.append('rejected')
            finally:
                worker_session.remove()

        threads = [threading.Thread(target=sell) for _ in range(self.WORKERS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ['ok'] * self.STOCK + ['rejected'] * (self.WORKERS - self.STOCK)
        assert stock_of(product_id) == 0
        sold = session.query(SaleItem).filter(SaleItem.product_id == product_id).count()
        assert sold == self.STOCK
