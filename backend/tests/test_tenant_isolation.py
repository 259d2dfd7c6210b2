# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that one business can never read or change another
business's products, stock, sales or customers. Foreign rows must look
exactly like missing rows (NotFound), never reveal existence.
"""

import pytest

from loyalpos.errors import InvalidInput, NotFound
from loyalpos.models import Product
from loyalpos.services import inventory_service, loyalty_service, products_service, sales_service
from loyalpos.services.tenant_service import (
    get_owned,
    require_business,
    scoped_query,
)

from conftest import stock_of


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_business_valid(self, db_session, business_a):
        assert require_business(business_a.id).id == business_a.id

    def test_require_business_inactive(self, db_session, business_a):
        business_a.is_active = False
        db_session.commit()

        with pytest.raises(NotFound):
            require_business(business_a.id)
        assert require_business(business_a.id, require_active=False).id == business_a.id

    def test_require_business_nonexistent(self, db_session):
        with pytest.raises(NotFound):
            require_business(99999)

    def test_scoped_query_filters_by_business(self, db_session, business_a, business_b, product_p, product_b):
        ids_a = [p.id for p in scoped_query(Product, business_a.id)]
        ids_b = [p.id for p in scoped_query(Product, business_b.id)]
        assert ids_a == [product_p.id]
        assert ids_b == [product_b.id]

    def test_get_owned_foreign_row_is_not_found(self, db_session, business_a, product_b):
        with pytest.raises(NotFound):
            get_owned(Product, business_a.id, product_b.id)

    @pytest.mark.parametrize("entity_id", [10**20, 0, -1, True, "1"])
    def test_out_of_range_ids_look_missing(self, db_session, business_a, product_p, entity_id):
        with pytest.raises(NotFound):
            get_owned(Product, business_a.id, entity_id)
        with pytest.raises(NotFound):
            require_business(entity_id)


class TestInventoryIsolation:

    def test_cannot_receive_into_foreign_product(self, db_session, business_a, product_b):
        with pytest.raises(NotFound):
            inventory_service.receive_stock(business_id=business_a.id, product_id=product_b.id, quantity=5)
        assert stock_of(product_b.id) == 20

    def test_cannot_adjust_foreign_product(self, db_session, business_a, product_b):
        with pytest.raises(NotFound):
            inventory_service.adjust_stock(
                business_id=business_a.id, product_id=product_b.id, delta=-1, reason="theft"
            )
        assert stock_of(product_b.id) == 20

    def test_low_stock_is_scoped(self, db_session, business_a, business_b, product_p, product_b):
        low_a = inventory_service.get_low_stock(business_id=business_a.id, threshold=100)
        assert [p.id for p in low_a] == [product_p.id]

    def test_movements_are_scoped(self, db_session, business_a, business_b, product_p, product_b):
        movements_a = inventory_service.list_movements(business_id=business_a.id)
        assert {m.product_id for m in movements_a} == {product_p.id}

        with pytest.raises(NotFound):
            inventory_service.list_movements(business_id=business_a.id, product_id=product_b.id)


class TestSalesIsolation:

    def test_cannot_sell_foreign_product(self, db_session, business_a, product_p, product_b):
        with pytest.raises(NotFound):
            sales_service.create_sale(
                business_id=business_a.id,
                items=[{"product_id": product_p.id, "quantity": 1}, {"product_id": product_b.id, "quantity": 1}],
                payment_method="CASH",
            )
        assert stock_of(product_p.id) == 10
        assert stock_of(product_b.id) == 20

    def test_cannot_read_or_void_foreign_sale(self, db_session, business_a, business_b, product_b):
        sale = sales_service.create_sale(
            business_id=business_b.id,
            items=[{"product_id": product_b.id, "quantity": 2}],
            payment_method="CARD",
        )

        with pytest.raises(NotFound):
            sales_service.get_sale(business_id=business_a.id, sale_id=sale.id)
        with pytest.raises(NotFound):
            sales_service.void_sale(business_id=business_a.id, sale_id=sale.id, reason="hostile")

        assert sales_service.get_sale(business_id=business_b.id, sale_id=sale.id).status == "COMPLETED"
        assert stock_of(product_b.id) == 18
        assert sales_service.list_sales(business_id=business_a.id) == []

    def test_sale_numbers_are_per_business(self, db_session, business_a, business_b, product_p, product_b):
        sale_a = sales_service.create_sale(
            business_id=business_a.id, items=[{"product_id": product_p.id, "quantity": 1}], payment_method="CASH"
        )
        sale_b = sales_service.create_sale(
            business_id=business_b.id, items=[{"product_id": product_b.id, "quantity": 1}], payment_method="CASH"
        )
        assert sale_a.sale_number == sale_b.sale_number == "S-000001"

    def test_inactive_business_cannot_sell(self, db_session, business_a, product_p):
        business_a.is_active = False
        db_session.commit()

        with pytest.raises(NotFound):
            sales_service.create_sale(
                business_id=business_a.id,
                items=[{"product_id": product_p.id, "quantity": 1}],
                payment_method="CASH",
            )


class TestCatalogIsolation:

    def test_same_sku_allowed_in_different_businesses(self, db_session, business_a, business_b, product_p):
        other = products_service.create_product(
            business_id=business_b.id,
            payload={"name": "Look-alike", "sku": product_p.sku, "price_cents": 100},
        )
        assert other.sku == product_p.sku

    def test_cannot_update_foreign_product(self, db_session, business_a, product_b):
        with pytest.raises(NotFound):
            products_service.update_product(
                business_id=business_a.id, product_id=product_b.id, payload={"name": "Hijacked"}
            )

    def test_customers_are_scoped(self, db_session, business_a, business_b):
        customer = loyalty_service.create_customer(business_id=business_b.id, full_name="Beta Regular")

        with pytest.raises(NotFound):
            loyalty_service.get_customer(business_id=business_a.id, customer_id=customer.id)

    def test_customer_name_required(self, db_session, business_a):
        with pytest.raises(InvalidInput):
            loyalty_service.create_customer(business_id=business_a.id, full_name="  ")
