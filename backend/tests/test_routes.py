# Overview: Pytest coverage for the HTTP API: tenant header, status mapping, JSON shapes.

"""
HTTP API Tests

Covers:
- X-Business-Id handling (401 missing, 404 unknown)
- error -> status mapping (400 / 404 / 409)
- product, inventory, sale and customer endpoints end to end
"""

from conftest import business_headers, stock_of


class TestBusinessContext:

    def test_health_is_unscoped(self, client, db_session):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json['status'] == 'healthy'

    def test_missing_header_is_401(self, client, db_session):
        response = client.get('/api/products')
        assert response.status_code == 401

    def test_malformed_header_is_401(self, client, db_session):
        response = client.get('/api/products', headers={'X-Business-Id': 'abc'})
        assert response.status_code == 401

    def test_unknown_business_is_404(self, client, db_session):
        response = client.get('/api/products', headers=business_headers(99999))
        assert response.status_code == 404

    def test_create_and_fetch_business(self, client, db_session):
        response = client.post('/api/businesses', json={'name': 'Night Market', 'slug': 'night-market'})
        assert response.status_code == 201
        business_id = response.json['business']['id']

        current = client.get('/api/businesses/current', headers=business_headers(business_id))
        assert current.status_code == 200
        assert current.json['business']['slug'] == 'night-market'

        duplicate = client.post('/api/businesses', json={'name': 'Copy', 'slug': 'night-market'})
        assert duplicate.status_code == 409

    def test_invalid_slug_is_400(self, client, db_session):
        response = client.post('/api/businesses', json={'name': 'Bad', 'slug': 'Not A Slug!'})
        assert response.status_code == 400


class TestProductRoutes:

    def test_create_product_with_initial_stock(self, client, db_session, business_a):
        headers = business_headers(business_a.id)
        response = client.post('/api/products', headers=headers, json={
            'name': 'Iced Coffee', 'sku': 'IC-1', 'price_cents': 1200, 'initial_stock': 8,
        })
        assert response.status_code == 201
        product = response.json['product']
        assert product['stock_quantity'] == 8

        movements = client.get(f"/api/inventory/movements?product_id={product['id']}", headers=headers)
        assert [m['movement_type'] for m in movements.json['items']] == ['RECEIVE']

    def test_duplicate_sku_is_409(self, client, db_session, business_a, product_p):
        response = client.post('/api/products', headers=business_headers(business_a.id), json={
            'name': 'Dup', 'sku': product_p.sku, 'price_cents': 100,
        })
        assert response.status_code == 409

    def test_stock_is_not_patchable(self, client, db_session, business_a, product_p):
        response = client.patch(
            f'/api/products/{product_p.id}',
            headers=business_headers(business_a.id),
            json={'stock_quantity': 999},
        )
        assert response.status_code == 400
        assert stock_of(product_p.id) == 10

    def test_patch_and_deactivate(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)
        response = client.patch(f'/api/products/{product_p.id}', headers=headers, json={'price_cents': 1500})
        assert response.status_code == 200
        assert response.json['product']['price_cents'] == 1500

        response = client.post(f'/api/products/{product_p.id}/deactivate', headers=headers)
        assert response.json['product']['is_active'] is False

        listing = client.get('/api/products', headers=headers)
        assert listing.json['count'] == 0

    def test_negative_price_is_400(self, client, db_session, business_a):
        response = client.post('/api/products', headers=business_headers(business_a.id), json={
            'name': 'Broken', 'price_cents': -1,
        })
        assert response.status_code == 400

    def test_foreign_product_is_404(self, client, db_session, business_a, product_b):
        response = client.get(f'/api/products/{product_b.id}', headers=business_headers(business_a.id))
        assert response.status_code == 404


class TestInventoryRoutes:

    def test_receive_and_adjust(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)

        response = client.post('/api/inventory/receive', headers=headers, json={
            'product_id': product_p.id, 'quantity': 5,
        })
        assert response.status_code == 201
        assert response.json['movement']['stock_after'] == 15

        response = client.post('/api/inventory/adjust', headers=headers, json={
            'product_id': product_p.id, 'quantity_delta': -20, 'reason': 'shrinkage',
        })
        assert response.status_code == 409
        assert response.json['details']['available_quantity'] == 15

        response = client.post('/api/inventory/adjust', headers=headers, json={
            'product_id': product_p.id, 'new_quantity': 4, 'reason': 'cycle count',
        })
        assert response.status_code == 201
        assert stock_of(product_p.id) == 4

    def test_adjust_requires_exactly_one_mode(self, client, db_session, business_a, product_p):
        response = client.post('/api/inventory/adjust', headers=business_headers(business_a.id), json={
            'product_id': product_p.id, 'quantity_delta': 1, 'new_quantity': 3, 'reason': 'x',
        })
        assert response.status_code == 400

    def test_receive_zero_is_400(self, client, db_session, business_a, product_p):
        response = client.post('/api/inventory/receive', headers=business_headers(business_a.id), json={
            'product_id': product_p.id, 'quantity': 0,
        })
        assert response.status_code == 400

    def test_receive_decimal_string_is_400(self, client, db_session, business_a, product_p):
        response = client.post('/api/inventory/receive', headers=business_headers(business_a.id), json={
            'product_id': product_p.id, 'quantity': '2.5',
        })
        assert response.status_code == 400

    def test_low_stock_and_summary(self, client, db_session, business_a, product_p, product_q):
        headers = business_headers(business_a.id)
        response = client.get('/api/inventory/low-stock?threshold=5', headers=headers)
        assert [p['id'] for p in response.json['items']] == [product_q.id]

        summary = client.get('/api/inventory/summary', headers=headers)
        assert summary.json['total_products'] == 2


class TestSaleRoutes:

    def test_sale_lifecycle_over_http(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)

        response = client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 7}],
            'payment_method': 'CASH',
            'amount_tendered_cents': 10000,
        })
        assert response.status_code == 201
        sale = response.json['sale']
        assert sale['status'] == 'COMPLETED'
        assert sale['total_cents'] == 7000
        assert sale['change_cents'] == 3000
        assert len(sale['lines']) == 1

        response = client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 5}],
            'payment_method': 'CASH',
        })
        assert response.status_code == 409
        assert response.json['details'] == {
            'product_id': product_p.id, 'requested_quantity': 5, 'available_quantity': 3,
        }

        response = client.post(f"/api/sales/{sale['id']}/void", headers=headers, json={'reason': 'wrong item'})
        assert response.status_code == 200
        assert response.json['sale']['status'] == 'VOIDED'
        assert stock_of(product_p.id) == 10

        response = client.post(f"/api/sales/{sale['id']}/void", headers=headers, json={'reason': 'again'})
        assert response.status_code == 409

    def test_invalid_sale_payloads(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)

        assert client.post('/api/sales', headers=headers, json={'items': [], 'payment_method': 'CASH'}).status_code == 400
        assert client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 1}],
            'payment_method': 'CASH',
            'discount': {'type': 'PERCENTAGE', 'value': 120},
        }).status_code == 400

    def test_get_list_and_daily_summary(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)
        created = client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 2}],
            'payment_method': 'MAYA',
        }).json['sale']

        fetched = client.get(f"/api/sales/{created['id']}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json['sale']['sale_number'] == created['sale_number']

        listing = client.get('/api/sales?status=COMPLETED', headers=headers)
        assert listing.json['count'] == 1

        summary = client.get('/api/sales/summary/daily', headers=headers)
        assert summary.json['payment_breakdown'] == {'MAYA': 2000}

        assert client.get('/api/sales/summary/daily?date=not-a-date', headers=headers).status_code == 400

    def test_void_missing_sale_is_404(self, client, db_session, business_a):
        response = client.post('/api/sales/99999/void', headers=business_headers(business_a.id), json={'reason': 'x'})
        assert response.status_code == 404


class TestCustomerRoutes:

    def test_customer_points_visible(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)
        customer = client.post('/api/customers', headers=headers, json={
            'full_name': 'Bea Santos', 'phone': '09171234567',
        }).json['customer']

        client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 3}],
            'payment_method': 'CARD',
            'customer_id': customer['id'],
        })

        response = client.get(f"/api/customers/{customer['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json['customer']['total_points'] == 3
        assert [t['transaction_type'] for t in response.json['points_transactions']] == ['EARN']

    def test_duplicate_phone_is_409(self, client, db_session, business_a):
        headers = business_headers(business_a.id)
        client.post('/api/customers', headers=headers, json={'full_name': 'One', 'phone': '0917'})
        response = client.post('/api/customers', headers=headers, json={'full_name': 'Two', 'phone': '0917'})
        assert response.status_code == 409


class TestMalformedInput:

    def test_oversized_business_header_is_404(self, client, db_session):
        response = client.get('/api/products', headers={'X-Business-Id': '99999999999999999999'})
        assert response.status_code == 404

    def test_non_numeric_loyalty_setting_is_400(self, client, db_session):
        response = client.post('/api/businesses', json={
            'name': 'Bad Points', 'slug': 'bad-points', 'cents_per_point': 'abc',
        })
        assert response.status_code == 400

    def test_oversized_sale_quantity_is_400(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)
        response = client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 10**20}],
            'payment_method': 'CASH',
        })
        assert response.status_code == 400
        assert stock_of(product_p.id) == 10

    def test_oversized_receive_is_400(self, client, db_session, business_a, product_p):
        response = client.post('/api/inventory/receive', headers=business_headers(business_a.id), json={
            'product_id': product_p.id, 'quantity': 10**20,
        })
        assert response.status_code == 400
        assert stock_of(product_p.id) == 10

    def test_non_string_sale_notes_is_400(self, client, db_session, business_a, product_p):
        response = client.post('/api/sales', headers=business_headers(business_a.id), json={
            'items': [{'product_id': product_p.id, 'quantity': 1}],
            'payment_method': 'CASH',
            'notes': 5,
        })
        assert response.status_code == 400

    def test_non_string_void_reason_is_400(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)
        sale = client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 1}],
            'payment_method': 'CASH',
        }).json['sale']

        response = client.post(f"/api/sales/{sale['id']}/void", headers=headers, json={'reason': 5})
        assert response.status_code == 400
        assert client.get(f"/api/sales/{sale['id']}", headers=headers).json['sale']['status'] == 'COMPLETED'


class TestAnalyticsAndLookupRoutes:

    def test_sales_analytics(self, client, db_session, business_a, product_p):
        headers = business_headers(business_a.id)
        client.post('/api/sales', headers=headers, json={
            'items': [{'product_id': product_p.id, 'quantity': 2}],
            'payment_method': 'CASH',
        })

        response = client.get('/api/sales/analytics', headers=headers)
        assert response.status_code == 200
        analytics = response.json['analytics']
        assert analytics['totals']['revenue_cents'] == 2000
        assert analytics['totals']['transactions'] == 1
        assert analytics['top_products'][0]['name'] == 'Product P'
        assert len(analytics['daily_revenue']) == 1

    def test_sales_analytics_bad_dates(self, client, db_session, business_a):
        headers = business_headers(business_a.id)
        assert client.get('/api/sales/analytics?start_date=yesterday', headers=headers).status_code == 400
        assert client.get(
            '/api/sales/analytics?start_date=2026-02-01&end_date=2026-01-01', headers=headers
        ).status_code == 400

    def test_customer_lookup(self, client, db_session, business_a, business_b):
        headers = business_headers(business_a.id)
        created = client.post('/api/customers', headers=headers, json={
            'full_name': 'Bea Santos', 'phone': '0917 123 4567',
        }).json['customer']

        response = client.get('/api/customers/lookup?phone=09171234567', headers=headers)
        assert response.status_code == 200
        assert response.json['customer']['id'] == created['id']

        assert client.get('/api/customers/lookup?phone=0000', headers=headers).status_code == 404
        assert client.get('/api/customers/lookup', headers=headers).status_code == 400
        other = client.get('/api/customers/lookup?phone=09171234567', headers=business_headers(business_b.id))
        assert other.status_code == 404
