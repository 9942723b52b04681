"""
Integration tests for the JSON API (sales, products, audit, metrics).
"""

import pytest

CARD = '123456789012'


def _create_sale(client, product_id, qty, **extra):
    body = {'items': [{'product_id': product_id, 'qty': qty}], 'card_number': CARD}
    body.update(extra)
    return client.post('/sales/', json=body)


class TestAuthentication:
    """Requests without an actor."""

    def test_ping_is_public(self, client):
        response = client.get('/sales/ping')
        assert response.status_code == 200
        assert response.get_json()['ok'] is True

    @pytest.mark.parametrize('method, path', [
        ('get', '/sales/'),
        ('post', '/sales/'),
        ('get', '/sales/summary'),
        ('get', '/products/'),
        ('get', '/audit/'),
        ('get', '/reports/daily-close'),
        ('post', '/reports/daily-close/close'),
        ('get', '/reports/global/summary'),
    ])
    def test_requires_actor(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.get_json()['error'] == 'AuthenticationRequired'

    def test_unknown_role_is_anonymous(self, login):
        client = login('u1', 'JANITOR', 'F-A')
        assert client.get('/sales/').status_code == 401


class TestSalesEndpoints:
    """Sale lifecycle over HTTP."""

    def test_create_sale(self, login, seed_product):
        product_id = seed_product(price='100.00', stock=10)
        client = login('seller-a', 'SELLER', 'F-A')

        response = _create_sale(client, product_id, 4)
        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'COMPLETED'
        assert data['total'] == '400.00'
        assert data['franchise_id'] == 'F-A'
        assert data['seller_id'] == 'seller-a'
        assert data['card_last4'] == '9012'
        assert 'card_number' not in data
        assert data['items'][0]['product_id'] == product_id
        assert data['items'][0]['subtotal'] == '400.00'

        product = client.get(f'/products/{product_id}').get_json()
        assert (product['stock'], product['missing']) == (6, 4)

    def test_insufficient_stock_is_409(self, login, seed_product):
        product_id = seed_product(stock=2)
        client = login('seller-a', 'SELLER', 'F-A')

        response = _create_sale(client, product_id, 3)
        assert response.status_code == 409
        data = response.get_json()
        assert data['error'] == 'InsufficientStockError'
        assert data['status'] == 'error'
        assert client.get(f'/products/{product_id}').get_json()['stock'] == 2

    def test_invalid_card_is_400(self, login, seed_product):
        product_id = seed_product()
        client = login('seller-a', 'SELLER', 'F-A')

        response = client.post('/sales/', json={'items': [{'product_id': product_id, 'qty': 1}], 'card_number': '42'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'ValidationError'

    def test_non_object_body_is_400(self, login):
        client = login('seller-a', 'SELLER', 'F-A')
        response = client.post('/sales/', json=[1, 2, 3])
        assert response.status_code == 400

    def test_owner_must_send_franchise(self, login, seed_product):
        product_id = seed_product()
        client = login('owner-1', 'OWNER')

        assert _create_sale(client, product_id, 1).status_code == 403
        response = _create_sale(client, product_id, 1, franchise_id='F-A')
        assert response.status_code == 201
        assert response.get_json()['seller_id'] == 'owner-1'

    def test_cancel_and_refund(self, login, seed_product):
        product_id = seed_product(stock=10)
        client = login('seller-a', 'SELLER', 'F-A')
        first = _create_sale(client, product_id, 2).get_json()
        second = _create_sale(client, product_id, 3).get_json()

        # Sellers cannot reverse
        assert client.post(f"/sales/{first['id']}/cancel").status_code == 403

        client = login('fo-a', 'FRANCHISE_OWNER', 'F-A')
        response = client.post(f"/sales/{first['id']}/cancel", json={'reason': 'Error de carga'})
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'CANCELED'
        assert data['closed_by'] == 'fo-a'
        assert data['close_reason'] == 'Error de carga'

        response = client.post(f"/sales/{second['id']}/refund")
        assert response.status_code == 200
        assert response.get_json()['refund_total'] == second['total']

        # Already reversed
        assert client.post(f"/sales/{second['id']}/cancel").status_code == 400
        assert client.post('/sales/999/refund').status_code == 404

        product = client.get(f'/products/{product_id}').get_json()
        assert (product['stock'], product['missing']) == (10, 0)

    def test_list_and_summary(self, login, seed_product):
        product_id = seed_product(price='10.00', stock=20)
        client = login('seller-a', 'SELLER', 'F-A')
        _create_sale(client, product_id, 2)
        _create_sale(client, product_id, 5)

        sales = client.get('/sales/').get_json()
        assert [s['items'][0]['qty'] for s in sales] == [5, 2]

        response = client.get('/sales/summary?seller_id=seller-a')
        assert response.status_code == 200
        summary = response.get_json()
        assert summary['franchise_id'] == 'F-A'
        assert summary['sales_count'] == 2
        assert summary['total_sold'] == '70.00'
        assert summary['items_qty'] == 7

        assert client.get('/sales/?from=yesterday').status_code == 400

    def test_malformed_items_are_400(self, login, seed_product):
        product_id = seed_product(stock=10)
        client = login('seller-a', 'SELLER', 'F-A')

        for items in ([{'product_id': '²', 'qty': 1}], [{'product_id': product_id, 'qty': 10 ** 20}]):
            response = client.post('/sales/', json={'items': items, 'card_number': CARD})
            assert response.status_code == 400
            assert response.get_json()['error'] == 'ValidationError'

        assert client.get(f'/products/{product_id}').get_json()['stock'] == 10

    def test_unknown_route_is_json_404(self, login):
        client = login('seller-a', 'SELLER', 'F-A')
        response = client.get('/sales/abc/def')
        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'


class TestProductEndpoints:
    """Catalog and stock mutations over HTTP."""

    def test_create_list_restock_adjust(self, login):
        client = login('fo-a', 'FRANCHISE_OWNER', 'F-A')

        response = client.post('/products/', json={'name': 'Fideos', 'price': '850', 'stock': 3, 'sku': 'FID-500'})
        assert response.status_code == 201
        product = response.get_json()
        assert product['price'] == '850.00'
        assert product['franchise_id'] == 'F-A'

        listing = client.get('/products/?q=fid').get_json()
        assert listing['total'] == 1
        assert listing['items'][0]['id'] == product['id']

        response = client.post(f"/products/{product['id']}/restock", json={'qty': 7})
        assert response.status_code == 200
        assert response.get_json()['stock'] == 10

        response = client.post(f"/products/{product['id']}/adjust", json={'stock_delta': -4, 'reason': 'Vencidos'})
        assert response.status_code == 200
        assert response.get_json()['stock'] == 6

        response = client.post(f"/products/{product['id']}/adjust", json={'stock_delta': -7})
        assert response.status_code == 409

        response = client.post(f"/products/{product['id']}/restock", json={'qty': 0})
        assert response.status_code == 400

    def test_duplicate_sku_is_409(self, login):
        client = login('fo-a', 'FRANCHISE_OWNER', 'F-A')
        assert client.post('/products/', json={'name': 'A', 'price': 1, 'sku': 'X1'}).status_code == 201
        assert client.post('/products/', json={'name': 'B', 'price': 1, 'sku': 'X1'}).status_code == 409

    def test_out_of_range_values_are_400(self, login, seed_product):
        product_id = seed_product(stock=3)
        client = login('fo-a', 'FRANCHISE_OWNER', 'F-A')

        assert client.post(f'/products/{product_id}/restock', json={'qty': 10 ** 20}).status_code == 400
        assert client.post(f'/products/{product_id}/adjust', json={'stock_delta': -(10 ** 20)}).status_code == 400
        assert client.post('/products/', json={'name': 'X', 'price': 'NaN'}).status_code == 400
        assert client.post('/products/', json={'name': 123, 'price': 1}).status_code == 400
        assert client.get(f'/products/{product_id}').get_json()['stock'] == 3

    def test_seller_cannot_manage_stock(self, login, seed_product):
        product_id = seed_product()
        client = login('seller-a', 'SELLER', 'F-A')
        assert client.post(f'/products/{product_id}/restock', json={'qty': 1}).status_code == 403
        assert client.post('/products/', json={'name': 'X', 'price': 1}).status_code == 403


class TestAuditEndpoint:
    """Audit trail over HTTP."""

    def test_owner_reads_trail(self, login, seed_product):
        product_id = seed_product(stock=5)
        client = login('seller-a', 'SELLER', 'F-A')
        _create_sale(client, product_id, 1)

        assert client.get('/audit/').status_code == 403

        client = login('partner-1', 'PARTNER')
        data = client.get('/audit/?franchise_id=F-A&action=SALE_CREATE').get_json()
        assert data['total'] == 1
        entry = data['items'][0]
        assert entry['user_id'] == 'seller-a'
        assert entry['payload']['card_last4'] == '9012'


class TestMetricsEndpoint:

    def test_metrics_exposed(self, login, seed_product):
        product_id = seed_product(stock=1)
        client = login('seller-a', 'SELLER', 'F-A')
        _create_sale(client, product_id, 1)
        _create_sale(client, product_id, 1)

        response = client.get('/metrics')
        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'pos_sales_created_total' in body
        assert 'pos_stock_conflicts_total' in body


class TestReportsEndpoints:
    """Daily close and global summary over HTTP."""

    def test_daily_close_and_close_day(self, login, seed_product):
        product_id = seed_product(name='Yerba', price='10.00', stock=20)
        client = login('seller-a', 'SELLER', 'F-A')
        _create_sale(client, product_id, 2)
        refunded = _create_sale(client, product_id, 3).get_json()

        client = login('fo-a', 'FRANCHISE_OWNER', 'F-A')
        assert client.post(f"/sales/{refunded['id']}/refund").status_code == 200

        response = client.get('/reports/daily-close')
        assert response.status_code == 200
        report = response.get_json()
        assert report['franchise_id'] == 'F-A'
        assert report['sales_completed'] == 1
        assert report['total_sold'] == '20.00'
        assert report['refunds_count'] == 1
        assert report['refunds_total'] == '30.00'
        assert report['top_products'] == [
            {'product_id': product_id, 'name': 'Yerba', 'sku': None, 'qty': 2, 'revenue': '20.00'}
        ]
        assert report['closed_by'] is None

        response = client.post('/reports/daily-close/close', json={'day': report['day']})
        assert response.status_code == 200
        assert response.get_json()['closed_by'] == 'fo-a'
        assert client.get('/reports/daily-close').get_json()['closed_by'] == 'fo-a'

        assert client.get('/reports/daily-close?day=manana').status_code == 400

    def test_seller_cannot_close_day(self, login):
        client = login('seller-a', 'SELLER', 'F-A')
        assert client.get('/reports/daily-close').status_code == 200
        assert client.post('/reports/daily-close/close', json={}).status_code == 403

    def test_global_summary_for_organization_roles(self, login, seed_product):
        product_a = seed_product(franchise_id='F-A', price='10.00')
        product_b = seed_product(franchise_id='F-B', price='99.00')
        _create_sale(login('seller-a', 'SELLER', 'F-A'), product_a, 1)
        _create_sale(login('seller-b', 'SELLER', 'F-B'), product_b, 1)

        assert login('fo-a', 'FRANCHISE_OWNER', 'F-A').get('/reports/global/summary').status_code == 403

        data = login('owner-1', 'OWNER').get('/reports/global/summary').get_json()
        assert [(row['franchise_id'], row['total_value']) for row in data['by_franchise']] == [
            ('F-B', '99.00'), ('F-A', '10.00'),
        ]
        assert [row['product_id'] for row in data['top_products']] == [product_b, product_a]
        assert data['from'] is None
