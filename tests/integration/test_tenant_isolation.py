"""
Critical integration tests for franchise isolation.
These tests ensure that data is properly isolated between franchises.
"""

CARD = '123456789012'


def _create_sale(client, product_id, qty=1):
    return client.post('/sales/', json={'items': [{'product_id': product_id, 'qty': qty}], 'card_number': CARD})


class TestProductIsolation:
    """Test product isolation between franchises."""

    def test_franchise_a_cannot_see_franchise_b_products(self, login, seed_product):
        """Listing is pinned to the caller's franchise."""
        seed_product(name='Product A', franchise_id='F-A')
        seed_product(name='Product B', franchise_id='F-B')

        client = login('seller-a', 'SELLER', 'F-A')
        listing = client.get('/products/').get_json()
        assert [p['name'] for p in listing['items']] == ['Product A']

        assert client.get('/products/?franchise_id=F-B').status_code == 403

    def test_foreign_product_by_id_is_forbidden(self, login, seed_product):
        product_b = seed_product(franchise_id='F-B')
        client = login('seller-a', 'SELLER', 'F-A')
        assert client.get(f'/products/{product_b}').status_code == 403

    def test_foreign_product_cannot_be_restocked(self, login, seed_product):
        product_b = seed_product(franchise_id='F-B', stock=4)
        client = login('fo-a', 'FRANCHISE_OWNER', 'F-A')
        assert client.post(f'/products/{product_b}/restock', json={'qty': 5}).status_code == 403

        client = login('owner-1', 'OWNER')
        assert client.get(f'/products/{product_b}').get_json()['stock'] == 4

    def test_same_sku_in_different_franchises(self, login):
        client = login('owner-1', 'OWNER')
        for franchise_id in ('F-A', 'F-B'):
            response = client.post('/products/', json={
                'name': 'Shared', 'price': 10, 'sku': 'SHARED-SKU', 'franchise_id': franchise_id
            })
            assert response.status_code == 201


class TestSaleIsolation:
    """Test sale isolation between franchises."""

    def test_foreign_product_in_sale_is_rejected(self, login, seed_product):
        product_b = seed_product(franchise_id='F-B', stock=4)
        client = login('seller-a', 'SELLER', 'F-A')

        response = _create_sale(client, product_b)
        assert response.status_code == 400
        assert response.get_json()['product_ids'] == [product_b]

        client = login('owner-1', 'OWNER')
        assert client.get(f'/products/{product_b}').get_json()['stock'] == 4

    def test_cross_franchise_get_sale_is_forbidden(self, login, seed_product):
        product_b = seed_product(franchise_id='F-B')
        sale_b = _create_sale(login('seller-b', 'SELLER', 'F-B'), product_b).get_json()

        client = login('seller-a', 'SELLER', 'F-A')
        response = client.get(f"/sales/{sale_b['id']}")
        assert response.status_code == 403
        assert response.get_json()['error'] == 'ForbiddenError'

        assert client.get('/sales/').get_json() == []

    def test_cross_franchise_reversal_is_forbidden(self, login, seed_product):
        product_b = seed_product(franchise_id='F-B', stock=5)
        sale_b = _create_sale(login('seller-b', 'SELLER', 'F-B'), product_b, 2).get_json()

        client = login('fo-a', 'FRANCHISE_OWNER', 'F-A')
        assert client.post(f"/sales/{sale_b['id']}/cancel").status_code == 403

        client = login('partner-1', 'PARTNER')
        sale = client.get(f"/sales/{sale_b['id']}").get_json()
        assert sale['status'] == 'COMPLETED'
        assert client.get(f'/products/{product_b}').get_json()['stock'] == 3

    def test_summary_is_franchise_scoped(self, login, seed_product):
        product_a = seed_product(franchise_id='F-A', price='10.00')
        product_b = seed_product(franchise_id='F-B', price='99.00')
        _create_sale(login('seller-a', 'SELLER', 'F-A'), product_a, 1)
        _create_sale(login('seller-b', 'SELLER', 'F-B'), product_b, 1)

        client = login('owner-1', 'OWNER')
        assert client.get('/sales/summary').status_code == 403

        summary_a = client.get('/sales/summary?franchise_id=F-A').get_json()
        summary_b = client.get('/sales/summary?franchise_id=F-B').get_json()
        assert (summary_a['sales_count'], summary_a['total_sold']) == (1, '10.00')
        assert (summary_b['sales_count'], summary_b['total_sold']) == (1, '99.00')
