"""
Integration tests for SqlAlchemyStore on a file-backed SQLite database.
Two sessions stand in for two concurrent requests.
"""

import threading

import pytest
from sqlalchemy.exc import IntegrityError

from franchise_pos.exceptions import InsufficientStockError, ValidationError
from franchise_pos.models import Product, SaleStatus
from franchise_pos.services import sales_service
from franchise_pos.store import SqlAlchemyStore
from franchise_pos.utils.clock import utcnow

CARD = '123456789012'


@pytest.fixture
def two_stores(session_factory):
    session_a, session_b = session_factory(), session_factory()
    yield SqlAlchemyStore(session_a), SqlAlchemyStore(session_b)
    session_a.close()
    session_b.close()


def _sell(store, product_id, qty, actor):
    return sales_service.create_sale(
        store, 'F-A', actor.user_id, [{'product_id': product_id, 'qty': qty}], CARD, actor=actor
    )


class TestConditionalWrites:
    """The WHERE clause, not the Python-side snapshot, decides."""

    def test_stale_read_cannot_oversell(self, two_stores, make_product, seller_a):
        store_a, store_b = two_stores
        product_id = make_product(store_a, stock=5).id

        # B loads the product while 5 units are still on hand
        assert store_b.get_product(product_id).stock == 5

        _sell(store_a, product_id, 3, seller_a)

        with pytest.raises(InsufficientStockError):
            _sell(store_b, product_id, 3, seller_a)

        product = store_b.get_product(product_id)
        assert product.stock == 2
        assert product.missing == 3
        assert len(store_b.find_sales('F-A')) == 1

    def test_decrement_checks_franchise(self, sql_store, make_product):
        product_id = make_product(sql_store, franchise_id='F-B').id
        with sql_store.transaction():
            assert not sql_store.decrement_stock(product_id, 'F-A', 1)
        assert sql_store.get_product(product_id).stock == 10

    def test_increment_floors_missing(self, sql_store, make_product):
        product_id = make_product(sql_store, stock=0, missing=3).id
        with sql_store.transaction():
            assert sql_store.increment_stock(product_id, 5)
        product = sql_store.get_product(product_id)
        assert (product.stock, product.missing) == (5, 0)

    def test_reduce_stock_guard(self, sql_store, make_product):
        product_id = make_product(sql_store, stock=2, missing=1).id
        with sql_store.transaction():
            assert not sql_store.reduce_stock(product_id, 3)
            assert sql_store.reduce_stock(product_id, 2)
        product = sql_store.get_product(product_id)
        assert (product.stock, product.missing) == (0, 1)

    def test_close_sale_only_from_completed(self, two_stores, make_product, seller_a, franchise_owner_a):
        store_a, store_b = two_stores
        product_id = make_product(store_a, stock=5).id
        sale_id = _sell(store_a, product_id, 2, seller_a).id

        assert store_b.get_sale(sale_id).status == SaleStatus.COMPLETED
        sales_service.cancel_sale(store_a, sale_id, franchise_owner_a)

        # B still holds the COMPLETED snapshot; the guarded UPDATE refuses
        with store_b.transaction():
            assert not store_b.close_sale(sale_id, SaleStatus.REFUNDED, 'fo-a', None, utcnow())

        with pytest.raises(ValidationError):
            sales_service.refund_sale(store_b, sale_id, franchise_owner_a)

        assert store_b.get_sale(sale_id).status == SaleStatus.CANCELED
        assert store_b.get_product(product_id).stock == 5


class TestConcurrentSessions:
    """Threads with their own sessions race on the same row; the database arbitrates."""

    def _race(self, session_factory, workers, work):
        barrier = threading.Barrier(workers)
        results, conflicts, errors = [], [], []

        def attempt():
            store = SqlAlchemyStore(session_factory())
            try:
                barrier.wait()
                results.append(work(store))
            except (InsufficientStockError, ValidationError) as e:
                conflicts.append(e)
            except Exception as e:  # surfaced through the assertion below
                errors.append(e)
            finally:
                store.session.close()

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        return results, conflicts

    def test_concurrent_sales_never_oversell(self, session_factory, sql_store, make_product, seller_a):
        product_id = make_product(sql_store, stock=7).id

        sales, conflicts = self._race(session_factory, 6, lambda store: _sell(store, product_id, 2, seller_a).id)

        assert len(sales) == 3
        assert len(conflicts) == 3
        assert all(isinstance(e, InsufficientStockError) for e in conflicts)
        product = sql_store.get_product(product_id)
        assert (product.stock, product.missing) == (1, 6)
        assert sorted(s.id for s in sql_store.find_sales('F-A')) == sorted(sales)

    def test_concurrent_reversals_credit_once(self, session_factory, sql_store, make_product, seller_a,
                                              franchise_owner_a):
        product_id = make_product(sql_store, stock=5).id
        sale_id = _sell(sql_store, product_id, 3, seller_a).id

        closed, conflicts = self._race(
            session_factory, 4,
            lambda store: sales_service.cancel_sale(store, sale_id, franchise_owner_a).status
        )

        assert closed == [SaleStatus.CANCELED]
        assert len(conflicts) == 3
        product = sql_store.get_product(product_id)
        assert (product.stock, product.missing) == (5, 0)


class TestTransactions:
    """Test commit/rollback behavior of transaction()."""

    def test_rollback_on_error(self, sql_store):
        with pytest.raises(RuntimeError):
            with sql_store.transaction():
                sql_store.add_product(Product(franchise_id='F-A', name='Temp', price=1, stock=1))
                raise RuntimeError('boom')

        total, items = sql_store.query_products('F-A', is_active=None)
        assert total == 0
        assert items == []

    def test_check_constraint_blocks_negative_stock(self, sql_store):
        with pytest.raises(IntegrityError):
            with sql_store.transaction():
                sql_store.add_product(Product(franchise_id='F-A', name='Bad', price=1, stock=-1))
