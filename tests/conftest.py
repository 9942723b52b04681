import pytest
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from franchise_pos import create_app
from franchise_pos.database import build_engine, create_schema, get_session
from franchise_pos.models import Product
from franchise_pos.policy import Actor, Role
from franchise_pos.store import MemoryStore, SqlAlchemyStore


FRANCHISE_A = 'F-A'
FRANCHISE_B = 'F-B'
CARD = '123456789012'


# =====================================================
# STORES
# =====================================================

@pytest.fixture(scope='function')
def memory_store():
    """Fresh in-process store."""
    return MemoryStore()


@pytest.fixture(scope='function')
def engine(tmp_path):
    """File-backed SQLite engine so several sessions can see each other's commits."""
    engine = build_engine(f"sqlite:///{tmp_path / 'pos.db'}")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope='function')
def session_factory(engine):
    return sessionmaker(autoflush=False, bind=engine)


@pytest.fixture(scope='function')
def sql_store(session_factory):
    """SqlAlchemyStore over its own session."""
    session = session_factory()
    yield SqlAlchemyStore(session)
    session.close()


@pytest.fixture(scope='function', params=['memory', 'sqlalchemy'])
def store(request):
    """Runs the test once per Store implementation."""
    if request.param == 'memory':
        return request.getfixturevalue('memory_store')
    return request.getfixturevalue('sql_store')


@pytest.fixture(scope='function')
def make_product():
    """Factory: insert a product directly through the store."""
    def _make_product(store, franchise_id=FRANCHISE_A, name='Yerba Mate 1kg', price='100.00',
                      stock=10, missing=0, is_active=True, sku=None):
        with store.transaction():
            product = store.add_product(Product(
                franchise_id=franchise_id,
                name=name,
                sku=sku,
                price=Decimal(price),
                stock=stock,
                missing=missing,
                is_active=is_active
            ))
        return product
    return _make_product


# =====================================================
# ACTORS
# =====================================================

@pytest.fixture
def owner():
    return Actor(user_id='owner-1', role=Role.OWNER)


@pytest.fixture
def partner():
    return Actor(user_id='partner-1', role=Role.PARTNER)


@pytest.fixture
def franchise_owner_a():
    return Actor(user_id='fo-a', role=Role.FRANCHISE_OWNER, franchise_id=FRANCHISE_A)


@pytest.fixture
def seller_a():
    return Actor(user_id='seller-a', role=Role.SELLER, franchise_id=FRANCHISE_A)


@pytest.fixture
def seller_b():
    return Actor(user_id='seller-b', role=Role.SELLER, franchise_id=FRANCHISE_B)


@pytest.fixture
def franchise_owner_b():
    return Actor(user_id='fo-b', role=Role.FRANCHISE_OWNER, franchise_id=FRANCHISE_B)


# =====================================================
# FLASK APP
# =====================================================

@pytest.fixture(scope='function')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    return create_app('config.TestConfig')


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def login(client):
    """Put an actor into the session cookie, as the identity service would."""
    def _login(user_id, role, franchise_id=None):
        with client.session_transaction() as sess:
            sess['user_id'] = user_id
            sess['role'] = role
            if franchise_id:
                sess['franchise_id'] = franchise_id
            else:
                sess.pop('franchise_id', None)
        return client
    return _login


@pytest.fixture(scope='function')
def seed_product(app, make_product):
    """Insert a product into the app database and return its id."""
    def _seed_product(**kwargs):
        with app.app_context():
            product = make_product(SqlAlchemyStore(get_session()), **kwargs)
            return product.id
    return _seed_product
