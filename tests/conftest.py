"""
Shared pytest fixtures for the ProcessFlow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - seeded: Demo tenant loaded through the seed service
    - admin / supervisor / operator / reader: the seeded users, one per role
    - auth_headers: factory returning a Bearer header for a seeded role
    - other_tenant: a second tenant with its own admin, stage, client and order
"""

from datetime import date, datetime, timezone

import pytest

from app import create_app
from app.models import db as _db


DEMO_PASSWORDS = {
    "admin": ("admin@processflow.com.br", "admin"),
    "supervisor": ("supervisor@processflow.com.br", "supervisor"),
    "operator": ("operador@processflow.com.br", "operador"),
    "reader": ("cliente@processflow.com.br", "cliente"),
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Demo data ────────────────────────────────────────────────────────────


@pytest.fixture()
def seeded():
    """Load the demo tenant and return the seed counts."""
    from app.services.seed_service import seed_demo
    return seed_demo()


def _user(user_id):
    from app.models.auth import User
    return _db.session.get(User, user_id)


@pytest.fixture()
def admin(seeded):
    return _user("user-admin")


@pytest.fixture()
def supervisor(seeded):
    return _user("user-supervisor")


@pytest.fixture()
def operator(seeded):
    return _user("user-operador")


@pytest.fixture()
def reader(seeded):
    return _user("user-leitor")


def login(client, email, password, tenant_slug="demo"):
    return client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, "tenant_slug": tenant_slug},
    )


@pytest.fixture()
def auth_headers(client, seeded):
    """Return a callable: auth_headers("admin") -> {"Authorization": "Bearer ..."}."""
    cache = {}

    def _headers(role="admin"):
        if role not in cache:
            email, password = DEMO_PASSWORDS[role]
            res = login(client, email, password)
            assert res.status_code == 200, res.get_json()
            cache[role] = {"Authorization": f"Bearer {res.get_json()['access_token']}"}
        return cache[role]

    return _headers


@pytest.fixture()
def other_tenant():
    """A second tenant, isolated from the demo one."""
    from app.models.auth import Tenant, User
    from app.models.client import Client
    from app.models.order import Order, OrderMovement
    from app.models.pipeline import Stage
    from app.utils.crypto import hash_password

    t = Tenant(id="tenant-other", name="Other Corp", slug="other")
    _db.session.add(t)
    stage = Stage(id="other-stage", tenant_id=t.id, name="Inicio", sort_order=1)
    cl = Client(id="other-client", tenant_id=t.id, name="Other Client")
    user = User(
        id="other-admin", tenant_id=t.id, name="Other Admin", email="admin@other.com",
        password_hash=hash_password("otheradmin"), role="admin",
    )
    _db.session.add_all([stage, cl, user])
    order = Order(
        id="other-order", tenant_id=t.id, order_number="OTH-001", client_id=cl.id,
        client_name=cl.name, current_stage_id=stage.id, expected_delivery_date=date(2030, 1, 1),
    )
    order.movements.append(OrderMovement(
        sequence=0, previous_stage_id=None, new_stage_id=stage.id,
        user_id=user.id, user_name=user.name, created_at=datetime.now(timezone.utc),
    ))
    _db.session.add(order)
    _db.session.commit()
    return {"tenant": t, "user": user, "stage": stage, "client": cl, "order": order}
