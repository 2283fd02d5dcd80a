"""
Demo seed tests.
"""

from app.models import db
from app.models.auth import Tenant, User
from app.models.order import Order, OrderMovement
from app.models.pipeline import Stage
from app.services.order_lifecycle import move_order
from app.services.seed_service import seed_demo
from app.utils.crypto import verify_password


def test_counts():
    counts = seed_demo()
    assert counts == {"tenants": 1, "users": 4, "stages": 6, "clients": 5,
                      "orders": 5, "movements": 16, "notifications": 3}


def test_second_run_is_a_no_op(seeded):
    assert seed_demo()["tenants"] == 0
    assert Tenant.query.count() == 1


def test_reset_restores_demo_state(admin):
    move_order(admin, "processo-002", "etapa-pagamento")
    assert OrderMovement.query.count() == 17

    counts = seed_demo(reset=True)
    assert counts["orders"] == 5
    assert OrderMovement.query.count() == 16
    assert db.session.get(Order, "processo-002").current_stage_id == "etapa-venda"


def test_reset_keeps_other_tenants(other_tenant):
    seed_demo()
    seed_demo(reset=True)
    assert db.session.get(Tenant, "tenant-other") is not None
    assert db.session.get(Order, "other-order") is not None


def test_seeded_logins_and_pipeline(seeded):
    for user_id, password in (("user-admin", "admin"), ("user-leitor", "cliente")):
        assert verify_password(password, db.session.get(User, user_id).password_hash)
    terminal = Stage.query.filter_by(is_terminal=True).all()
    assert [s.id for s in terminal] == ["etapa-entrega"]
    assert terminal[0].allow_edit is False
