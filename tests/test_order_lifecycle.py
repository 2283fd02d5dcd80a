"""
Order lifecycle tests: move_order, transition validation and history.

Covers:
    1. Operator finalising PED-2024-001 (notifications, delivery date, history)
    2. Transition table enforcement
    3. Permission and referential failures leave no trace
    4. verify_history on seeded and broken histories
"""

import pytest

from app.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    TransitionError,
    ValidationError,
)
from app.models import db
from app.models.audit import AuditLog
from app.models.notification import Notification
from app.models.order import Order
from app.services import stage_service
from app.services.order_lifecycle import (
    available_transitions,
    initial_stage,
    move_order,
    validate_transition,
    verify_history,
)


def _order(order_id="processo-001"):
    return db.session.get(Order, order_id)


# ═══════════════════════════════════════════════════════════════════════════
#  Operator finalisation
# ═══════════════════════════════════════════════════════════════════════════

class TestOperatorFinalises:
    def test_finalise_notifies_admins_and_supervisors(self, operator):
        before = Notification.query.count()
        result = move_order(operator, "processo-001", "etapa-entrega", "Entregue ao cliente")

        assert result["previous_stage_id"] == "etapa-producao"
        assert result["new_stage_id"] == "etapa-entrega"
        assert result["notifications_created"] == 2

        created = Notification.query.filter_by(order_id="processo-001", type="system").all()
        assert {n.recipient_user_id for n in created} == {"user-admin", "user-supervisor"}
        assert Notification.query.count() == before + 2
        assert all("PED-2024-001" in n.message for n in created)

    def test_finalise_sets_delivery_and_location(self, operator):
        result = move_order(operator, "processo-001", "etapa-entrega")
        order = _order()
        assert order.delivered_at is not None
        assert result["delivered_at"] is not None
        assert order.physical_location == "delivered"

    def test_history_grows_by_one_and_stays_consistent(self, operator):
        order = _order()
        assert len(order.movements) == 4
        move_order(operator, "processo-001", "etapa-entrega", "Finalizado")

        order = _order()
        assert len(order.movements) == 5
        last = order.movements[-1]
        assert last.previous_stage_id == "etapa-producao"
        assert last.new_stage_id == "etapa-entrega"
        assert last.user_id == "user-operador"
        assert last.user_name == "Maria Operadora"
        assert last.comment == "Finalizado"
        assert last.previous_location == "hall"
        assert last.new_location == "delivered"
        assert verify_history(order)

    def test_finalise_writes_audit(self, operator):
        move_order(operator, "processo-001", "etapa-entrega")
        log = AuditLog.query.filter_by(entity_id="processo-001", action="order.finalize").one()
        assert log.actor_user_id == "user-operador"
        assert log.diff["current_stage_id"] == {"old": "etapa-producao", "new": "etapa-entrega"}

    def test_supervisor_finalising_sends_no_notification(self, supervisor):
        result = move_order(supervisor, "processo-001", "etapa-entrega")
        assert result["notifications_created"] == 0

    def test_inactive_supervisor_is_not_notified(self, operator, supervisor):
        supervisor.is_active = False
        db.session.commit()
        result = move_order(operator, "processo-001", "etapa-entrega")
        assert result["notifications_created"] == 1

    def test_delivery_date_kept_on_repeat_move(self, admin):
        order = _order("processo-005")
        delivered = order.delivered_at
        move_order(admin, "processo-005", "etapa-entrega", "Revisado")
        assert _order("processo-005").delivered_at == delivered


# ═══════════════════════════════════════════════════════════════════════════
#  Transitions
# ═══════════════════════════════════════════════════════════════════════════

class TestTransitions:
    def test_no_transition_rows_means_unrestricted(self, admin):
        order = _order("processo-004")
        targets = {s.id for s in available_transitions(order)}
        assert targets == {"etapa-lead", "etapa-venda", "etapa-pagamento",
                           "etapa-producao", "etapa-expedicao", "etapa-entrega"}

    def test_configured_transitions_are_enforced(self, admin):
        stage_service.set_transitions(admin, "etapa-venda", ["etapa-pagamento"])

        with pytest.raises(TransitionError) as exc:
            move_order(admin, "processo-002", "etapa-producao")
        assert exc.value.from_stage == "etapa-venda"
        assert exc.value.allowed == ["etapa-pagamento"]
        assert len(_order("processo-002").movements) == 2

        move_order(admin, "processo-002", "etapa-pagamento")
        assert _order("processo-002").current_stage_id == "etapa-pagamento"

    def test_staying_in_current_stage_is_always_allowed(self, admin):
        stage_service.set_transitions(admin, "etapa-venda", ["etapa-pagamento"])
        order = _order("processo-002")
        assert validate_transition(order, order.current_stage)["valid"]

    def test_inactive_target_is_rejected(self, admin):
        stage_service.update_stage(admin, "etapa-expedicao", {"is_active": False})
        with pytest.raises(ValidationError):
            move_order(admin, "processo-001", "etapa-expedicao")
        assert "etapa-expedicao" not in {s.id for s in available_transitions(_order())}

    def test_initial_stage_skips_inactive(self, admin):
        move_order(admin, "processo-004", "etapa-venda")
        stage_service.update_stage(admin, "etapa-lead", {"is_active": False})
        assert initial_stage(admin.tenant_id).id == "etapa-venda"


# ═══════════════════════════════════════════════════════════════════════════
#  Failures
# ═══════════════════════════════════════════════════════════════════════════

class TestMoveFailures:
    def test_reader_cannot_move(self, reader):
        with pytest.raises(PermissionDeniedError):
            move_order(reader, "processo-001", "etapa-entrega")
        assert _order().current_stage_id == "etapa-producao"

    def test_unknown_order(self, admin):
        with pytest.raises(NotFoundError):
            move_order(admin, "processo-999", "etapa-venda")

    def test_unknown_stage(self, admin):
        with pytest.raises(NotFoundError):
            move_order(admin, "processo-001", "etapa-inexistente")

    def test_other_tenant_order_is_not_found(self, admin, other_tenant):
        with pytest.raises(NotFoundError):
            move_order(admin, "other-order", "etapa-venda")
        with pytest.raises(NotFoundError):
            move_order(admin, "processo-001", "other-stage")

    def test_invalid_location(self, admin):
        with pytest.raises(ValidationError):
            move_order(admin, "processo-001", "etapa-expedicao", new_location="moon")

    def test_new_location_is_recorded(self, admin):
        move_order(admin, "processo-001", "etapa-expedicao", new_location="shipping")
        order = _order()
        assert order.physical_location == "shipping"
        assert order.movements[-1].new_location == "shipping"

    def test_leaving_delivery_resets_location(self, admin):
        move_order(admin, "processo-005", "etapa-expedicao", "Devolvido")
        order = _order("processo-005")
        assert order.physical_location == "yard"
        assert order.movements[-1].previous_location == "delivered"
        assert order.movements[-1].new_location == "yard"
        assert order.delivered_at is not None

    def test_leaving_delivery_with_explicit_location(self, admin):
        move_order(admin, "processo-005", "etapa-expedicao", new_location="shipping")
        assert _order("processo-005").physical_location == "shipping"


# ═══════════════════════════════════════════════════════════════════════════
#  History verification
# ═══════════════════════════════════════════════════════════════════════════

class TestVerifyHistory:
    def test_seeded_histories_are_consistent(self, seeded):
        for order in Order.query.all():
            assert verify_history(order), order.order_number

    def test_broken_chain_is_detected(self, seeded):
        order = _order()
        order.movements[2].previous_stage_id = "etapa-lead"
        assert not verify_history(order)

    def test_mismatched_current_stage_is_detected(self, seeded):
        order = _order()
        order.current_stage_id = "etapa-lead"
        assert not verify_history(order)
