"""
Pipeline stage and client tests.
"""

import pytest

from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import db
from app.models.order import Order
from app.models.pipeline import Stage
from app.services import chat_service, client_service, stage_service


# ═══════════════════════════════════════════════════════════════
# Stages
# ═══════════════════════════════════════════════════════════════

class TestStages:
    def test_list_in_pipeline_order(self, admin):
        names = [s["name"] for s in stage_service.list_stages(admin)]
        assert names == ["Lead", "Venda", "Pagamento", "Produção", "Expedição", "Entregue"]

    def test_create_appends_at_end(self, admin):
        stage = stage_service.create_stage(admin, {"name": "Qualidade", "color": "#000000"})
        assert stage["sort_order"] == 7

    def test_duplicate_name(self, admin):
        with pytest.raises(ConflictError):
            stage_service.create_stage(admin, {"name": "Venda"})

    def test_negative_notify_days(self, admin):
        with pytest.raises(ValidationError):
            stage_service.update_stage(admin, "etapa-venda", {"notify_after_days": -2})

    def test_supervisor_cannot_manage_stages(self, supervisor):
        with pytest.raises(PermissionDeniedError):
            stage_service.create_stage(supervisor, {"name": "Qualidade"})

    def test_delete_blocked_while_orders_present(self, admin):
        with pytest.raises(ConflictError):
            stage_service.delete_stage(admin, "etapa-venda")
        assert db.session.get(Stage, "etapa-venda") is not None

    def test_delete_empty_stage(self, admin):
        stage_service.set_transitions(admin, "etapa-producao", ["etapa-expedicao", "etapa-entrega"])
        stage_service.delete_stage(admin, "etapa-expedicao")
        assert db.session.get(Stage, "etapa-expedicao") is None
        assert db.session.get(Stage, "etapa-producao").allowed_target_ids == ["etapa-entrega"]

    def test_deactivate_blocked_while_orders_present(self, admin):
        with pytest.raises(ConflictError):
            stage_service.update_stage(admin, "etapa-venda", {"is_active": False})
        assert db.session.get(Stage, "etapa-venda").is_active is True

    def test_deactivate_empty_stage(self, admin):
        stage = stage_service.update_stage(admin, "etapa-expedicao", {"is_active": "false"})
        assert stage["is_active"] is False

    @pytest.mark.parametrize("raw,expected", [
        ("false", False), ("0", False), ("Off", False), (0, False),
        ("true", True), ("1", True), (" yes ", True), (True, True),
    ])
    def test_boolean_flags_are_coerced(self, admin, raw, expected):
        stage = stage_service.update_stage(admin, "etapa-venda", {"allow_edit": raw})
        assert stage["allow_edit"] is expected
        assert db.session.get(Stage, "etapa-venda").allow_edit is expected

    @pytest.mark.parametrize("raw", ["maybe", 2, None, []])
    def test_invalid_boolean_flag(self, admin, raw):
        with pytest.raises(ValidationError):
            stage_service.create_stage(admin, {"name": "Qualidade", "is_terminal": raw})
        assert Stage.query.filter_by(name="Qualidade").count() == 0

    def test_reorder(self, admin):
        ids = ["etapa-venda", "etapa-lead", "etapa-pagamento",
               "etapa-producao", "etapa-expedicao", "etapa-entrega"]
        stages = stage_service.reorder_stages(admin, ids)
        assert [s["id"] for s in stages] == ids

    @pytest.mark.parametrize("ids", [
        ["etapa-venda", "etapa-lead"],
        ["etapa-lead"] * 6,
        ["etapa-lead", "etapa-venda", "etapa-pagamento", "etapa-producao", "etapa-expedicao", "other"],
    ])
    def test_reorder_must_name_every_stage_once(self, admin, ids):
        with pytest.raises(ValidationError):
            stage_service.reorder_stages(admin, ids)

    def test_transitions_cannot_target_self(self, admin):
        with pytest.raises(ValidationError):
            stage_service.set_transitions(admin, "etapa-venda", ["etapa-venda"])

    def test_transitions_to_other_tenant_stage(self, admin, other_tenant):
        with pytest.raises(NotFoundError):
            stage_service.set_transitions(admin, "etapa-venda", ["other-stage"])

    def test_clearing_transitions(self, admin):
        stage_service.set_transitions(admin, "etapa-venda", ["etapa-pagamento"])
        stage = stage_service.set_transitions(admin, "etapa-venda", [])
        assert stage["allowed_target_ids"] == []


# ═══════════════════════════════════════════════════════════════
# Clients
# ═══════════════════════════════════════════════════════════════

class TestClients:
    def test_create_and_get(self, supervisor):
        client = client_service.create_client(supervisor, {"name": " Nova Loja ", "email": "loja@nova.com"})
        assert client["name"] == "Nova Loja"
        detail = client_service.get_client(supervisor, client["id"])
        assert detail["order_count"] == 0

    def test_invalid_email(self, admin):
        with pytest.raises(ValidationError):
            client_service.create_client(admin, {"name": "X", "email": "not-an-email"})

    def test_rename_propagates(self, admin):
        chat_service.send_message(admin, "cliente-001", "Olá")
        client_service.update_client(admin, "cliente-001", {"name": "ABC Holding"})
        db.session.expire_all()
        assert db.session.get(Order, "processo-001").client_name == "ABC Holding"
        assert chat_service.list_conversations(admin)[0]["client_name"] == "ABC Holding"
        assert chat_service.list_messages(admin, "cliente-001")[0]["client_name"] == "ABC Holding"

    def test_delete_blocked_by_orders(self, admin):
        with pytest.raises(ConflictError):
            client_service.delete_client(admin, "cliente-001")

    def test_delete_unused_client(self, admin):
        client = client_service.create_client(admin, {"name": "Temporário"})
        chat_service.send_message(admin, client["id"], "oi")
        client_service.delete_client(admin, client["id"])
        with pytest.raises(NotFoundError):
            client_service.get_client(admin, client["id"])
        assert chat_service.list_conversations(admin) == []

    def test_supervisor_cannot_delete(self, supervisor):
        with pytest.raises(PermissionDeniedError):
            client_service.delete_client(supervisor, "cliente-004")

    def test_reader_sees_linked_clients_only(self, reader):
        assert [c["id"] for c in client_service.list_clients(reader)] == ["cliente-002", "cliente-001"]
        with pytest.raises(NotFoundError):
            client_service.get_client(reader, "cliente-003")

    def test_search_by_name(self, admin):
        assert [c["id"] for c in client_service.list_clients(admin, "startup")] == ["cliente-004"]
