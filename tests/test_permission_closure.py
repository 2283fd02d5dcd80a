"""
Permission closure: every guarded operation, for every role lacking its
codenames, raises PermissionDeniedError and leaves the database untouched.

The role list per operation is derived from ROLE_PERMISSIONS, so a change
to the table moves the sweep with it.
"""

import pytest

from app.core.exceptions import PermissionDeniedError
from app.models import db
from app.models.audit import AuditLog
from app.models.auth import Session, User
from app.models.chat import ChatConversation, ChatMessage
from app.models.client import Client
from app.models.notification import Notification
from app.models.order import Order, OrderMovement
from app.models.pipeline import Stage, StageTransition
from app.models.settings import SystemSettings
from app.services import (
    client_service,
    order_service,
    report_service,
    settings_service,
    stage_service,
    user_service,
)
from app.services.order_lifecycle import move_order
from app.services.permission_service import ROLE_PERMISSIONS, has_any_permission

ROLES = ("admin", "supervisor", "operator", "reader")

_STAGE_IDS = ["etapa-entrega", "etapa-expedicao", "etapa-producao",
              "etapa-pagamento", "etapa-venda", "etapa-lead"]


def _other_user(actor):
    return "user-leitor" if actor.id != "user-leitor" else "user-operador"


# (name, codenames, call)
OPERATIONS = [
    ("create_user", ("usuarios.criar",), lambda a: user_service.create_user(a, {
        "name": "Novo Usuário", "email": "novo@processflow.com.br",
        "password": "senha-segura", "role": "operator"})),
    ("update_user", ("usuarios.editar",),
     lambda a: user_service.update_user(a, _other_user(a), {"name": "Renomeado"})),
    ("delete_user", ("usuarios.excluir",), lambda a: user_service.delete_user(a, _other_user(a))),
    ("reset_password", ("usuarios.editar",),
     lambda a: user_service.change_password(a, _other_user(a), "nova-senha-1")),
    ("list_users", ("usuarios.visualizar",), lambda a: user_service.list_users(a)),
    ("create_stage", ("etapas.criar",), lambda a: stage_service.create_stage(a, {"name": "Qualidade"})),
    ("update_stage", ("etapas.editar",),
     lambda a: stage_service.update_stage(a, "etapa-venda", {"name": "Vendido"})),
    ("delete_stage", ("etapas.excluir",), lambda a: stage_service.delete_stage(a, "etapa-expedicao")),
    ("reorder_stages", ("etapas.reordenar",), lambda a: stage_service.reorder_stages(a, _STAGE_IDS)),
    ("set_transitions", ("etapas.editar",),
     lambda a: stage_service.set_transitions(a, "etapa-venda", ["etapa-pagamento"])),
    ("create_order", ("processos.criar",), lambda a: order_service.create_order(a, {
        "order_number": "PED-2024-900", "client_id": "cliente-003",
        "expected_delivery_date": "2024-05-01"})),
    ("update_order", ("processos.editar",),
     lambda a: order_service.update_order(a, "processo-002", {"notes": "alterado"})),
    ("delete_order", ("processos.excluir",), lambda a: order_service.delete_order(a, "processo-002")),
    ("move_order", ("processos.mover", "processos.finalizar"),
     lambda a: move_order(a, "processo-002", "etapa-pagamento")),
    ("create_client", ("clientes.criar",), lambda a: client_service.create_client(a, {"name": "Nova Loja"})),
    ("update_client", ("clientes.editar",),
     lambda a: client_service.update_client(a, "cliente-001", {"name": "Renomeada"})),
    ("delete_client", ("clientes.excluir",), lambda a: client_service.delete_client(a, "cliente-005")),
    ("build_report", ("relatorios.todos", "relatorios.setor"),
     lambda a: report_service.build_report(a, "orders")),
    ("update_settings", ("configuracoes.editar",),
     lambda a: settings_service.update_settings(a, {"company_name": "Outra"})),
    ("update_branding", ("branding.editar",),
     lambda a: settings_service.update_branding(a, {"primary_color": "#000000"})),
]

DENIED = [
    pytest.param(role, call, id=f"{name}-{role}")
    for name, codenames, call in OPERATIONS
    for role in ROLES
    if not has_any_permission(role, codenames)
]


def _snapshot():
    return {
        "counts": {m.__name__: m.query.count() for m in (
            User, Session, Stage, StageTransition, Client, Order, OrderMovement,
            Notification, ChatConversation, ChatMessage, SystemSettings, AuditLog,
        )},
        "users": sorted((u.id, u.name, u.role, u.is_active, u.password_hash) for u in User.query),
        "stages": sorted((s.id, s.name, s.sort_order, s.is_active) for s in Stage.query),
        "transitions": sorted((t.from_stage_id, t.to_stage_id) for t in StageTransition.query),
        "clients": sorted((c.id, c.name) for c in Client.query),
        "orders": sorted((o.id, o.order_number, o.current_stage_id, o.notes) for o in Order.query),
    }


def test_every_role_is_denied_something_except_admin():
    denied_roles = {p.values[0] for p in DENIED}
    assert denied_roles == {"supervisor", "operator", "reader"}


def test_sweep_includes_reported_gaps():
    ids = {p.id for p in DENIED}
    assert {"delete_order-supervisor", "update_client-reader",
            "reorder_stages-operator", "set_transitions-operator"} <= ids


@pytest.mark.parametrize("codename", sorted(set().union(*(c for _, c, _ in OPERATIONS))))
def test_swept_codenames_exist(codename):
    assert any(codename in perms for perms in ROLE_PERMISSIONS.values())


@pytest.mark.parametrize("role,call", DENIED)
def test_denied_operation_leaves_no_trace(request, role, call):
    actor = request.getfixturevalue(role)
    before = _snapshot()

    with pytest.raises(PermissionDeniedError):
        call(actor)

    db.session.rollback()
    db.session.expire_all()
    assert _snapshot() == before
