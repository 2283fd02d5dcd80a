"""
Role-based permission tests.

Tests cover:
  - Static role -> codename table
  - Deny-by-default for unknown roles and codenames
  - check_permission() ANY semantics and inactive users
"""

import pytest

from app.core.exceptions import PermissionDeniedError
from app.services.permission_service import (
    ALL_CODENAMES,
    ROLE_PERMISSIONS,
    check_permission,
    get_role_permissions,
    has_any_permission,
    has_permission,
    user_has_permission,
)


class _Actor:
    def __init__(self, role, is_active=True):
        self.id = f"user-{role}"
        self.role = role
        self.is_active = is_active


EXPECTED_ROLES = {
    "admin": {
        "usuarios.criar", "usuarios.editar", "usuarios.excluir", "usuarios.visualizar",
        "etapas.criar", "etapas.editar", "etapas.excluir", "etapas.reordenar",
        "processos.criar", "processos.editar", "processos.excluir",
        "processos.visualizar", "processos.mover", "processos.finalizar",
        "clientes.criar", "clientes.editar", "clientes.excluir", "clientes.visualizar",
        "relatorios.todos", "configuracoes.editar", "branding.editar", "logs.visualizar",
    },
    "supervisor": {
        "processos.criar", "processos.editar", "processos.visualizar",
        "processos.mover", "processos.finalizar",
        "clientes.criar", "clientes.editar", "clientes.visualizar",
        "relatorios.setor", "usuarios.visualizar",
    },
    "operator": {
        "processos.visualizar", "processos.mover", "processos.finalizar", "clientes.visualizar",
    },
    "reader": {"processos.visualizar", "clientes.visualizar", "relatorios.setor"},
}


class TestRoleTable:
    @pytest.mark.parametrize("role", sorted(EXPECTED_ROLES))
    def test_role_grants(self, role):
        assert get_role_permissions(role) == EXPECTED_ROLES[role]

    def test_all_codenames(self):
        assert ALL_CODENAMES == frozenset().union(*EXPECTED_ROLES.values())
        assert set(ROLE_PERMISSIONS) == set(EXPECTED_ROLES)

    def test_admin_holds_every_codename_but_sector_reports(self):
        assert get_role_permissions("admin") == ALL_CODENAMES - {"relatorios.setor"}
        assert has_permission("admin", "relatorios.todos")

    @pytest.mark.parametrize("role", ["supervisor", "operator", "reader"])
    def test_other_roles_are_subsets_of_admin(self, role):
        assert ROLE_PERMISSIONS[role] - {"relatorios.setor"} <= ROLE_PERMISSIONS["admin"]

    def test_only_admin_manages_users_and_stages(self):
        for codename in ("usuarios.criar", "usuarios.excluir", "etapas.criar", "etapas.reordenar"):
            holders = {r for r, perms in ROLE_PERMISSIONS.items() if codename in perms}
            assert holders == {"admin"}

    def test_operator_can_move_and_finalize_but_not_create(self):
        assert has_permission("operator", "processos.mover")
        assert has_permission("operator", "processos.finalizar")
        assert not has_permission("operator", "processos.criar")
        assert not has_permission("operator", "processos.editar")

    def test_reader_is_read_only(self):
        perms = get_role_permissions("reader")
        assert "processos.visualizar" in perms
        assert not any(p.endswith((".criar", ".editar", ".excluir", ".mover")) for p in perms)

    def test_supervisor_sees_sector_reports_only(self):
        assert has_permission("supervisor", "relatorios.setor")
        assert not has_permission("supervisor", "relatorios.todos")


class TestDenyByDefault:
    def test_unknown_role_has_nothing(self):
        assert get_role_permissions("root") == frozenset()
        assert not has_permission("root", "processos.visualizar")

    def test_none_role(self):
        assert not has_permission(None, "processos.visualizar")

    def test_unknown_codename(self):
        assert not has_permission("admin", "processos.teleportar")

    def test_any_semantics(self):
        assert has_any_permission("reader", ["relatorios.todos", "relatorios.setor"])
        assert not has_any_permission("operator", ["relatorios.todos", "relatorios.setor"])
        assert not has_any_permission("admin", [])


class TestCheckPermission:
    def test_passes_silently(self):
        check_permission(_Actor("admin"), "usuarios.criar")

    def test_raises_with_role_and_codenames(self):
        with pytest.raises(PermissionDeniedError) as exc:
            check_permission(_Actor("operator"), "usuarios.criar", "usuarios.editar")
        assert exc.value.role == "operator"
        assert exc.value.codenames == ("usuarios.criar", "usuarios.editar")

    def test_inactive_user_is_denied(self):
        with pytest.raises(PermissionDeniedError):
            check_permission(_Actor("admin", is_active=False), "processos.visualizar")
        assert not user_has_permission(_Actor("admin", is_active=False), "processos.visualizar")

    def test_missing_actor_is_denied(self):
        with pytest.raises(PermissionDeniedError):
            check_permission(None, "processos.visualizar")
