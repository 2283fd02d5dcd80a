"""
Permission Service: static role-based access control.

Each user carries exactly one role. The role → codename table below is
fixed for the lifetime of the process; it is not stored in the database.

Evaluation is deny-by-default:
  - an unknown role or codename yields False, never an exception
  - inactive users hold no permissions
  - check_permission() passes when the role grants ANY of the codenames
"""

import logging

from app.core.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)


ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": frozenset({
        "usuarios.criar", "usuarios.editar", "usuarios.excluir", "usuarios.visualizar",
        "etapas.criar", "etapas.editar", "etapas.excluir", "etapas.reordenar",
        "processos.criar", "processos.editar", "processos.excluir",
        "processos.visualizar", "processos.mover", "processos.finalizar",
        "clientes.criar", "clientes.editar", "clientes.excluir", "clientes.visualizar",
        "relatorios.todos",
        "configuracoes.editar",
        "branding.editar",
        "logs.visualizar",
    }),
    "supervisor": frozenset({
        "processos.criar", "processos.editar", "processos.visualizar",
        "processos.mover", "processos.finalizar",
        "clientes.criar", "clientes.editar", "clientes.visualizar",
        "relatorios.setor",
        "usuarios.visualizar",
    }),
    "operator": frozenset({
        "processos.visualizar", "processos.mover", "processos.finalizar",
        "clientes.visualizar",
    }),
    "reader": frozenset({
        "processos.visualizar",
        "clientes.visualizar",
        "relatorios.setor",
    }),
}

ALL_CODENAMES: frozenset[str] = frozenset().union(*ROLE_PERMISSIONS.values())


def get_role_permissions(role: str | None) -> frozenset[str]:
    """Return the codenames granted to *role* (empty for unknown roles)."""
    return ROLE_PERMISSIONS.get(role or "", frozenset())


def has_permission(role: str | None, codename: str) -> bool:
    """Pure lookup: does *role* grant *codename*?"""
    return codename in get_role_permissions(role)


def has_any_permission(role: str | None, codenames) -> bool:
    granted = get_role_permissions(role)
    return any(c in granted for c in codenames)


def user_has_permission(user, codename: str) -> bool:
    if user is None or not user.is_active:
        return False
    return has_permission(user.role, codename)


def check_permission(actor, *codenames: str) -> None:
    """
    Authorization guard for every mutating operation.

    Raises PermissionDeniedError unless *actor* is active and its role holds
    at least one of *codenames*. Must be called before any read-for-write.
    """
    if actor is not None and actor.is_active and has_any_permission(actor.role, codenames):
        return
    logger.warning(
        "Permission denied: user=%s role=%s required=%s",
        getattr(actor, "id", None), getattr(actor, "role", None), codenames,
    )
    raise PermissionDeniedError(codenames, role=getattr(actor, "role", None))
