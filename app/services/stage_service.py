"""
Stage Service: pipeline configuration.

Delete and deactivation are blocked while orders sit in the stage;
reorder must name every stage of the tenant exactly once. Boolean flags
accept JSON booleans or their usual string forms ("true", "0", ...).
"""

import logging

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import diff_fields, write_audit
from app.models.order import Order
from app.models.pipeline import Stage, StageTransition
from app.services.permission_service import check_permission

logger = logging.getLogger(__name__)


_EDITABLE = ("name", "description", "color", "is_active", "is_terminal",
             "allow_edit", "notify_after_days", "is_mandatory")
_BOOL_FIELDS = ("is_active", "is_terminal", "allow_edit", "is_mandatory")
_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def _load(actor, stage_id) -> Stage:
    stage = Stage.get_for_tenant(actor.tenant_id, stage_id)
    if stage is None:
        raise NotFoundError(resource="Stage", resource_id=stage_id)
    return stage


def _as_bool(value, field) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValidationError(f"{field} must be a boolean", details={field: "expected boolean"})


def _orders_in(tenant_id, stage) -> int:
    return Order.query_for_tenant(tenant_id).filter_by(current_stage_id=stage.id).count()


def _validate(tenant_id, values: dict, exclude_id=None) -> None:
    if "name" in values:
        name = (values["name"] or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        values["name"] = name
        q = Stage.query_for_tenant(tenant_id).filter(Stage.name == name)
        if exclude_id:
            q = q.filter(Stage.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(resource="Stage", field="name", value=name)
    if "notify_after_days" in values:
        try:
            values["notify_after_days"] = int(values["notify_after_days"] or 0)
        except (TypeError, ValueError) as exc:
            raise ValidationError("notify_after_days must be an integer",
                                  details={"notify_after_days": "invalid"}) from exc
        if values["notify_after_days"] < 0:
            raise ValidationError("notify_after_days must not be negative",
                                  details={"notify_after_days": "min 0"})
    for f in _BOOL_FIELDS:
        if f in values:
            values[f] = _as_bool(values[f], f)


def list_stages(actor, include_inactive=True) -> list[dict]:
    q = Stage.query_for_tenant(actor.tenant_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return [s.to_dict() for s in q.order_by(Stage.sort_order, Stage.name).all()]


def create_stage(actor, data: dict) -> dict:
    check_permission(actor, "etapas.criar")
    values = {f: data[f] for f in _EDITABLE if f in data}
    values.setdefault("name", "")
    _validate(actor.tenant_id, values)

    last = Stage.query_for_tenant(actor.tenant_id).order_by(Stage.sort_order.desc()).first()
    stage = Stage(tenant_id=actor.tenant_id, sort_order=(last.sort_order + 1) if last else 1, **values)
    db.session.add(stage)
    db.session.flush()
    write_audit(entity_type="stage", entity_id=stage.id, action="create", actor=actor,
                diff={"name": {"old": None, "new": stage.name}})
    db.session.commit()
    logger.info("Stage %s created by user=%s", stage.name, actor.id)
    return stage.to_dict()


def update_stage(actor, stage_id, data: dict) -> dict:
    check_permission(actor, "etapas.editar")
    stage = _load(actor, stage_id)
    values = {f: data[f] for f in _EDITABLE if f in data}
    _validate(actor.tenant_id, values, exclude_id=stage.id)
    if stage.is_active and values.get("is_active") is False:
        in_use = _orders_in(actor.tenant_id, stage)
        if in_use:
            raise ConflictError(
                resource="Stage", field="orders", value=str(in_use),
                message=f"Stage '{stage.name}' still holds {in_use} order(s)",
            )

    changes = diff_fields(stage, values, values.keys())
    if changes:
        write_audit(entity_type="stage", entity_id=stage.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    logger.info("Stage %s updated by user=%s fields=%s", stage.id, actor.id, sorted(changes))
    return stage.to_dict()


def delete_stage(actor, stage_id) -> None:
    check_permission(actor, "etapas.excluir")
    stage = _load(actor, stage_id)
    in_use = _orders_in(actor.tenant_id, stage)
    if in_use:
        raise ConflictError(
            resource="Stage", field="orders", value=str(in_use),
            message=f"Stage '{stage.name}' still holds {in_use} order(s)",
        )
    StageTransition.query.filter_by(to_stage_id=stage.id).delete(synchronize_session=False)
    write_audit(entity_type="stage", entity_id=stage.id, action="delete", actor=actor,
                diff={"name": {"old": stage.name, "new": None}})
    db.session.delete(stage)
    db.session.commit()
    logger.info("Stage %s deleted by user=%s", stage_id, actor.id)


def reorder_stages(actor, ordered_ids: list[str]) -> list[dict]:
    check_permission(actor, "etapas.reordenar")
    stages = {s.id: s for s in Stage.query_for_tenant(actor.tenant_id).all()}
    if len(ordered_ids or []) != len(set(ordered_ids or [])) or set(ordered_ids or []) != set(stages):
        raise ValidationError(
            "ordered_ids must list every stage exactly once",
            details={"expected": sorted(stages)},
        )
    old = [s.id for s in sorted(stages.values(), key=lambda s: s.sort_order)]
    for position, sid in enumerate(ordered_ids, start=1):
        stages[sid].sort_order = position
    write_audit(entity_type="stage", entity_id=actor.tenant_id, action="stage.reorder", actor=actor,
                diff={"order": {"old": old, "new": list(ordered_ids)}})
    db.session.commit()
    logger.info("Stages reordered by user=%s", actor.id)
    return list_stages(actor)


def set_transitions(actor, stage_id, target_ids: list[str]) -> dict:
    """Replace the allowed targets of a stage. An empty list means unrestricted."""
    check_permission(actor, "etapas.editar")
    stage = _load(actor, stage_id)
    targets = []
    for tid in dict.fromkeys(target_ids or []):
        target = Stage.get_for_tenant(actor.tenant_id, tid)
        if target is None:
            raise NotFoundError(resource="Stage", resource_id=tid)
        if target.id == stage.id:
            raise ValidationError("A stage cannot list itself as a transition target")
        targets.append(target.id)

    old = stage.allowed_target_ids
    stage.outgoing.clear()
    db.session.flush()
    stage.outgoing.extend(StageTransition(from_stage_id=stage.id, to_stage_id=t) for t in targets)
    write_audit(entity_type="stage", entity_id=stage.id, action="stage.set_transitions", actor=actor,
                diff={"allowed_target_ids": {"old": old, "new": sorted(targets)}})
    db.session.commit()
    return stage.to_dict()
