"""
ProcessFlow
Order Lifecycle Service.

Moves orders between pipeline stages with:
  - Permission check (processos.mover or processos.finalizar)
  - Referential checks on order and target stage
  - Transition validation against the optional StageTransition table
  - Side effects (movement history, delivery date, operator finalization alerts)
  - Audit trail via write_audit

Usage:
    from app.services.order_lifecycle import move_order

    result = move_order(actor, order_id, target_stage_id, comment="Liberado")
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, TransitionError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.order import PHYSICAL_LOCATIONS, Order, OrderMovement
from app.models.pipeline import Stage
from app.services.notification import NotificationService
from app.services.permission_service import check_permission

logger = logging.getLogger(__name__)


MOVE_PERMISSIONS = ("processos.mover", "processos.finalizar")


def initial_stage(tenant_id: str) -> Stage | None:
    """First active stage of the tenant by sort order."""
    return (
        Stage.query_for_tenant(tenant_id)
        .filter_by(is_active=True)
        .order_by(Stage.sort_order, Stage.name)
        .first()
    )


def validate_transition(order: Order, target: Stage) -> dict:
    """
    Validate whether *order* may move to *target*.

    A current stage with no configured outgoing transitions allows any
    target; moving to the current stage is always allowed.

    Returns:
        {"valid": bool, "from": str, "to": str, "allowed": list, "reason": str|None}
    """
    current = order.current_stage
    allowed = current.allowed_target_ids if current is not None else []
    result = {"valid": True, "from": order.current_stage_id, "to": target.id,
              "allowed": allowed, "reason": None}

    if not target.is_active:
        result.update(valid=False, reason=f"Stage '{target.name}' is inactive")
    elif allowed and target.id != order.current_stage_id and target.id not in allowed:
        result.update(valid=False, reason=f"Cannot move from '{current.name}' to '{target.name}'")
    return result


def available_transitions(order: Order) -> list[Stage]:
    """Stages the order may be moved to, in pipeline order."""
    stages = (
        Stage.query_for_tenant(order.tenant_id)
        .filter_by(is_active=True)
        .order_by(Stage.sort_order, Stage.name)
        .all()
    )
    return [s for s in stages if validate_transition(order, s)["valid"]]


def append_movement(order: Order, *, previous_stage_id, new_stage_id, actor=None,
                    comment=None, previous_location=None, new_location=None,
                    automatic=False, at=None) -> OrderMovement:
    """Append one history record; the caller keeps transaction control."""
    movement = OrderMovement(
        sequence=len(order.movements),
        previous_stage_id=previous_stage_id,
        new_stage_id=new_stage_id,
        user_id=actor.id if actor is not None else None,
        user_name=actor.name if actor is not None else "Sistema",
        comment=comment,
        previous_location=previous_location,
        new_location=new_location,
        automatic=automatic,
        created_at=at or datetime.now(timezone.utc),
    )
    order.movements.append(movement)
    return movement


def verify_history(order: Order) -> bool:
    """True when the history is non-empty, well-chained and ends at the current stage."""
    movements = list(order.movements)
    if not movements or movements[0].previous_stage_id is not None:
        return False
    for prev, nxt in zip(movements, movements[1:]):
        if nxt.previous_stage_id != prev.new_stage_id:
            return False
    return movements[-1].new_stage_id == order.current_stage_id


def move_order(
    actor,
    order_id: str,
    target_stage_id: str,
    comment: str | None = None,
    *,
    new_location: str | None = None,
    automatic: bool = False,
) -> dict:
    """
    Move an order to another stage.

    Args:
        actor: The acting User
        order_id: Order to move
        target_stage_id: Destination stage
        comment: Optional free-text comment stored on the movement
        new_location: Optional physical location after the move
        automatic: True for moves made by background jobs

    Returns:
        {"order_id", "order_number", "previous_stage_id", "new_stage_id",
         "delivered_at", "notifications_created"}

    Raises:
        PermissionDeniedError, NotFoundError, ValidationError, TransitionError
    """
    # 1. Permission check
    check_permission(actor, *MOVE_PERMISSIONS)

    # 2. Referential checks
    order = Order.get_for_tenant(actor.tenant_id, order_id)
    if order is None:
        raise NotFoundError(resource="Order", resource_id=order_id)
    target = Stage.get_for_tenant(actor.tenant_id, target_stage_id)
    if target is None:
        raise NotFoundError(resource="Stage", resource_id=target_stage_id)
    if new_location is not None and new_location not in PHYSICAL_LOCATIONS:
        raise ValidationError(
            f"Invalid physical location: {new_location}",
            details={"new_location": sorted(PHYSICAL_LOCATIONS)},
        )

    # 3. Validate transition
    validation = validate_transition(order, target)
    if not validation["valid"]:
        if not target.is_active:
            raise ValidationError(validation["reason"], details={"target_stage_id": "inactive"})
        raise TransitionError(order.current_stage_id, target.id, validation["allowed"])

    # 4. Execute
    now = datetime.now(timezone.utc)
    previous_stage_id = order.current_stage_id
    previous_location = order.physical_location
    delivered_now = False

    order.current_stage_id = target.id
    order.current_stage = target
    order.updated_at = now
    if target.is_terminal:
        new_location = "delivered"
        if order.delivered_at is None:
            order.delivered_at = now
            delivered_now = True
    elif new_location is None and previous_location == "delivered":
        # Leaving delivery without a destination: back to the yard
        new_location = "yard"
    if new_location is not None:
        order.physical_location = new_location

    append_movement(
        order,
        previous_stage_id=previous_stage_id,
        new_stage_id=target.id,
        actor=actor,
        comment=comment,
        previous_location=previous_location,
        new_location=order.physical_location,
        automatic=automatic,
        at=now,
    )

    # 5. Side effects
    notifications = []
    if actor.role == "operator" and target.is_terminal:
        notifications = NotificationService.notify_order_finalized(order, actor, target)

    # 6. Audit log
    diff = {"current_stage_id": {"old": previous_stage_id, "new": target.id}}
    if delivered_now:
        diff["delivered_at"] = {"old": None, "new": now.isoformat()}
    write_audit(
        entity_type="order",
        entity_id=order.id,
        action="order.finalize" if target.is_terminal else "order.move",
        actor=actor,
        diff=diff,
    )

    db.session.commit()
    logger.info(
        "Order %s moved %s -> %s by user=%s%s",
        order.order_number, previous_stage_id, target.id, actor.id,
        " (automatic)" if automatic else "",
    )

    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "previous_stage_id": previous_stage_id,
        "new_stage_id": target.id,
        "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
        "notifications_created": len(notifications),
    }
