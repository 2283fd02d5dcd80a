"""
ProcessFlow
Order domain model.

Models:
    - Order: a sales order (processo) travelling through the pipeline
    - OrderMovement: append-only stage history of an order

Invariant: an order's current_stage_id equals the new_stage_id of its
last movement.
"""

from app.models import db
from app.models.base import TenantModel, _utcnow, _uuid, iso


# ── Constants ────────────────────────────────────────────────────────────────

PHYSICAL_LOCATIONS = {"yard", "hall", "street", "shipping", "delivered"}
PRIORITIES = {"low", "normal", "high", "urgent"}


class Order(TenantModel):
    """Sales order tracked through the stage pipeline."""

    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_order_tenant_number"),
        db.Index("ix_orders_tenant_stage", "tenant_id", "current_stage_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_number = db.Column(db.String(50), nullable=False)

    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    client_name = db.Column(db.String(200), nullable=False, comment="Denormalised from clients.name")
    salesperson = db.Column(db.String(200), default="")

    # Dates
    sale_date = db.Column(db.Date, nullable=True)
    first_payment_date = db.Column(db.Date, nullable=True)
    expected_delivery_date = db.Column(db.Date, nullable=False)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Product
    product = db.Column(db.String(300), default="")
    quantity = db.Column(db.Integer, default=1)
    packaging = db.Column(db.String(100), default="")
    freight_type = db.Column(db.String(50), default="")

    # Pipeline position
    current_stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="RESTRICT"), nullable=False,
    )
    physical_location = db.Column(db.String(20), default="yard")

    courtesies = db.Column(db.JSON, default=list)
    shortages = db.Column(db.JSON, default=list)
    tags = db.Column(db.JSON, default=list)
    notes = db.Column(db.Text, default="")
    priority = db.Column(db.String(10), default="normal")
    total_value = db.Column(db.Numeric(14, 2), default=0)
    assignee_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    client = db.relationship("Client")
    current_stage = db.relationship("Stage")
    movements = db.relationship(
        "OrderMovement",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderMovement.sequence",
        lazy="selectin",
    )

    @property
    def last_movement(self):
        return self.movements[-1] if self.movements else None

    def to_dict(self, include_history=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "order_number": self.order_number,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "salesperson": self.salesperson,
            "sale_date": iso(self.sale_date),
            "first_payment_date": iso(self.first_payment_date),
            "expected_delivery_date": iso(self.expected_delivery_date),
            "delivered_at": iso(self.delivered_at),
            "product": self.product,
            "quantity": self.quantity,
            "packaging": self.packaging,
            "freight_type": self.freight_type,
            "current_stage_id": self.current_stage_id,
            "physical_location": self.physical_location,
            "courtesies": self.courtesies or [],
            "shortages": self.shortages or [],
            "tags": self.tags or [],
            "notes": self.notes,
            "priority": self.priority,
            "total_value": float(self.total_value or 0),
            "assignee_id": self.assignee_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_history:
            d["history"] = [m.to_dict() for m in self.movements]
        return d

    def __repr__(self):
        return f"<Order {self.order_number} @ {self.current_stage_id}>"


class OrderMovement(db.Model):
    """
    One stage change of an order.

    The first movement of every order has previous_stage_id = None.
    Rows are never updated; ``sequence`` gives a total order even when two
    movements share a timestamp.
    """

    __tablename__ = "order_movements"
    __table_args__ = (
        db.UniqueConstraint("order_id", "sequence", name="uq_movement_order_seq"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sequence = db.Column(db.Integer, nullable=False, default=0)
    previous_stage_id = db.Column(db.String(36), nullable=True)
    new_stage_id = db.Column(db.String(36), nullable=False)

    # User name is denormalised so history survives user deletion
    user_id = db.Column(db.String(36), nullable=True)
    user_name = db.Column(db.String(200), default="")

    comment = db.Column(db.Text, nullable=True)
    previous_location = db.Column(db.String(20), nullable=True)
    new_location = db.Column(db.String(20), nullable=True)
    automatic = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    order = db.relationship("Order", back_populates="movements")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "sequence": self.sequence,
            "previous_stage_id": self.previous_stage_id,
            "new_stage_id": self.new_stage_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "comment": self.comment,
            "previous_location": self.previous_location,
            "new_location": self.new_location,
            "automatic": self.automatic,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<OrderMovement {self.order_id}#{self.sequence}: {self.previous_stage_id} -> {self.new_stage_id}>"
