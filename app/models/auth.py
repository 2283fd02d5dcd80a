"""
Auth Models: tenants, users, sessions, reader ↔ client links.

A user carries exactly one role. The role → permission table is static
(see app.services.permission_service.ROLE_PERMISSIONS); it is not stored
in the database.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.base import _utcnow, _uuid, as_utc, iso


ROLES = ("admin", "supervisor", "operator", "reader")


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    domain = db.Column(db.String(200))
    logo_url = db.Column(db.String(500))
    primary_color = db.Column(db.String(20), default="#3B82F6")
    secondary_color = db.Column(db.String(20), default="#64748B")
    is_active = db.Column(db.Boolean, default=True)
    allow_customization = db.Column(db.Boolean, default=True)
    max_users = db.Column(db.Integer, default=100)
    max_orders = db.Column(db.Integer, default=1000)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    users = db.relationship("User", back_populates="tenant", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "domain": self.domain,
            "logo_url": self.logo_url,
            "primary_color": self.primary_color,
            "secondary_color": self.secondary_color,
            "is_active": self.is_active,
            "settings": {
                "allow_customization": self.allow_customization,
                "max_users": self.max_users,
                "max_orders": self.max_orders,
            },
            "created_at": iso(self.created_at),
        }


# ═══════════════════════════════════════════════════════════════
# 2. USER ↔ CLIENT links (reader scoping)
# ═══════════════════════════════════════════════════════════════
user_clients = db.Table(
    "user_clients",
    db.Column("user_id", db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("client_id", db.String(36), db.ForeignKey("clients.id", ondelete="CASCADE"), primary_key=True),
)


# ═══════════════════════════════════════════════════════════════
# 3. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(20), nullable=False, default="reader")  # admin, supervisor, operator, reader
    department = db.Column(db.String(100))
    team = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Same email can exist in different tenants
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        db.Index("ix_users_tenant_id", "tenant_id"),
    )

    # Relationships
    tenant = db.relationship("Tenant", back_populates="users")
    linked_clients = db.relationship(
        "Client", secondary=user_clients, back_populates="linked_users", lazy="selectin"
    )
    sessions = db.relationship(
        "Session", back_populates="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    @property
    def linked_client_ids(self) -> list[str]:
        return sorted(c.id for c in self.linked_clients)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "department": self.department,
            "team": self.team,
            "is_active": self.is_active,
            "linked_client_ids": self.linked_client_ids,
            "last_login_at": iso(self.last_login_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email} [{self.role}]>"


# ═══════════════════════════════════════════════════════════════
# 4. SESSIONS (Refresh tokens & login tracking)
# ═══════════════════════════════════════════════════════════════
class Session(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash = db.Column(db.String(256), nullable=False)  # SHA-256 of refresh token
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True))

    # Relationships
    user = db.relationship("User", back_populates="sessions")

    @property
    def is_expired(self):
        return datetime.now(timezone.utc) > as_utc(self.expires_at)

    def to_dict(self):
        return {
            "id": self.id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "expires_at": iso(self.expires_at),
            "last_used_at": iso(self.last_used_at),
        }
