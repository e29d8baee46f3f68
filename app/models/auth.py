"""
Auth Models — users and their capability set.

User CRUD lives outside the engine; this table carries only the columns
the journey engine reads or writes (display name for notifications,
employee type, and the capability list mutated on mentor assignment).
"""

from dataclasses import dataclass

from app.models import db
from app.utils.helpers import iso, utcnow


# ═══════════════════════════════════════════════════════════════
# 1. CAPABILITIES
# ═══════════════════════════════════════════════════════════════
CAPABILITY_EMPLOYEE = "EMPLOYEE"
CAPABILITY_MENTOR = "MENTOR"
CAPABILITY_ADMIN = "ADMIN"

VALID_CAPABILITIES = frozenset({CAPABILITY_EMPLOYEE, CAPABILITY_MENTOR, CAPABILITY_ADMIN})


@dataclass(frozen=True)
class CapabilitySet:
    """Immutable set of system capabilities held by a user.

    Granting is a set union, so granting a capability the user already
    holds returns an equal set and changes nothing.
    """

    names: frozenset = frozenset()

    @classmethod
    def from_list(cls, values) -> "CapabilitySet":
        return cls(frozenset(v for v in (values or []) if v))

    def has(self, capability: str) -> bool:
        return capability in self.names

    def union(self, *capabilities: str) -> "CapabilitySet":
        return CapabilitySet(self.names | frozenset(capabilities))

    def to_list(self) -> list[str]:
        return sorted(self.names)


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    department = db.Column(db.String(120))
    designation = db.Column(db.String(120))
    employee_type = db.Column(db.String(30), nullable=True)  # NEW_EMPLOYEE, EXISTING_EMPLOYEE
    system_roles = db.Column(db.JSON, default=lambda: [CAPABILITY_EMPLOYEE])
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(
        db.DateTime,
        default=utcnow,
        onupdate=utcnow,
    )

    # Removing the employee removes their journeys; journeys are never
    # deleted on their own.
    journeys = db.relationship(
        "Journey", back_populates="employee", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def capabilities(self) -> CapabilitySet:
        return CapabilitySet.from_list(self.system_roles)

    @capabilities.setter
    def capabilities(self, value: CapabilitySet) -> None:
        # Assign a fresh list so the JSON column is flagged dirty.
        self.system_roles = value.to_list()

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "department": self.department,
            "designation": self.designation,
            "employee_type": self.employee_type,
            "system_roles": self.capabilities.to_list(),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
