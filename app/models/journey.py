"""
Employee Journey Engine
Journey domain model.

Models:
    - Journey: one employee's ordered development path (one active per employee)
    - JourneyPhase: one time-boxed step, numbered 1..N without gaps
    - JourneyActivity: append-only audit trail of journey/phase mutations

Business rules:
    - (journey_id, phase_number) is unique; numbers stay contiguous.
    - At most one non-COMPLETED journey per employee (partial unique index).
    - OVERDUE is derived from due_date at read time and is never reported
      for a PAUSED journey; see JourneyPhase.status_at().
    - JourneyActivity rows are never updated or deleted.
"""

from datetime import datetime

from app.models import db
from app.utils.helpers import iso, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

class EmployeeType:
    NEW_EMPLOYEE = "NEW_EMPLOYEE"
    EXISTING_EMPLOYEE = "EXISTING_EMPLOYEE"

    ALL = frozenset({NEW_EMPLOYEE, EXISTING_EMPLOYEE})


class JourneyStatus:
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"

    ALL = frozenset({NOT_STARTED, IN_PROGRESS, PAUSED, COMPLETED})
    ACTIVE = frozenset({NOT_STARTED, IN_PROGRESS, PAUSED})


class PhaseStatus:
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"

    ALL = frozenset({NOT_STARTED, IN_PROGRESS, COMPLETED, OVERDUE})
    # Statuses of the single phase a journey is currently working on.
    ACTIVE = frozenset({IN_PROGRESS, OVERDUE})


class PhaseType:
    INDUCTION_INITIAL_ASSESSMENT = "INDUCTION_INITIAL_ASSESSMENT"
    INDUCTION_TRAINING = "INDUCTION_TRAINING"
    SKILL_ASSESSMENT = "SKILL_ASSESSMENT"
    TNA_GENERATION = "TNA_GENERATION"
    PROGRESS_TRACKING = "PROGRESS_TRACKING"
    FEEDBACK_COLLECTION = "FEEDBACK_COLLECTION"
    POST_ASSESSMENT = "POST_ASSESSMENT"
    ROLE_ASSESSMENT = "ROLE_ASSESSMENT"
    TRAINING_ASSIGNMENT = "TRAINING_ASSIGNMENT"
    TRAINING_EXECUTION = "TRAINING_EXECUTION"
    RE_ASSESSMENT = "RE_ASSESSMENT"
    MATRIX_UPDATE = "MATRIX_UPDATE"
    CUSTOM = "CUSTOM"

    ALL = frozenset({
        INDUCTION_INITIAL_ASSESSMENT, INDUCTION_TRAINING, SKILL_ASSESSMENT,
        TNA_GENERATION, PROGRESS_TRACKING, FEEDBACK_COLLECTION, POST_ASSESSMENT,
        ROLE_ASSESSMENT, TRAINING_ASSIGNMENT, TRAINING_EXECUTION, RE_ASSESSMENT,
        MATRIX_UPDATE, CUSTOM,
    })


class ActivityType:
    PHASE_ADDED = "PHASE_ADDED"
    PHASE_DELETED = "PHASE_DELETED"
    PHASE_UPDATED = "PHASE_UPDATED"
    PHASE_SKIPPED = "PHASE_SKIPPED"
    PHASE_ADVANCED = "PHASE_ADVANCED"
    PHASE_STARTED = "PHASE_STARTED"
    MENTOR_ASSIGNED = "MENTOR_ASSIGNED"
    MENTOR_REMOVED = "MENTOR_REMOVED"
    ASSESSMENT_LINKED = "ASSESSMENT_LINKED"
    TRAINING_LINKED = "TRAINING_LINKED"
    JOURNEY_STARTED = "JOURNEY_STARTED"
    JOURNEY_PAUSED = "JOURNEY_PAUSED"
    JOURNEY_RESUMED = "JOURNEY_RESUMED"
    JOURNEY_COMPLETED = "JOURNEY_COMPLETED"

    ALL = frozenset({
        PHASE_ADDED, PHASE_DELETED, PHASE_UPDATED, PHASE_SKIPPED, PHASE_ADVANCED,
        PHASE_STARTED, MENTOR_ASSIGNED, MENTOR_REMOVED, ASSESSMENT_LINKED,
        TRAINING_LINKED, JOURNEY_STARTED, JOURNEY_PAUSED, JOURNEY_RESUMED,
        JOURNEY_COMPLETED,
    })


# ═══════════════════════════════════════════════════════════════
# 1. JOURNEYS
# ═══════════════════════════════════════════════════════════════
class Journey(db.Model):
    """
    One employee's journey.

    ``version`` is bumped by every engine mutation (see journey_store.touch)
    so two units of work that both read the same journey cannot both commit.
    """

    __tablename__ = "journeys"
    __table_args__ = (
        db.Index(
            "uq_journeys_active_employee", "employee_id",
            unique=True,
            sqlite_where=db.text("status != 'COMPLETED'"),
            postgresql_where=db.text("status != 'COMPLETED'"),
        ),
        db.Index("ix_journeys_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    employee_type = db.Column(db.String(30), nullable=False, comment="NEW_EMPLOYEE | EXISTING_EMPLOYEE")
    status = db.Column(db.String(20), nullable=False, default=JourneyStatus.NOT_STARTED)
    cycle_number = db.Column(db.Integer, nullable=False, default=1)

    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    paused_at = db.Column(db.DateTime, nullable=True)
    pause_reason = db.Column(db.Text, nullable=True)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    __mapper_args__ = {"version_id_col": version}

    employee = db.relationship("User", back_populates="journeys")
    phases = db.relationship(
        "JourneyPhase", back_populates="journey", order_by="JourneyPhase.phase_number",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    activities = db.relationship(
        "JourneyActivity", back_populates="journey", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status in JourneyStatus.ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_type": self.employee_type,
            "status": self.status,
            "cycle_number": self.cycle_number,
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
            "paused_at": iso(self.paused_at),
            "pause_reason": self.pause_reason,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Journey {self.id}: employee={self.employee_id} {self.status}>"


# ═══════════════════════════════════════════════════════════════
# 2. PHASES
# ═══════════════════════════════════════════════════════════════
class JourneyPhase(db.Model):
    __tablename__ = "journey_phases"
    __table_args__ = (
        db.UniqueConstraint("journey_id", "phase_number", name="uq_journey_phase_number"),
        db.CheckConstraint("duration_days > 0", name="ck_journey_phase_duration_positive"),
        db.Index("ix_journey_phases_journey_status", "journey_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    journey_id = db.Column(
        db.Integer, db.ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    phase_number = db.Column(db.Integer, nullable=False, comment="1-based, contiguous within journey")
    phase_type = db.Column(db.String(50), nullable=False, default=PhaseType.CUSTOM)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    duration_days = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PhaseStatus.NOT_STARTED)

    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    due_date = db.Column(db.DateTime, nullable=True)

    # Weak reference: a deleted mentor simply leaves the phase unmentored.
    mentor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    linked_assessment_id = db.Column(db.String(64), nullable=True, index=True)
    linked_training_assignment_id = db.Column(db.String(64), nullable=True, index=True)

    overdue_notified_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    journey = db.relationship("Journey", back_populates="phases")
    mentor = db.relationship("User", foreign_keys=[mentor_id])

    @property
    def is_active(self) -> bool:
        return self.status in PhaseStatus.ACTIVE

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Past due while active; never while the journey is PAUSED."""
        if not self.is_active or self.due_date is None:
            return False
        if self.journey is not None and self.journey.status == JourneyStatus.PAUSED:
            return False
        return (now or utcnow()) > self.due_date

    def status_at(self, now: datetime | None = None) -> str:
        """Status as observed at ``now``; OVERDUE is never stored by the engine."""
        if self.is_active:
            return PhaseStatus.OVERDUE if self.is_overdue(now) else PhaseStatus.IN_PROGRESS
        return self.status

    def to_dict(self, now=None):
        return {
            "id": self.id,
            "journey_id": self.journey_id,
            "phase_number": self.phase_number,
            "phase_type": self.phase_type,
            "title": self.title,
            "description": self.description,
            "duration_days": self.duration_days,
            "status": self.status_at(now),
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
            "due_date": iso(self.due_date),
            "mentor_id": self.mentor_id,
            "mentor_name": self.mentor.display_name if self.mentor else None,
            "linked_assessment_id": self.linked_assessment_id,
            "linked_training_assignment_id": self.linked_training_assignment_id,
        }

    def __repr__(self):
        return f"<JourneyPhase {self.id}: #{self.phase_number} {self.title[:40]}>"


# ═══════════════════════════════════════════════════════════════
# 3. ACTIVITIES (append-only)
# ═══════════════════════════════════════════════════════════════
class JourneyActivity(db.Model):
    """
    Immutable audit entry for one journey/phase mutation.

    One row per action.  ``payload`` carries cause-specific data such as the
    skip reason or the completing assessment id.
    """

    __tablename__ = "journey_activities"
    __table_args__ = (
        db.Index("ix_journey_activities_journey_created", "journey_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    journey_id = db.Column(
        db.Integer, db.ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False,
    )
    phase_number = db.Column(db.Integer, nullable=True)
    activity_type = db.Column(db.String(40), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    payload = db.Column("metadata", db.JSON, nullable=True)
    actor_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime, default=utcnow)

    journey = db.relationship("Journey", back_populates="activities")

    def to_dict(self):
        return {
            "id": self.id,
            "journey_id": self.journey_id,
            "phase_number": self.phase_number,
            "activity_type": self.activity_type,
            "title": self.title,
            "description": self.description,
            "metadata": self.payload,
            "actor_user_id": self.actor_user_id,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<JourneyActivity {self.id}: {self.activity_type}>"
