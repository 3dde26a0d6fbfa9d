"""
SQLAlchemy ORM models for persistence

Models:
- UserDB: Students / teachers / admins with school and grade level (roster)
- LearnerOutcomeDB, CompetencyDB, ComponentSkillDB: skill hierarchy
- AssessmentDB, SubmissionDB: what is graded
- GradeSetDB: per-submission locking state (optimistic concurrency token)
- GradeDB: one rubric grade per (submission, component skill)
- CredentialDB: stickers, badges, plaques
- SelfEvaluationDB: student self-assessments screened for safety
- SafetyIncidentDB: incidents raised by screening or teacher reports
- NotificationDB: in-app notifications written by the notification sink
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .base import Base, BaseModel


class JSONBCompatible(TypeDecorator):
    """
    A JSON type that uses JSONB on PostgreSQL and JSON on other databases (e.g., SQLite).
    This allows tests to run with SQLite while production uses PostgreSQL with JSONB.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


def _utc_now():
    """Default for SQLAlchemy columns - timezone-aware timestamp"""
    return datetime.now(timezone.utc)


RUBRIC_LEVEL_CHECK = "rubric_level IN ('emerging', 'developing', 'proficient', 'applying')"


class UserDB(Base, BaseModel):
    """
    Roster entry.

    Only the fields the engine reads are modelled: role, school and grade
    level drive enrollment counts and teacher routing for incidents.
    """

    __tablename__ = "users"

    username = Column(String(100), nullable=False, unique=True)
    role = Column(String(20), nullable=False, default="student")  # student, teacher, admin
    school_id = Column(String(36), nullable=True, index=True)
    grade_level = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index('idx_user_school_role', 'school_id', 'role'),
        Index('idx_user_school_grade', 'school_id', 'grade_level'),
        CheckConstraint("role IN ('student', 'teacher', 'admin')", name='ck_user_role_valid'),
    )


# =============================================================================
# Skill hierarchy
# =============================================================================


class LearnerOutcomeDB(Base, BaseModel):
    __tablename__ = "learner_outcomes"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    competencies = relationship("CompetencyDB", back_populates="learner_outcome")


class CompetencyDB(Base, BaseModel):
    __tablename__ = "competencies"

    # Nullable: legacy imports contain competencies without outcome
    learner_outcome_id = Column(
        String(36), ForeignKey("learner_outcomes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)  # core, subject-specific

    learner_outcome = relationship("LearnerOutcomeDB", back_populates="competencies")
    component_skills = relationship("ComponentSkillDB", back_populates="competency")


class ComponentSkillDB(Base, BaseModel):
    __tablename__ = "component_skills"

    competency_id = Column(
        String(36), ForeignKey("competencies.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name = Column(String(255), nullable=False)
    # {"emerging": "...", "developing": "...", "proficient": "...", "applying": "..."}
    rubric_levels = Column(JSONBCompatible, default=dict, nullable=True)

    competency = relationship("CompetencyDB", back_populates="component_skills")


# =============================================================================
# Assessments and submissions
# =============================================================================


class AssessmentDB(Base, BaseModel):
    __tablename__ = "assessments"

    title = Column(String(255), nullable=False)
    teacher_id = Column(String(36), nullable=True, index=True)
    # Configured skill set; grades are only accepted for these ids
    component_skill_ids = Column(JSONBCompatible, default=list, nullable=False)
    questions = Column(JSONBCompatible, default=list, nullable=True)
    # Opaque blob-store path of the source PDF used during AI grading
    source_document_ref = Column(String(500), nullable=True)

    submissions = relationship("SubmissionDB", back_populates="assessment")


class SubmissionDB(Base, BaseModel):
    """Immutable after creation except for grading metadata"""

    __tablename__ = "submissions"

    assessment_id = Column(String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(36), nullable=False, index=True)
    responses = Column(JSONBCompatible, default=dict, nullable=True)
    submitted_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    is_self_evaluation = Column(Boolean, default=False, nullable=False)
    self_evaluation_data = Column(JSONBCompatible, nullable=True)

    # Grading metadata
    feedback = Column(Text, nullable=True)
    ai_generated_feedback = Column(Boolean, default=False, nullable=False)
    graded_at = Column(DateTime(timezone=True), nullable=True)

    assessment = relationship("AssessmentDB", back_populates="submissions")
    grade_set = relationship("GradeSetDB", back_populates="submission", uselist=False)
    grades = relationship("GradeDB", back_populates="submission")

    __table_args__ = (
        Index('idx_submission_student_assessment', 'student_id', 'assessment_id'),
    )


class GradeSetDB(Base):
    """
    Locking state of a submission's grade set.

    The primary key is the submission id, so a second first-time grading of
    the same submission fails on insert. Every later transition is a
    compare-and-swap on ``version``.
    """

    __tablename__ = "grade_sets"

    submission_id = Column(String(36), ForeignKey("submissions.id", ondelete="CASCADE"), primary_key=True)
    state = Column(String(20), nullable=False, default="locked")  # locked, editing
    editing_skill_id = Column(String(36), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    graded_by = Column(String(36), nullable=True)
    locked_at = Column(DateTime(timezone=True), default=_utc_now, nullable=True)
    ai_assisted = Column(Boolean, default=False, nullable=False)
    source_document_ref = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    submission = relationship("SubmissionDB", back_populates="grade_set")

    __table_args__ = (
        CheckConstraint("state IN ('locked', 'editing')", name='ck_grade_set_state_valid'),
        CheckConstraint(
            "(state = 'editing' AND editing_skill_id IS NOT NULL) OR "
            "(state = 'locked' AND editing_skill_id IS NULL)",
            name='ck_grade_set_editing_skill',
        ),
    )


class GradeDB(Base, BaseModel):
    __tablename__ = "grades"

    submission_id = Column(String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    # Denormalized from the submission for aggregation queries
    student_id = Column(String(36), nullable=False, index=True)
    component_skill_id = Column(String(36), nullable=False, index=True)
    rubric_level = Column(String(20), nullable=False)
    score = Column(Float, nullable=False)
    feedback = Column(Text, nullable=True)
    graded_by = Column(String(36), nullable=True)
    graded_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    locked = Column(Boolean, default=True, nullable=False)

    submission = relationship("SubmissionDB", back_populates="grades")

    __table_args__ = (
        # At most one active grade per (submission, skill): re-grading replaces
        UniqueConstraint('submission_id', 'component_skill_id', name='uq_grade_submission_skill'),
        # Query: current grade of a student for a skill
        Index('idx_grade_student_skill', 'student_id', 'component_skill_id', 'graded_at'),
        CheckConstraint(RUBRIC_LEVEL_CHECK, name='ck_grade_rubric_level_valid'),
        CheckConstraint("score >= 1 AND score <= 4", name='ck_grade_score_range'),
    )


# =============================================================================
# Credentials
# =============================================================================


class CredentialDB(Base, BaseModel):
    """
    Sticker (component skill), badge (competency) or plaque (learner outcome).

    ``scope_id`` duplicates whichever of the three scope columns applies so
    that a single unique constraint guarantees one credential per
    (student, type, scope) even under concurrent issuance.
    """

    __tablename__ = "credentials"

    student_id = Column(String(36), nullable=False, index=True)
    credential_type = Column(String(20), nullable=False)  # sticker, badge, plaque
    scope_id = Column(String(36), nullable=False)
    component_skill_id = Column(String(36), nullable=True)  # stickers
    competency_id = Column(String(36), nullable=True)  # badges
    learner_outcome_id = Column(String(36), nullable=True)  # plaques

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    icon_url = Column(String(50), nullable=True)
    # Level a sticker was earned at; only ever raised
    rubric_level = Column(String(20), nullable=True)
    awarded_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    awarded_by = Column(String(36), nullable=True)
    # Null for auto-issued credentials
    approved_by = Column(String(36), nullable=True)

    __table_args__ = (
        UniqueConstraint('student_id', 'credential_type', 'scope_id', name='uq_credential_student_type_scope'),
        Index('idx_credential_student_type', 'student_id', 'credential_type'),
        CheckConstraint("credential_type IN ('sticker', 'badge', 'plaque')", name='ck_credential_type_valid'),
        CheckConstraint(
            "rubric_level IS NULL OR " + RUBRIC_LEVEL_CHECK, name='ck_credential_rubric_level_valid'
        ),
    )


# =============================================================================
# Self-evaluations and safety
# =============================================================================


class SelfEvaluationDB(Base, BaseModel):
    __tablename__ = "self_evaluations"

    assessment_id = Column(String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=True, index=True)
    student_id = Column(String(36), nullable=False, index=True)
    component_skill_id = Column(String(36), nullable=True)
    self_assessed_level = Column(String(20), nullable=False)
    justification = Column(Text, nullable=False)
    examples = Column(Text, nullable=True)
    ai_improvement_feedback = Column(Text, nullable=True)
    has_risky_content = Column(Boolean, default=False, nullable=False)
    teacher_notified = Column(Boolean, default=False, nullable=False)
    submitted_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "self_assessed_level IN ('emerging', 'developing', 'proficient', 'applying')",
            name='ck_self_eval_level_valid',
        ),
    )


class SafetyIncidentDB(Base, BaseModel):
    """
    Incident raised by the Safety Screening Engine or reported by a teacher.

    Resolved only through an explicit admin / teacher action.
    """

    __tablename__ = "safety_incidents"

    student_id = Column(String(36), nullable=False, index=True)
    teacher_id = Column(String(36), nullable=True, index=True)  # reporting teacher
    assessment_id = Column(String(36), nullable=True)
    component_skill_id = Column(String(36), nullable=True)
    incident_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    conversation_history = Column(JSONBCompatible, default=list, nullable=True)
    severity = Column(String(20), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="open")
    resolved = Column(Boolean, default=False, server_default='false', nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(36), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    detected_by = Column(String(50), nullable=True)  # classifier name or "teacher_report"

    __table_args__ = (
        Index('idx_incident_student_resolved', 'student_id', 'resolved'),
        Index('idx_incident_severity_created', 'severity', 'created_at'),
        CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')", name='ck_incident_severity_valid'
        ),
        CheckConstraint(
            "status IN ('open', 'investigating', 'resolved', 'closed')", name='ck_incident_status_valid'
        ),
    )


class NotificationDB(Base, BaseModel):
    __tablename__ = "notifications"

    user_id = Column(String(36), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)  # credential_issued, safety_incident
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSONBCompatible, default=dict, nullable=True)
    priority = Column(String(20), default="medium", nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_notification_user_read', 'user_id', 'read'),
    )
