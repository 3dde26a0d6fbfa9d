"""
Database package for the grading engine

Provides:
- SQLAlchemy database configuration
- Database session management
- Base model for ORM
- ORM models (GradeDB, CredentialDB, etc.)
- Repository pattern implementations
- Transaction management utilities
"""
from .config import DatabaseConfig, get_db_session, init_database, get_db_config, get_db
from .base import Base
from .transaction import transaction

# ORM Models
from .models import (
    UserDB,
    LearnerOutcomeDB,
    CompetencyDB,
    ComponentSkillDB,
    AssessmentDB,
    SubmissionDB,
    GradeSetDB,
    GradeDB,
    CredentialDB,
    SelfEvaluationDB,
    SafetyIncidentDB,
    NotificationDB,
)

# Repositories
from .repositories import (
    HierarchyRepository,
    UserRepository,
    AssessmentRepository,
    SubmissionRepository,
    GradeRepository,
    CredentialRepository,
    SelfEvaluationRepository,
    SafetyIncidentRepository,
    NotificationRepository,
)

__all__ = [
    # Configuration
    "DatabaseConfig",
    "get_db_session",
    "init_database",
    "get_db_config",
    "get_db",
    "Base",
    # Transaction management
    "transaction",
    # ORM Models
    "UserDB",
    "LearnerOutcomeDB",
    "CompetencyDB",
    "ComponentSkillDB",
    "AssessmentDB",
    "SubmissionDB",
    "GradeSetDB",
    "GradeDB",
    "CredentialDB",
    "SelfEvaluationDB",
    "SafetyIncidentDB",
    "NotificationDB",
    # Repositories
    "HierarchyRepository",
    "UserRepository",
    "AssessmentRepository",
    "SubmissionRepository",
    "GradeRepository",
    "CredentialRepository",
    "SelfEvaluationRepository",
    "SafetyIncidentRepository",
    "NotificationRepository",
]
