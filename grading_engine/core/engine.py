"""
Engine wiring

Builds the four engine components around one database session and one
event bus:

    grading action → GradeStore → (GradeSubmitted / GradeEdited)
        → AggregationEngine.on_grade_event   (recompute skill, mark ancestors stale)
        → CredentialIssuer.on_grade_event    (re-scan thresholds)
            → (CredentialIssued) → notification sink
    self-evaluation → SelfEvaluationIntake → SafetyScreeningEngine
        → (IncidentRaised) → notification sink
    graded submission → SubmissionFeedbackService → AIFeedbackService
        → feedback stored on the submission

Process-wide pieces (hierarchy, rubric, stat cache, classifier, LLM
provider) are passed in; everything else is per session.
"""
from typing import Optional
import logging

from sqlalchemy.orm import Session

from ..database.repositories import (
    AssessmentRepository,
    CredentialRepository,
    GradeRepository,
    NotificationRepository,
    SafetyIncidentRepository,
    SelfEvaluationRepository,
    SubmissionRepository,
    UserRepository,
)
from ..llm.base import LLMProvider
from ..models.rubric import DEFAULT_RUBRIC, RubricConfig, SkillHierarchy
from ..services.ai_feedback import AIFeedbackService
from ..services.notifications import DatabaseNotificationSink, NotificationSink, subscribe_sink
from ..services.roster import DatabaseRosterProvider, RosterProvider
from ..services.safety_classifiers import KeywordSafetyClassifier, SafetyClassifier
from .aggregation import AggregationEngine
from .cache import AggregateStatCache
from .constants import DEFAULT_CLASSIFIER_TIMEOUT_SECONDS
from .credential_issuer import CredentialIssuer
from .event_bus import EventBus
from .grade_store import GradeStore
from .safety_screening import SafetyScreeningEngine
from .self_evaluation import SelfEvaluationIntake
from .submission_feedback import SubmissionFeedbackService

logger = logging.getLogger(__name__)


class GradingEngine:
    """Container of wired engine components for one session"""

    def __init__(
        self,
        db: Session,
        hierarchy: SkillHierarchy,
        rubric: RubricConfig = DEFAULT_RUBRIC,
        stat_cache: Optional[AggregateStatCache] = None,
        classifier: Optional[SafetyClassifier] = None,
        llm_provider: Optional[LLMProvider] = None,
        notification_sink: Optional[NotificationSink] = None,
        roster: Optional[RosterProvider] = None,
        classifier_timeout_seconds: float = DEFAULT_CLASSIFIER_TIMEOUT_SECONDS,
    ):
        self.db = db
        self.hierarchy = hierarchy
        self.rubric = rubric
        self.event_bus = EventBus()

        grade_repo = GradeRepository(db)
        assessment_repo = AssessmentRepository(db)
        self.roster = roster or DatabaseRosterProvider(UserRepository(db), assessment_repo)

        submission_repo = SubmissionRepository(db)
        self.grade_store = GradeStore(grade_repo, submission_repo, assessment_repo, self.event_bus)
        self.aggregation = AggregationEngine(grade_repo, hierarchy, self.roster, cache=stat_cache, rubric=rubric)
        self.credentials = CredentialIssuer(
            CredentialRepository(db), grade_repo, hierarchy, event_bus=self.event_bus, rubric=rubric
        )
        self.screening = SafetyScreeningEngine(
            SafetyIncidentRepository(db),
            self.roster,
            classifier or KeywordSafetyClassifier(),
            event_bus=self.event_bus,
            timeout_seconds=classifier_timeout_seconds,
        )
        self.feedback = AIFeedbackService(llm_provider)
        self.self_evaluations = SelfEvaluationIntake(
            SelfEvaluationRepository(db), self.screening, self.feedback, hierarchy=hierarchy
        )
        self.submission_feedback = SubmissionFeedbackService(
            submission_repo, assessment_repo, self.grade_store, self.feedback, hierarchy=hierarchy
        )

        # Statistics before credentials
        self.aggregation.subscribe(self.event_bus)
        self.credentials.subscribe(self.event_bus)
        subscribe_sink(self.event_bus, notification_sink or DatabaseNotificationSink(NotificationRepository(db)))
