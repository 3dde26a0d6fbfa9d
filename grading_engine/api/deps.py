"""
FastAPI dependencies

The skill hierarchy, the aggregate stat cache, the safety classifier and the
LLM provider are process-wide; a GradingEngine is wired per request around
the request's database session.

Environment:
    NOTIFICATION_SINK   database (default, in-app notifications) or log
"""
from typing import Optional
import logging
import os
import threading

from fastapi import Depends
from sqlalchemy.orm import Session

from ..core.cache import AggregateStatCache
from ..core.engine import GradingEngine
from ..database.config import get_db
from ..database.repositories import HierarchyRepository
from ..llm.base import LLMProvider
from ..llm.factory import LLMProviderFactory
from ..models.rubric import SkillHierarchy
from ..services.notifications import LoggingNotificationSink, NotificationSink
from ..services.safety_classifiers import SafetyClassifier, create_safety_classifier_from_env

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_hierarchy: Optional[SkillHierarchy] = None
_stat_cache: Optional[AggregateStatCache] = None
_classifier: Optional[SafetyClassifier] = None
_llm_provider: Optional[LLMProvider] = None


def get_hierarchy(db: Session = Depends(get_db)) -> SkillHierarchy:
    """Skill hierarchy, loaded once per process"""
    global _hierarchy
    if _hierarchy is None:
        with _lock:
            if _hierarchy is None:
                _hierarchy = HierarchyRepository(db).load_hierarchy()
    return _hierarchy


def get_stat_cache() -> AggregateStatCache:
    global _stat_cache
    if _stat_cache is None:
        with _lock:
            if _stat_cache is None:
                _stat_cache = AggregateStatCache()
    return _stat_cache


def get_safety_classifier() -> SafetyClassifier:
    global _classifier
    if _classifier is None:
        with _lock:
            if _classifier is None:
                _classifier = create_safety_classifier_from_env()
                logger.info("Safety classifier configured", extra={"classifier": _classifier.name})
    return _classifier


def get_llm_provider() -> LLMProvider:
    global _llm_provider
    if _llm_provider is None:
        with _lock:
            if _llm_provider is None:
                _llm_provider = LLMProviderFactory.create_from_env()
    return _llm_provider


def get_notification_sink() -> Optional[NotificationSink]:
    """None selects the database sink bound to the request session"""
    if os.getenv("NOTIFICATION_SINK", "database") == "log":
        return LoggingNotificationSink()
    return None


def get_grading_engine(
    db: Session = Depends(get_db),
    hierarchy: SkillHierarchy = Depends(get_hierarchy),
    stat_cache: AggregateStatCache = Depends(get_stat_cache),
    classifier: SafetyClassifier = Depends(get_safety_classifier),
    llm_provider: LLMProvider = Depends(get_llm_provider),
    notification_sink: Optional[NotificationSink] = Depends(get_notification_sink),
) -> GradingEngine:
    return GradingEngine(
        db,
        hierarchy,
        stat_cache=stat_cache,
        classifier=classifier,
        llm_provider=llm_provider,
        notification_sink=notification_sink,
    )
