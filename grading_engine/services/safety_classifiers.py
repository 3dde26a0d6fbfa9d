"""
Safety classifiers for self-evaluation text

A classifier answers ``{is_risky, category, severity}`` for a text plus its
conversation history. Classifiers raise ``ClassifierUnavailableError`` (or
any exception) on failure; the Safety Screening Engine turns every failure
into a fail-open incident.

Environment:
    SAFETY_CLASSIFIER   keyword (default) or llm
"""
import json
import os
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple
import logging

from ..core.exceptions import ClassifierUnavailableError
from ..llm.base import LLMMessage, LLMProvider, LLMRole
from ..llm.factory import LLMProviderFactory
from ..models.incident import SafetyClassification

logger = logging.getLogger(__name__)

History = Optional[List[Dict[str, Any]]]


class SafetyClassifier(Protocol):
    name: str

    async def classify(self, text: str, history: History = None) -> SafetyClassification:
        ...


# (category, severity, phrases); first match wins, most severe first.
# Self-harm phrases are checked before harm-to-others ("want to kill myself").
KEYWORD_TAXONOMY: Sequence[Tuple[str, str, Sequence[str]]] = (
    (
        "suicidal_ideation",
        "critical",
        (
            "suicide", "kill myself", "self-harm", "self harm", "hurt myself",
            "want to die", "end my life",
        ),
    ),
    (
        "homicidal_ideation",
        "critical",
        (
            "kill someone", "murder", "kill them", "kill him", "kill her",
            "hurt someone", "harm others", "want to kill", "going to kill",
            "planning to hurt", "thinking about killing", "homicide",
        ),
    ),
    ("violence", "high", ("violence", "violent", "kill", "shoot", "stab", "beat up")),
    (
        "inappropriate_language",
        "medium",
        (
            "damn", "hell", "crap", "shit", "fuck", "bitch", "ass", "asshole",
            "bastard", "piss", "dick", "cock", "pussy", "whore", "slut",
        ),
    ),
)


def _phrase_pattern(phrases: Sequence[str]) -> "re.Pattern":
    alternatives = "|".join(re.escape(phrase) for phrase in sorted(phrases, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


class KeywordSafetyClassifier:
    """
    Deterministic phrase matcher.

    Only the student's own text is matched, together with student turns of
    the history; assistant turns are ignored.
    """

    name = "keyword"

    def __init__(self, taxonomy: Sequence[Tuple[str, str, Sequence[str]]] = KEYWORD_TAXONOMY):
        self._patterns = [(category, severity, _phrase_pattern(phrases)) for category, severity, phrases in taxonomy]

    async def classify(self, text: str, history: History = None) -> SafetyClassification:
        return self.classify_sync(text, history)

    def classify_sync(self, text: str, history: History = None) -> SafetyClassification:
        student_turns = [
            str(turn.get("content", ""))
            for turn in (history or [])
            if turn.get("role") in (None, "student", "user")
        ]
        content = "\n".join([text or "", *student_turns])
        for category, severity, pattern in self._patterns:
            if pattern.search(content):
                return SafetyClassification(is_risky=True, category=category, severity=severity, confidence=0.7)
        return SafetyClassification(is_risky=False, severity="low", confidence=0.7)


CLASSIFIER_PROMPT = """Analyze the following student text for any concerning content, including:
- References to homicide, murder, or harming others
- Suicidal ideation or self-harm
- Violence or threats
- Inappropriate or dangerous content

TEXT:
{text}

RECENT CONVERSATION:
{history}

Respond with JSON only:
{{"is_risky": boolean, "category": "homicidal_ideation" | "suicidal_ideation" | "violence" | "inappropriate_language" | "other" | null, "severity": "low" | "medium" | "high" | "critical"}}"""

_SEVERITIES = {"low", "medium", "high", "critical"}


class LLMSafetyClassifier:
    """Asks the configured LLM provider for a JSON classification"""

    name = "llm"

    def __init__(self, llm_provider: LLMProvider):
        self.llm_provider = llm_provider

    async def classify(self, text: str, history: History = None) -> SafetyClassification:
        rendered_history = "\n".join(
            f"{turn.get('role', 'student')}: {turn.get('content', '')}" for turn in (history or [])[-10:]
        )
        response = await self.llm_provider.generate(
            messages=[
                LLMMessage(
                    role=LLMRole.SYSTEM,
                    content="You are a safety analysis AI. Prioritize student and public safety above all else.",
                ),
                LLMMessage(
                    role=LLMRole.USER,
                    content=CLASSIFIER_PROMPT.format(text=text, history=rendered_history or "(none)"),
                ),
            ],
            temperature=0.0,
            max_tokens=200,
        )
        return self._parse(response.content)

    @staticmethod
    def _parse(content: str) -> SafetyClassification:
        """
        Extract the JSON object from the reply (it may carry extra text).

        Raises:
            ClassifierUnavailableError: no JSON, invalid JSON or wrong fields
        """
        start = content.find("{")
        end = content.rfind("}") + 1
        if start == -1 or end == 0:
            raise ClassifierUnavailableError("malformed classifier output: no JSON object")
        try:
            data = json.loads(content[start:end])
        except json.JSONDecodeError as e:
            raise ClassifierUnavailableError(f"malformed classifier output: {e.msg}") from e

        is_risky = data.get("is_risky") if isinstance(data, dict) else None
        if not isinstance(is_risky, bool):
            raise ClassifierUnavailableError("malformed classifier output: is_risky is not a boolean")
        severity = str(data.get("severity") or ("medium" if is_risky else "low")).lower()
        if severity not in _SEVERITIES:
            raise ClassifierUnavailableError(f"malformed classifier output: unknown severity '{severity}'")
        return SafetyClassification(is_risky=is_risky, category=data.get("category"), severity=severity)


def create_safety_classifier_from_env(classifier_type: Optional[str] = None) -> SafetyClassifier:
    """
    Build the classifier named by SAFETY_CLASSIFIER.

    Raises:
        ValueError: unknown classifier type
    """
    classifier_type = classifier_type or os.getenv("SAFETY_CLASSIFIER", "keyword")
    if classifier_type == "keyword":
        return KeywordSafetyClassifier()
    if classifier_type == "llm":
        return LLMSafetyClassifier(LLMProviderFactory.create_from_env())
    raise ValueError(f"Unknown safety classifier: {classifier_type}. Available: keyword, llm")
