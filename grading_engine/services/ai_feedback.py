"""
AI Feedback Service - draft feedback text for teachers and students

The prompt is built from the question, the rubric criteria and a sample
answer; the provider's reply is returned verbatim and stored by the
caller. The exact wording of the reply is not interpreted.

Any provider failure degrades to a fixed fallback text so that grading is
never blocked on text generation.

Usage:
    service = AIFeedbackService(LLMProviderFactory.create_from_env())
    feedback = await service.generate_question_feedback(
        question_text, student_answer, rubric_criteria, sample_answer
    )
"""
from typing import Dict, List, Optional
import logging

from ..core.cache import sanitize_for_logs
from ..core.constants import AI_FEEDBACK_FALLBACK
from ..core import metrics
from ..llm.base import LLMMessage, LLMProvider, LLMRole

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert educator with extensive experience in assessment and grading. "
    "Provide fair, consistent, and educationally sound feedback."
)

QUESTION_TEMPLATE = """You are grading a student's response to a specific question.

QUESTION: {question}

STUDENT ANSWER: {answer}

RUBRIC CRITERIA: {criteria}

SAMPLE/IDEAL ANSWER: {sample}

CURRENT RUBRIC LEVEL: {level}

Write 2-4 sentences of constructive feedback addressed to the student:
what the answer does well and the most important step to reach the next
rubric level."""

SELF_EVALUATION_TEMPLATE = """You are an AI tutor helping a student improve in "{skill}".

RUBRIC LEVELS:
{rubric}

STUDENT SELF-EVALUATION:
- Self-assessed level: {level}
- Justification: {justification}
- Examples provided: {examples}

Give specific, actionable guidance to help the student progress from their
current level to "applying" (the highest level)."""

SUBMISSION_TEMPLATE = """You are giving personalized feedback on a graded submission for "{title}".

STUDENT RESPONSES:
{responses}

GRADES:
{grades}

Write about 100-200 words addressed to the student. Acknowledge strengths,
name the areas to improve and give concrete next steps in a
growth-oriented tone."""


class AIFeedbackService:
    """Generates feedback text with an LLM provider"""

    def __init__(self, llm_provider: Optional[LLMProvider] = None, temperature: float = 0.3, max_tokens: int = 800):
        self.llm_provider = llm_provider
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate_question_feedback(
        self,
        question_text: str,
        student_answer: str,
        rubric_criteria: Optional[str] = None,
        sample_answer: Optional[str] = None,
        rubric_level: Optional[str] = None,
    ) -> str:
        prompt = QUESTION_TEMPLATE.format(
            question=question_text,
            answer=student_answer,
            criteria=rubric_criteria or "Evaluate based on accuracy, completeness, and understanding demonstrated",
            sample=sample_answer or "Not provided",
            level=rubric_level or "Not graded yet",
        )
        return await self._generate(prompt, purpose="question_feedback")

    async def generate_submission_feedback(
        self,
        assessment_title: str,
        responses: List[str],
        grade_lines: List[str],
    ) -> str:
        """Overall feedback for a graded submission, one grade per line"""
        prompt = SUBMISSION_TEMPLATE.format(
            title=assessment_title,
            responses="\n".join(f"{index + 1}. {text}" for index, text in enumerate(responses)) or "None",
            grades="\n".join(grade_lines),
        )
        return await self._generate(prompt, purpose="submission_feedback")

    async def generate_self_evaluation_feedback(
        self,
        component_skill_name: str,
        rubric_levels: Optional[Dict[str, str]],
        self_assessed_level: str,
        justification: str,
        examples: Optional[str] = None,
    ) -> str:
        rubric = "\n".join(
            f"{level.upper()}: {description}" for level, description in (rubric_levels or {}).items()
        )
        prompt = SELF_EVALUATION_TEMPLATE.format(
            skill=component_skill_name,
            rubric=rubric or "Not provided",
            level=self_assessed_level,
            justification=justification,
            examples=examples or "None",
        )
        return await self._generate(prompt, purpose="self_evaluation_feedback")

    async def _generate(self, prompt: str, purpose: str) -> str:
        if self.llm_provider is None:
            return AI_FEEDBACK_FALLBACK

        provider_name = getattr(self.llm_provider, "name", "unknown")
        try:
            response = await self.llm_provider.generate(
                messages=[
                    LLMMessage(role=LLMRole.SYSTEM, content=SYSTEM_PROMPT),
                    LLMMessage(role=LLMRole.USER, content=prompt),
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            metrics.llm_requests_total.labels(provider=provider_name, status="error").inc()
            logger.error(
                f"AI feedback generation failed, using fallback: {type(e).__name__}",
                exc_info=True,
                extra={"purpose": purpose, "provider": provider_name},
            )
            return AI_FEEDBACK_FALLBACK

        metrics.llm_requests_total.labels(provider=provider_name, status="success").inc()
        content = response.content.strip()
        if not content:
            logger.warning("AI feedback was empty, using fallback", extra={"purpose": purpose})
            return AI_FEEDBACK_FALLBACK
        logger.info(
            "AI feedback generated",
            extra={"purpose": purpose, "model": response.model, "feedback": sanitize_for_logs(content)},
        )
        return content
