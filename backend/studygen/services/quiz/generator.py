"""Background information and quiz generation with Pydantic validation."""

from __future__ import annotations

import logging
from typing import List

from studygen.core.config import settings
from studygen.prompts import get_quiz_prompt, get_topic_info_prompt
from studygen.services.llm_service.llm_schemas import (
    QuizOutput,
    QuizQuestion,
    TopicInformationInput,
    TopicInformationOutput,
    TopicInput,
)
from studygen.services.llm_service.structured_invoker import StructuredPromptTask
from studygen.services.stage_runner import StageOutcome, settle

logger = logging.getLogger(__name__)

information_task = StructuredPromptTask(
    name="information",
    input_schema=TopicInput,
    output_schema=TopicInformationOutput,
    prompt_builder=lambda i: get_topic_info_prompt(i.topic),
)

quiz_task = StructuredPromptTask(
    name="quiz",
    input_schema=TopicInformationInput,
    output_schema=QuizOutput,
    prompt_builder=lambda i: get_quiz_prompt(
        i.topic,
        i.information,
        question_count=settings.QUIZ_QUESTION_COUNT,
        coding_count=settings.QUIZ_CODING_COUNT,
        easy_count=settings.QUIZ_EASY_COUNT,
        medium_count=settings.QUIZ_MEDIUM_COUNT,
        hard_count=settings.QUIZ_HARD_COUNT,
    ),
)


async def _information_text(topic: str) -> str:
    result = await information_task.run({"topic": topic})
    return result.information


async def run_information_stage(topic: str) -> StageOutcome[str]:
    """Information stage as a settled outcome (success / empty / failed)."""
    return await settle(f"information[{topic}]", lambda: _information_text(topic), "")


async def generate_information(topic: str) -> str:
    """Generate ~500-700 words of background information about *topic*.

    Returns an empty string when the model declines the topic or when the
    call fails; both stop the pipeline the same way.
    """
    outcome = await run_information_stage(topic)
    return outcome.value


async def generate_quiz(topic: str, information: str) -> List[QuizQuestion]:
    """Generate quiz questions from *information* (not yet normalized).

    A short or empty list is a valid answer.  Questions beyond
    ``QUIZ_QUESTION_COUNT`` are dropped in model order.
    Raises ``ServiceUnavailable`` / ``SchemaViolation`` on failure.
    """
    result = await quiz_task.run({"topic": topic, "information": information})
    questions: List[QuizQuestion] = list(result.quiz)

    target = settings.QUIZ_QUESTION_COUNT
    if not questions:
        logger.warning("Quiz generation yielded an empty array for topic %r", topic)
    elif len(questions) < target:
        logger.warning("Quiz generation yielded only %d questions (expected %d)", len(questions), target)
    elif len(questions) > target:
        logger.warning("Quiz generation yielded %d questions, keeping the first %d", len(questions), target)
        questions = questions[:target]
    return questions
