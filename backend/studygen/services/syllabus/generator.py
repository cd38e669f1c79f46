"""Syllabus-driven exam question generation.

Four structured stages feed a final generation call:

1. overall flowchart of the syllabus
2. core topics extracted from syllabus + past exam questions
3. flowchart of the core topics
4. ``SYLLABUS_QUESTION_COUNT`` mark-weighted questions from all of the above

Stage 1 runs concurrently with the 2 → 3 chain.  Stages 1–3 only provide
context, so their failures degrade to an empty string.  Stage 4 has no
fallback: its errors reach the caller, and an array of the wrong length is a
:class:`SchemaViolation`.
"""

from __future__ import annotations

import logging
from typing import List

from studygen.core.config import settings
from studygen.prompts import get_core_topics_prompt, get_syllabus_questions_prompt
from studygen.services.flowchart.generator import generate_flowchart
from studygen.services.llm_service.errors import SchemaViolation
from studygen.services.llm_service.llm_schemas import (
    CoreTopicsInput,
    CoreTopicsOutput,
    SyllabusQuestion,
    SyllabusQuestionsInput,
    SyllabusQuestionsOutput,
)
from studygen.services.llm_service.structured_invoker import StructuredPromptTask
from studygen.services.stage_runner import join, run_with_retry, settle

logger = logging.getLogger(__name__)

OVERALL_FLOWCHART_TOPIC = "Overall Syllabus Structure"
CORE_FLOWCHART_TOPIC = "Core Syllabus Topics"

core_topics_task = StructuredPromptTask(
    name="core_topics",
    input_schema=CoreTopicsInput,
    output_schema=CoreTopicsOutput,
    prompt_builder=lambda i: get_core_topics_prompt(i.syllabus_text, i.past_exam_questions_text),
)

syllabus_questions_task = StructuredPromptTask(
    name="syllabus_questions",
    input_schema=SyllabusQuestionsInput,
    output_schema=SyllabusQuestionsOutput,
    prompt_builder=lambda i: get_syllabus_questions_prompt(
        i.syllabus_text,
        i.flowchart1_text,
        i.flowchart2_text,
        i.past_exam_questions_text,
        i.question_count,
    ),
    temperature=settings.LLM_TEMPERATURE_CREATIVE,
)


async def extract_core_topics(syllabus_text: str, past_exam_questions_text: str) -> str:
    result = await core_topics_task.run({
        "syllabus_text": syllabus_text,
        "past_exam_questions_text": past_exam_questions_text,
    })
    return result.core_topics_text.strip()


async def _core_topics_flowchart(syllabus_text: str, past_exam_questions_text: str) -> str:
    outcome = await settle(
        "core_topics",
        lambda: extract_core_topics(syllabus_text, past_exam_questions_text),
        "",
    )
    if not outcome.ok:
        return ""
    flowchart = await settle(
        "core_topics_flowchart",
        lambda: generate_flowchart(CORE_FLOWCHART_TOPIC, outcome.value),
        "",
    )
    return flowchart.value


async def generate_syllabus_questions(
    syllabus_text: str,
    past_exam_questions_text: str = "",
) -> List[SyllabusQuestion]:
    """Generate exactly ``SYLLABUS_QUESTION_COUNT`` exam questions.

    Raises:
        ValueError: If *syllabus_text* is blank.
        ServiceUnavailable: The final generation call could not complete.
        SchemaViolation: The final output is malformed or has the wrong length.
    """
    if not syllabus_text or not syllabus_text.strip():
        raise ValueError("syllabus_text must not be blank")
    past_exam_questions_text = past_exam_questions_text or ""
    expected = settings.SYLLABUS_QUESTION_COUNT

    logger.info("Generating syllabus flowcharts (%d syllabus chars)", len(syllabus_text))
    overall, core = await join(
        settle(
            "overall_flowchart",
            lambda: generate_flowchart(OVERALL_FLOWCHART_TOPIC, syllabus_text),
            "",
        ),
        settle(
            "core_topics_chain",
            lambda: _core_topics_flowchart(syllabus_text, past_exam_questions_text),
            "",
        ),
    )

    logger.info("Generating %d syllabus questions", expected)
    output = await run_with_retry(
        lambda: syllabus_questions_task.run({
            "syllabus_text": syllabus_text,
            "flowchart1_text": overall.value,
            "flowchart2_text": core.value,
            "past_exam_questions_text": past_exam_questions_text,
            "question_count": expected,
        }),
        stage="syllabus_questions",
    )

    questions = list(output.root)
    if len(questions) != expected:
        raise SchemaViolation(
            f"expected exactly {expected} questions, got {len(questions)}",
            task=syllabus_questions_task.name,
        )
    logger.info("Generated %d syllabus questions", len(questions))
    return questions

