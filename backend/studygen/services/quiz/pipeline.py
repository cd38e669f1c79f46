"""Topic pipeline: information → {flowchart, quiz} → normalized result.

    Start ──► information ──(empty)──────────────────────────► Done ("", "", [])
                  │
                  └─(text)─► FanOut ─┬─ flowchart ─┐
                                     └─ quiz ──────┴─► Join ─► normalize ─► Done

The flowchart and quiz branches settle independently: a failure of one maps
to its empty value and never cancels the other.
"""

from __future__ import annotations

import asyncio
import logging
import time

from studygen.services.flowchart.generator import generate_flowchart
from studygen.services.llm_service.llm_schemas import GenerationResult
from studygen.services.quiz.generator import generate_quiz, run_information_stage
from studygen.services.quiz.normalizer import normalize_quiz
from studygen.services.stage_runner import StageStatus, join, settle

logger = logging.getLogger(__name__)


async def generate_quiz_questions(topic: str) -> GenerationResult:
    """Generate background information, a flowchart and a sorted quiz for *topic*.

    Never raises for generation problems; missing parts come back empty.

    Raises:
        ValueError: If *topic* is blank.
    """
    if not topic or not topic.strip():
        raise ValueError("topic must not be blank")
    topic = topic.strip()
    start = time.time()

    logger.info("Generating info for topic: %s", topic)
    info_outcome = await run_information_stage(topic)
    information = info_outcome.value

    if info_outcome.status is not StageStatus.SUCCESS:
        if info_outcome.status is StageStatus.FAILED:
            logger.error("Information stage failed for %r; returning empty result", topic)
        else:
            logger.warning("Could not generate sufficient information for topic: %s", topic)
        return GenerationResult.empty()

    try:
        logger.info("Generating flowchart and quiz for topic: %s", topic)
        flowchart_outcome, quiz_outcome = await join(
            settle(f"flowchart[{topic}]", lambda: generate_flowchart(topic, information), ""),
            settle(f"quiz[{topic}]", lambda: generate_quiz(topic, information), []),
        )
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.error("Unexpected error during parallel generation for topic %r: %s", topic, exc, exc_info=True)
        return GenerationResult(information=information, flowchart="", quiz=[])

    quiz = quiz_outcome.value
    if quiz:
        quiz = normalize_quiz(quiz)

    logger.info(
        "Generation finished for %r in %.2fs: flowchart=%s quiz=%s (%d questions)",
        topic, time.time() - start,
        flowchart_outcome.status.value, quiz_outcome.status.value, len(quiz),
    )
    return GenerationResult(information=information, flowchart=flowchart_outcome.value, quiz=quiz)


def generate_quiz_questions_sync(topic: str) -> GenerationResult:
    """Blocking wrapper for scripts and the CLI."""
    return asyncio.run(generate_quiz_questions(topic))
