"""Prompt template loader.

Each ``get_*_prompt`` function loads a ``.txt`` template from this
package directory and substitutes placeholders.  Counts and other
fixed values are substituted before user-supplied text so that
placeholder-like sequences inside the text are left alone.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict

_DIR = os.path.dirname(__file__)


@lru_cache(maxsize=32)
def _load(filename: str) -> str:
    """Read a template file, caching the result."""
    with open(os.path.join(_DIR, filename), encoding="utf-8") as f:
        return f.read()


def _render(filename: str, subs: Dict[str, str]) -> str:
    """Load *filename* and apply all substitutions in order."""
    text = _load(filename)
    for key, val in subs.items():
        text = text.replace(key, val)
    return text


# ── Public helpers ────────────────────────────────────────


def get_topic_info_prompt(topic: str) -> str:
    return _render("topic_info_prompt.txt", {"{{TOPIC}}": topic})


def get_flowchart_prompt(topic: str, information: str) -> str:
    return _render("flowchart_prompt.txt", {
        "{{TOPIC}}": topic,
        "{{INFORMATION}}": information,
    })


def get_quiz_prompt(
    topic: str,
    information: str,
    question_count: int,
    coding_count: int,
    easy_count: int,
    medium_count: int,
    hard_count: int,
) -> str:
    return _render("quiz_prompt.txt", {
        "{{QUESTION_COUNT}}": str(question_count),
        "{{MCQ_COUNT}}": str(question_count - coding_count),
        "{{CODING_COUNT}}": str(coding_count),
        "{{EASY_COUNT}}": str(easy_count),
        "{{MEDIUM_COUNT}}": str(medium_count),
        "{{HARD_COUNT}}": str(hard_count),
        "{{TOPIC}}": topic,
        "{{INFORMATION}}": information,
    })


def get_core_topics_prompt(syllabus_text: str, past_exam_questions_text: str) -> str:
    return _render("core_topics_prompt.txt", {
        "{{PAST_EXAM_QUESTIONS_TEXT}}": past_exam_questions_text or "(none provided)",
        "{{SYLLABUS_TEXT}}": syllabus_text,
    })


def get_syllabus_questions_prompt(
    syllabus_text: str,
    flowchart1_text: str,
    flowchart2_text: str,
    past_exam_questions_text: str,
    question_count: int,
) -> str:
    return _render("syllabus_questions_prompt.txt", {
        "{{QUESTION_COUNT}}": str(question_count),
        "{{FLOWCHART1_TEXT}}": flowchart1_text or "(not available)",
        "{{FLOWCHART2_TEXT}}": flowchart2_text or "(not available)",
        "{{PAST_EXAM_QUESTIONS_TEXT}}": past_exam_questions_text or "(none provided)",
        "{{SYLLABUS_TEXT}}": syllabus_text,
    })
