"""Deterministic ordering of generated quiz questions."""

from typing import Dict, Iterable, List

from studygen.services.llm_service.llm_schemas import QuizQuestion

DIFFICULTY_RANK: Dict[str, int] = {"easy": 0, "medium": 1, "hard": 2}


def normalize_quiz(items: Iterable[QuizQuestion]) -> List[QuizQuestion]:
    """Non-coding questions first, ordered easy → medium → hard, then coding ones.

    Both partitions keep the original relative order of equal-ranked items
    (``sorted`` is stable).  Items are returned as-is, never copied or edited.
    """
    items = list(items)
    non_coding = [q for q in items if not q.is_coding_question]
    coding = [q for q in items if q.is_coding_question]
    return sorted(non_coding, key=lambda q: DIFFICULTY_RANK[q.difficulty]) + coding
