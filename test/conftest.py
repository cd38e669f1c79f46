"""
Shared pytest fixtures and configuration for the entire test suite.
Applies to all subdirectories: unit/, e2e/, api/

The completion service is replaced by :class:`ScriptedLLM`, which routes each
prompt to a canned reply by recognising which prompt template produced it,
counts calls per stage and records how many calls were in flight at once.
"""

import sys
import os
import asyncio
import json
from collections import defaultdict
from types import SimpleNamespace
import pytest

# ── Ensure backend is importable from every pytest session ──────────────────
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

# Minimal env so that Pydantic Settings validates without a real provider
os.environ.setdefault("LLM_PROVIDER", "GOOGLE")
os.environ.setdefault("GOOGLE_API_KEY", "test-key-not-used")


# ── Prompt → stage routing ──────────────────────────────────────────────────
# Checked in order; each marker only appears in its own template.

_STAGE_MARKERS = (
    ("syllabus_questions", "examination author"),
    ("core_topics", "curriculum analyst"),
    ("quiz", "quiz generator"),
    ("flowchart", "create a textual flowchart"),
    ("information", "in-depth background information"),
)


def stage_of(prompt: str) -> str:
    for stage, marker in _STAGE_MARKERS:
        if marker in prompt:
            return stage
    raise AssertionError(f"Unrecognised prompt: {prompt[:120]!r}")


class ScriptedLLM:
    """Async stand-in for a LangChain chat model.

    ``replies`` maps a stage name to one of:
      - a string (returned as message content)
      - a dict/list (JSON-encoded first)
      - an exception instance (raised)
      - a callable ``prompt -> reply`` (resolved, then handled as above)
    """

    def __init__(self, replies, delay=0.01, delays=None):
        self.replies = dict(replies)
        self.delay = delay
        self.delays = dict(delays or {})
        self.calls = defaultdict(int)
        self.prompts = defaultdict(list)
        self.in_flight = 0
        self.max_in_flight = 0
        self.concurrent_stages = set()
        self._active = set()

    def _resolve(self, stage, prompt):
        if stage not in self.replies:
            raise AssertionError(f"No scripted reply for stage {stage!r}")
        reply = self.replies[stage]
        if callable(reply) and not isinstance(reply, type):
            reply = reply(prompt)
        return reply

    async def ainvoke(self, prompt):
        stage = stage_of(prompt)
        self.calls[stage] += 1
        self.prompts[stage].append(prompt)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self._active.add(stage)
        if len(self._active) > 1:
            self.concurrent_stages.update(self._active)
        try:
            await asyncio.sleep(self.delays.get(stage, self.delay))
            reply = self._resolve(stage, prompt)
            if isinstance(reply, BaseException):
                raise reply
            if not isinstance(reply, str):
                reply = json.dumps(reply)
            return SimpleNamespace(content=reply)
        finally:
            self.in_flight -= 1
            self._active.discard(stage)

    @property
    def total_calls(self):
        return sum(self.calls.values())


@pytest.fixture
def install_llm(monkeypatch):
    """Install a :class:`ScriptedLLM` as the structured completion service."""
    import studygen.services.llm_service.structured_invoker as _invoker

    def _install(replies, **kwargs):
        llm = ScriptedLLM(replies, **kwargs)
        monkeypatch.setattr(_invoker, "get_llm_structured", lambda **_: llm)
        return llm

    return _install


@pytest.fixture
def stage_settings(monkeypatch):
    """Override stage execution settings for one test."""
    from studygen.core.config import settings

    def _set(**overrides):
        for key, value in overrides.items():
            monkeypatch.setattr(settings, key, value)
        return settings

    _set(STAGE_TIMEOUT=0, STAGE_MAX_RETRIES=0, STAGE_RETRY_BACKOFF=0)
    return _set


# ── Quiz data builders ──────────────────────────────────────────────────────

@pytest.fixture
def question_dict():
    """Return a builder for raw quiz question dicts as a model would emit them."""
    def _build(n, difficulty="medium", coding=False, **overrides):
        data = {
            "question": f"Question {n}: what does a binary search tree guarantee?",
            "options": {
                "A": f"Option A{n}",
                "B": f"Option B{n}",
                "C": f"Option C{n}",
                "D": f"Option D{n}",
            },
            "correct_answer": "B",
            "explanation": "Left subtree keys are smaller, right subtree keys larger.",
            "difficulty": difficulty,
            "isCodingQuestion": coding,
        }
        data.update(overrides)
        return data
    return _build


BST_DIFFICULTIES = ["hard", "easy", "medium", "easy", "hard", "medium", "easy", "medium", "hard", "medium"]


@pytest.fixture
def bst_quiz(question_dict):
    """10 non-coding questions in the reference difficulty order + 5 coding ones."""
    items = [question_dict(i, d) for i, d in enumerate(BST_DIFFICULTIES)]
    items += [question_dict(10 + i, "hard" if i % 2 else "medium", coding=True) for i in range(5)]
    return items


@pytest.fixture
def bst_information():
    return " ".join(
        ["A binary search tree keeps keys ordered so that every left descendant is smaller "
         "and every right descendant is larger than its node."] * 25
    )
