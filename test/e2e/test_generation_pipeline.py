"""
End-to-end test: topic pipeline (information → flowchart ‖ quiz → normalize).
The completion service is replaced by ScriptedLLM (see conftest.py), so the
real prompt templates, JSON parsing, schema validation, stage settlement and
normalization all run. No API key or network is required.
"""

import sys
import os
from unittest.mock import patch

import pytest

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
sys.path.insert(0, BACKEND_DIR)

from studygen.services.llm_service.errors import ServiceUnavailable
from studygen.services.llm_service.llm_schemas import GenerationResult
from studygen.services.quiz.generator import generate_information
from studygen.services.quiz.pipeline import generate_quiz_questions, generate_quiz_questions_sync

TOPIC = "Binary Search Trees"
FLOWCHART = "Start -> Compare key with node -> Go left if smaller, right if larger -> Insert at empty slot"

EMPTY_RESPONSE = {"information": "", "flowchart": "", "quiz": []}


@pytest.fixture
def replies(bst_information, bst_quiz):
    return {
        "information": {"information": bst_information},
        "flowchart": {"flowchart": FLOWCHART},
        "quiz": {"quiz": bst_quiz},
    }


# ────────────────────────────────────────────────────────────────────────────
# Happy path
# ────────────────────────────────────────────────────────────────────────────

class TestFullGeneration:

    @pytest.mark.asyncio
    async def test_result_shape(self, install_llm, stage_settings, replies, bst_information):
        install_llm(replies)
        result = await generate_quiz_questions(TOPIC)

        assert isinstance(result, GenerationResult)
        assert result.information == bst_information
        assert result.flowchart == FLOWCHART
        assert len(result.quiz) == 15

    @pytest.mark.asyncio
    async def test_quiz_is_normalized(self, install_llm, stage_settings, replies):
        install_llm(replies)
        result = await generate_quiz_questions(TOPIC)

        non_coding = result.quiz[:10]
        assert [q.difficulty for q in non_coding] == ["easy"] * 3 + ["medium"] * 4 + ["hard"] * 3
        assert not any(q.is_coding_question for q in non_coding)
        assert all(q.is_coding_question for q in result.quiz[10:])

    @pytest.mark.asyncio
    async def test_each_stage_called_once(self, install_llm, stage_settings, replies):
        llm = install_llm(replies)
        await generate_quiz_questions(TOPIC)
        assert dict(llm.calls) == {"information": 1, "flowchart": 1, "quiz": 1}

    @pytest.mark.asyncio
    async def test_flowchart_and_quiz_run_concurrently(self, install_llm, stage_settings, replies):
        llm = install_llm(replies, delay=0.05)
        await generate_quiz_questions(TOPIC)
        assert llm.max_in_flight == 2
        assert llm.concurrent_stages == {"flowchart", "quiz"}

    @pytest.mark.asyncio
    async def test_information_feeds_both_branches(self, install_llm, stage_settings, replies, bst_information):
        llm = install_llm(replies)
        await generate_quiz_questions(TOPIC)
        assert bst_information in llm.prompts["flowchart"][0]
        assert bst_information in llm.prompts["quiz"][0]
        assert TOPIC in llm.prompts["information"][0]

    @pytest.mark.asyncio
    async def test_topic_is_stripped(self, install_llm, stage_settings, replies):
        llm = install_llm(replies)
        await generate_quiz_questions(f"   {TOPIC}  ")
        assert f'"{TOPIC}"' in llm.prompts["information"][0]

    @pytest.mark.asyncio
    async def test_response_uses_wire_names(self, install_llm, stage_settings, replies):
        install_llm(replies)
        payload = (await generate_quiz_questions(TOPIC)).to_response()
        assert set(payload) == {"information", "flowchart", "quiz"}
        assert "isCodingQuestion" in payload["quiz"][0]

    def test_sync_wrapper(self, install_llm, stage_settings, replies):
        install_llm(replies)
        result = generate_quiz_questions_sync(TOPIC)
        assert len(result.quiz) == 15


# ────────────────────────────────────────────────────────────────────────────
# Information gate
# ────────────────────────────────────────────────────────────────────────────

class TestInformationGate:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("information_reply", [
        {"information": ""},
        {"information": "   \n  "},
        {"information": None},
    ])
    async def test_empty_information_short_circuits(self, install_llm, stage_settings, replies, information_reply):
        replies["information"] = information_reply
        llm = install_llm(replies)

        result = await generate_quiz_questions("Asdfgh")

        assert result.to_response() == EMPTY_RESPONSE
        assert dict(llm.calls) == {"information": 1}

    @pytest.mark.asyncio
    async def test_information_service_failure(self, install_llm, stage_settings, replies):
        replies["information"] = ServiceUnavailable("HTTP 503")
        llm = install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert result.to_response() == EMPTY_RESPONSE
        assert llm.total_calls == 1

    @pytest.mark.asyncio
    async def test_information_garbage(self, install_llm, stage_settings, replies):
        replies["information"] = "I'd rather talk about something else."
        llm = install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert result.to_response() == EMPTY_RESPONSE
        assert llm.total_calls == 1

    @pytest.mark.asyncio
    async def test_generate_information_returns_text(self, install_llm, stage_settings, replies, bst_information):
        install_llm(replies)
        assert await generate_information(TOPIC) == bst_information

    @pytest.mark.asyncio
    async def test_generate_information_failure_is_empty(self, install_llm, stage_settings, replies):
        replies["information"] = ConnectionError("refused")
        install_llm(replies)
        assert await generate_information(TOPIC) == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("topic", ["", "   "])
    async def test_blank_topic_rejected(self, install_llm, stage_settings, replies, topic):
        llm = install_llm(replies)
        with pytest.raises(ValueError):
            await generate_quiz_questions(topic)
        assert llm.total_calls == 0


# ────────────────────────────────────────────────────────────────────────────
# Branch isolation
# ────────────────────────────────────────────────────────────────────────────

class TestBranchIsolation:

    @pytest.mark.asyncio
    async def test_quiz_failure_keeps_flowchart(self, install_llm, stage_settings, replies, bst_information):
        replies["flowchart"] = {"flowchart": "A->B->C"}
        replies["quiz"] = ServiceUnavailable("HTTP 503")
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert result.information == bst_information
        assert result.flowchart == "A->B->C"
        assert result.quiz == []

    @pytest.mark.asyncio
    async def test_flowchart_failure_keeps_quiz(self, install_llm, stage_settings, replies):
        replies["flowchart"] = "<<not json>>"
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert result.flowchart == ""
        assert len(result.quiz) == 15

    @pytest.mark.asyncio
    async def test_flowchart_not_applicable(self, install_llm, stage_settings, replies):
        replies["flowchart"] = {"flowchart": ""}
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert result.flowchart == ""
        assert len(result.quiz) == 15

    @pytest.mark.asyncio
    async def test_both_branches_fail(self, install_llm, stage_settings, replies, bst_information):
        replies["flowchart"] = ServiceUnavailable("down")
        replies["quiz"] = ServiceUnavailable("down")
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert result.to_response() == {"information": bst_information, "flowchart": "", "quiz": []}

    @pytest.mark.asyncio
    async def test_branch_timeout_keeps_sibling(self, install_llm, stage_settings, replies):
        stage_settings(STAGE_TIMEOUT=0.2)
        install_llm(replies, delays={"flowchart": 2.0})

        result = await generate_quiz_questions(TOPIC)

        assert result.flowchart == ""
        assert len(result.quiz) == 15

    @pytest.mark.asyncio
    async def test_unexpected_join_error_keeps_information(self, install_llm, stage_settings, replies, bst_information):
        install_llm(replies)
        with patch("studygen.services.quiz.pipeline.join", side_effect=RuntimeError("event loop trouble")):
            result = await generate_quiz_questions(TOPIC)

        assert result.to_response() == {"information": bst_information, "flowchart": "", "quiz": []}

    @pytest.mark.asyncio
    async def test_quiz_retried_when_configured(self, install_llm, stage_settings, replies, bst_quiz):
        stage_settings(STAGE_MAX_RETRIES=1)
        attempts = iter([ServiceUnavailable("HTTP 429"), {"quiz": bst_quiz}])
        replies["quiz"] = lambda prompt: next(attempts)
        llm = install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert llm.calls["quiz"] == 2
        assert len(result.quiz) == 15


# ────────────────────────────────────────────────────────────────────────────
# Quiz size handling
# ────────────────────────────────────────────────────────────────────────────

class TestQuizSize:

    @pytest.mark.asyncio
    async def test_empty_quiz(self, install_llm, stage_settings, replies, bst_information):
        replies["quiz"] = {"quiz": []}
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert result.information == bst_information
        assert result.flowchart == FLOWCHART
        assert result.quiz == []

    @pytest.mark.asyncio
    async def test_short_quiz_kept(self, install_llm, stage_settings, replies, question_dict):
        replies["quiz"] = {"quiz": [question_dict(1, "hard"), question_dict(2, "easy")]}
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert [q.difficulty for q in result.quiz] == ["easy", "hard"]

    @pytest.mark.asyncio
    async def test_long_quiz_truncated_in_model_order(self, install_llm, stage_settings, replies, bst_quiz, question_dict):
        extra = [question_dict(100 + i, "easy") for i in range(3)]
        replies["quiz"] = {"quiz": bst_quiz + extra}
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert len(result.quiz) == 15
        questions = {q.question for q in result.quiz}
        assert not questions & {e["question"] for e in extra}

    @pytest.mark.asyncio
    async def test_malformed_items_dropped(self, install_llm, stage_settings, replies, bst_quiz):
        broken = dict(bst_quiz[0])
        del broken["options"]
        replies["quiz"] = {"quiz": [broken] + bst_quiz[1:]}
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert len(result.quiz) == 14

    @pytest.mark.asyncio
    async def test_quiz_in_code_fence(self, install_llm, stage_settings, replies, bst_quiz):
        import json
        replies["quiz"] = "```json\n" + json.dumps({"quiz": bst_quiz}) + "\n```"
        install_llm(replies)

        result = await generate_quiz_questions(TOPIC)

        assert len(result.quiz) == 15
