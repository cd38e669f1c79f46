"""Pydantic schemas for structured LLM inputs and outputs.

Output models are closed shapes: unknown keys are rejected, enumerations are
``Literal`` types and quiz items are frozen once validated.  A handful of
``mode="before"`` validators repair the common ways models drift from the
requested JSON (upper-case difficulty, options as a list, ``null`` for an
empty field) before strict validation runs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator

logger = logging.getLogger(__name__)

Difficulty = Literal["easy", "medium", "hard"]
OptionLabel = Literal["A", "B", "C", "D"]

OPTION_LABELS = ("A", "B", "C", "D")
ALLOWED_MARKS = (1.0, 2.5, 5.0, 12.5)

_CLOSED = ConfigDict(extra="forbid", populate_by_name=True)


# ── Inputs ────────────────────────────────────────────────


class TopicInput(BaseModel):
    topic: str = Field(min_length=1)

    @field_validator("topic")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("topic must not be blank")
        return v.strip()


class TopicInformationInput(TopicInput):
    information: str


class CoreTopicsInput(BaseModel):
    syllabus_text: str
    past_exam_questions_text: str = ""


class SyllabusQuestionsInput(CoreTopicsInput):
    flowchart1_text: str = ""
    flowchart2_text: str = ""
    question_count: int = Field(ge=1)


# ── Background information ────────────────────────────────


class TopicInformationOutput(BaseModel):
    model_config = _CLOSED

    information: str

    @field_validator("information", mode="before")
    @classmethod
    def _null_means_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def is_empty(self) -> bool:
        return not self.information.strip()


# ── Flowchart ─────────────────────────────────────────────


class FlowchartOutput(BaseModel):
    model_config = _CLOSED

    flowchart: str

    @field_validator("flowchart", mode="before")
    @classmethod
    def _null_means_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def is_empty(self) -> bool:
        return not self.flowchart.strip()


# ── Quiz ──────────────────────────────────────────────────


class QuizOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    A: str = Field(min_length=1)
    B: str = Field(min_length=1)
    C: str = Field(min_length=1)
    D: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _repair_list_options(cls, data: Any) -> Any:
        """Accept ``["..", "..", "..", ".."]`` as options A–D."""
        if isinstance(data, (list, tuple)) and len(data) == len(OPTION_LABELS):
            return dict(zip(OPTION_LABELS, data))
        return data

    def labels(self) -> List[str]:
        return list(OPTION_LABELS)


class QuizQuestion(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    question: str = Field(min_length=1)
    options: QuizOptions
    correct_answer: OptionLabel
    explanation: str
    difficulty: Difficulty
    is_coding_question: bool = Field(default=False, alias="isCodingQuestion")

    @field_validator("difficulty", "correct_answer", mode="before")
    @classmethod
    def _normalize_enum_case(cls, v: Any, info) -> Any:
        if not isinstance(v, str):
            return v
        v = v.strip()
        return v.lower() if info.field_name == "difficulty" else v.upper()

    @field_validator("is_coding_question", mode="before")
    @classmethod
    def _null_means_false(cls, v: Any) -> Any:
        return False if v is None else v

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "QuizQuestion":
        if self.correct_answer not in self.options.labels():
            raise ValueError(f"correct_answer {self.correct_answer!r} is not an option label")
        return self


class QuizOutput(BaseModel):
    model_config = _CLOSED

    quiz: List[Any]  # raw dicts accepted; validated + filtered below

    @field_validator("quiz", mode="before")
    @classmethod
    def _null_means_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="after")
    def _drop_incomplete_questions(self) -> "QuizOutput":
        """Discard malformed/truncated question objects, keep valid ones.

        An explicitly empty list is a valid "insufficient material" answer.
        A non-empty list with no valid question at all is not.
        """
        if not self.quiz:
            return self
        valid = []
        for index, item in enumerate(self.quiz):
            if isinstance(item, QuizQuestion):
                valid.append(item)
                continue
            try:
                valid.append(QuizQuestion.model_validate(item))
            except ValueError as exc:
                logger.warning("Dropping invalid quiz item #%d: %s", index, str(exc)[:200])
        if not valid:
            raise ValueError("No valid quiz questions found in LLM output")
        self.quiz = valid  # type: ignore[assignment]
        return self

    def is_empty(self) -> bool:
        return not self.quiz


# ── Syllabus variant ──────────────────────────────────────


class CoreTopicsOutput(BaseModel):
    model_config = _CLOSED

    core_topics_text: str = Field(alias="coreTopicsText")

    @field_validator("core_topics_text", mode="before")
    @classmethod
    def _null_means_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def is_empty(self) -> bool:
        return not self.core_topics_text.strip()


class SyllabusQuestion(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    question_text: str = Field(min_length=1, alias="questionText")
    marks: float

    @field_validator("marks", mode="after")
    @classmethod
    def _allowed_marks(cls, v: float) -> float:
        if v not in ALLOWED_MARKS:
            raise ValueError(f"marks must be one of {ALLOWED_MARKS}, got {v}")
        return v


class SyllabusQuestionsOutput(RootModel[List[SyllabusQuestion]]):

    @model_validator(mode="before")
    @classmethod
    def _unwrap_single_key_object(cls, data: Any) -> Any:
        """Accept ``{"questions": [...]}`` for a top-level array."""
        if isinstance(data, dict) and len(data) == 1:
            (value,) = data.values()
            if isinstance(value, list):
                return value
        return data

    def is_empty(self) -> bool:
        return not self.root


# ── Pipeline result ───────────────────────────────────────


class GenerationResult(BaseModel):
    """Terminal artifact of the topic pipeline."""

    model_config = ConfigDict(populate_by_name=True)

    information: str = ""
    flowchart: str = ""
    quiz: List[QuizQuestion] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "GenerationResult":
        return cls(information="", flowchart="", quiz=[])

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
