"""Topic quiz generation route."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from studygen.services.quiz.pipeline import generate_quiz_questions

logger = logging.getLogger(__name__)
router = APIRouter()


class QuizRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=200)

    @field_validator("topic")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("topic must not be blank")
        return v.strip()


@router.post("/quiz")
async def create_quiz(request: QuizRequest):
    """Generate background information, a flowchart and a sorted quiz.

    Empty fields mean the topic was too ambiguous or generation failed;
    the response shape is always the same.
    """
    try:
        result = await generate_quiz_questions(request.topic)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return JSONResponse(content=result.to_response())
