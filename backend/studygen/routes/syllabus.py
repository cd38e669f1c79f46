"""Syllabus-driven exam question route."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from studygen.services.llm_service.errors import SchemaViolation, ServiceUnavailable
from studygen.services.syllabus.generator import generate_syllabus_questions

logger = logging.getLogger(__name__)
router = APIRouter()


class SyllabusQuizRequest(BaseModel):
    syllabus_text: str = Field(min_length=1)
    past_exam_questions_text: str = ""

    @field_validator("syllabus_text")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("syllabus_text must not be blank")
        return v


@router.post("/syllabus-quiz")
async def create_syllabus_quiz(request: SyllabusQuizRequest):
    try:
        questions = await generate_syllabus_questions(
            request.syllabus_text,
            request.past_exam_questions_text,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SchemaViolation as e:
        logger.error(f"Syllabus question output invalid: {e}")
        raise HTTPException(status_code=502, detail="The model returned malformed questions, please retry")
    except ServiceUnavailable as e:
        logger.error(f"Syllabus question generation unavailable: {e}")
        raise HTTPException(status_code=503, detail="The language model is unavailable, please retry later")

    return JSONResponse(content={
        "questions": [q.model_dump(by_alias=True) for q in questions],
    })
