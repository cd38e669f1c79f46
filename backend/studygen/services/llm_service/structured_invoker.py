"""Structured LLM invocation with robust JSON parsing and schema validation.

A :class:`StructuredPromptTask` is the reusable unit of work of every
generation stage:

1. Validate the typed input
2. Render the prompt template
3. Call the LLM once (bounded by ``LLM_TIMEOUT``)
4. Extract and repair JSON from the raw response
5. Validate against the Pydantic output schema

Provider failures surface as :class:`ServiceUnavailable`, unusable output as
:class:`SchemaViolation`.  The task never retries; retry policy belongs to the
stage runner.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Generic, Mapping, Optional, Type, TypeVar, Union

import json_repair
from pydantic import BaseModel, ValidationError

from studygen.core.config import settings
from studygen.services.llm_service.errors import SchemaViolation, ServiceUnavailable
from studygen.services.llm_service.llm import get_llm_structured

logger = logging.getLogger(__name__)

I = TypeVar("I", bound=BaseModel)
O = TypeVar("O", bound=BaseModel)

# ── JSON Extraction Patterns ──────────────────────────────────

_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?|```\s*", re.DOTALL)
_THINK_TAG_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_CHATTY_PREFIX_RE = re.compile(
    r"^(Here's|Here is|The JSON|Output:|Response:)[^{\[]*", re.IGNORECASE
)


# ── JSON Auto-Repair ──────────────────────────────────────────


def _clean_json_text(text: str) -> str:
    """Remove markdown fences, reasoning tags, and explanatory prefixes."""
    text = _THINK_TAG_RE.sub("", text).strip()
    text = _CODE_FENCE_RE.sub("", text).strip()
    text = _CHATTY_PREFIX_RE.sub("", text)
    return text.strip()


def _extract_json_block(text: str) -> str:
    """Extract the outermost {...} or [...] block, whichever opens first."""
    start_brace = text.find("{")
    start_bracket = text.find("[")

    if start_brace == -1 and start_bracket == -1:
        raise ValueError("No JSON block found")

    if start_bracket == -1 or (start_brace != -1 and start_brace < start_bracket):
        start, end = start_brace, text.rfind("}")
    else:
        start, end = start_bracket, text.rfind("]")

    if end > start:
        return text[start:end + 1]
    raise ValueError("Could not extract complete JSON block")


def _repair_json(text: str) -> str:
    """Apply common JSON repair heuristics.

    - Replace single-quoted keys/values with double quotes
    - Insert missing commas between properties on separate lines
    - Remove trailing commas before closing brackets
    """
    text = re.sub(r"'([^']*)'(?=\s*[:,\}\]])", r'"\1"', text)
    text = re.sub(r'"\s*\n\s*"', '",\n"', text)
    text = re.sub(r",(\s*[}\]])", r"\1", text)
    return text


def parse_json_robust(text: str) -> Any:
    """Extract and parse JSON (object or array) from LLM output.

    Attempts, in order: direct parse, cleaned parse, block extraction,
    heuristic repair, and finally the ``json_repair`` library.

    Raises:
        ValueError: If no JSON value can be recovered.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    cleaned = _clean_json_text(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    candidate = cleaned
    try:
        candidate = _extract_json_block(cleaned)
        return json.loads(candidate)
    except (ValueError, json.JSONDecodeError):
        pass

    try:
        return json.loads(_repair_json(candidate))
    except json.JSONDecodeError:
        pass

    repaired = json_repair.loads(candidate)
    # json_repair returns "" when there is nothing to salvage
    if repaired in ("", None):
        raise ValueError(
            f"Cannot extract valid JSON from LLM response. First 500 chars: {text[:500]}"
        )
    return repaired


def _response_text(response: Any) -> str:
    """Pull plain text out of a chat message, a content-part list, or a string."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        content = "".join(parts)
    return str(content or "").strip()


# ── Structured Prompt Task ────────────────────────────────────


class StructuredPromptTask(Generic[I, O]):
    """One prompt template bound to an input schema and an output schema.

    Args:
        name: Label used in logs and error messages.
        input_schema: Pydantic model the inputs are validated into.
        output_schema: Pydantic model the LLM output must satisfy.
        prompt_builder: Renders the prompt from a validated input.
        temperature: Optional override of ``LLM_TEMPERATURE_STRUCTURED``.
        timeout: Optional override of ``LLM_TIMEOUT`` (seconds).
    """

    def __init__(
        self,
        name: str,
        input_schema: Type[I],
        output_schema: Type[O],
        prompt_builder: Callable[[I], str],
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.name = name
        self.input_schema = input_schema
        self.output_schema = output_schema
        self.prompt_builder = prompt_builder
        self.temperature = temperature
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"StructuredPromptTask({self.name!r} -> {self.output_schema.__name__})"

    def build_prompt(self, inputs: Union[I, Mapping[str, Any]]) -> str:
        """Validate *inputs* and render the prompt.

        Raises:
            ValueError: If the inputs do not match ``input_schema``.
        """
        if not isinstance(inputs, self.input_schema):
            inputs = self.input_schema.model_validate(inputs)
        return self.prompt_builder(inputs)

    def parse(self, text: str) -> O:
        """Parse and validate raw LLM text against ``output_schema``."""
        if not text:
            raise SchemaViolation("LLM returned an empty response", task=self.name)
        try:
            data = parse_json_robust(text)
        except ValueError as exc:
            raise SchemaViolation(str(exc), task=self.name, raw=text) from exc

        try:
            return self.output_schema.model_validate(data)
        except ValidationError as exc:
            raise SchemaViolation(
                f"output does not match {self.output_schema.__name__}: "
                f"{exc.error_count()} error(s): {str(exc)[:300]}",
                task=self.name,
                raw=text,
            ) from exc

    async def _complete(self, prompt: str) -> str:
        effective_timeout = self.timeout or settings.LLM_TIMEOUT
        try:
            llm = get_llm_structured(temperature=self.temperature)
            response = await asyncio.wait_for(llm.ainvoke(prompt), timeout=effective_timeout)
        except asyncio.TimeoutError as exc:
            raise ServiceUnavailable(
                f"LLM invocation exceeded {effective_timeout}s timeout", task=self.name
            ) from exc
        except ServiceUnavailable as exc:
            exc.task = exc.task or self.name
            raise
        except Exception as exc:
            raise ServiceUnavailable(
                f"LLM call failed: {type(exc).__name__}: {str(exc)[:300]}", task=self.name
            ) from exc
        return _response_text(response)

    async def run(self, inputs: Union[I, Mapping[str, Any]]) -> O:
        """Issue exactly one LLM call and return the validated output.

        Raises:
            ValueError: Invalid inputs (caller error).
            ServiceUnavailable: The call could not complete.
            SchemaViolation: The output could not be parsed into the schema.
        """
        prompt = self.build_prompt(inputs)

        start = time.time()
        logger.debug("Invoking LLM for %s (%d prompt chars)", self.name, len(prompt))
        text = await self._complete(prompt)
        logger.debug("%s responded in %.2fs (%d chars)", self.name, time.time() - start, len(text))

        result = self.parse(text)
        logger.info("%s output validated against %s", self.name, self.output_schema.__name__)
        return result
