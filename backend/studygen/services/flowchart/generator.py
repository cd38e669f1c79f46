"""Flowchart generation: background information → short textual flow."""

import logging

from studygen.prompts import get_flowchart_prompt
from studygen.services.llm_service.llm_schemas import FlowchartOutput, TopicInformationInput
from studygen.services.llm_service.structured_invoker import StructuredPromptTask

logger = logging.getLogger(__name__)

flowchart_task = StructuredPromptTask(
    name="flowchart",
    input_schema=TopicInformationInput,
    output_schema=FlowchartOutput,
    prompt_builder=lambda i: get_flowchart_prompt(i.topic, i.information),
)


async def generate_flowchart(topic: str, information: str) -> str:
    """Summarize *information* as a sequential/decision-style text flowchart.

    Returns an empty string when the material has no sequential structure.
    Raises ``ServiceUnavailable`` / ``SchemaViolation`` on failure.
    """
    result = await flowchart_task.run({"topic": topic, "information": information})
    if result.is_empty():
        logger.info("No flowchart applicable for topic %r", topic)
        return ""
    return result.flowchart.strip()
