"""LLM service module.

Provides the language model abstraction layer used by every generation stage.

Key modules:
- llm.py: Provider factory (Google Gemini, Ollama, NVIDIA, plain HTTP endpoint)
- structured_invoker.py: StructuredPromptTask, JSON extraction/repair
- llm_schemas.py: Pydantic schemas for structured inputs and outputs
- errors.py: ServiceUnavailable / SchemaViolation taxonomy
"""
