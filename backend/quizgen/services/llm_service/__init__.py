"""LLM service module.

Structured-output layer between a free-text language model and callers that
need validated data.

Key modules:
- llm.py: Provider factory and client creation
- client.py: Message-in, completion-text-out model client
- output_schema.py: Declarative output schema (literal / choice / list / nested)
- text_repair.py: Best-effort repair and JSON parsing of completions
- structured_invoker.py: StructuredExtractor (augmentation, validation and retry)
- llm_schemas.py: Pydantic request and result models
- errors.py: Exception taxonomy
"""
