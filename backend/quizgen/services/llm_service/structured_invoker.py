"""Structured LLM extraction with prompt augmentation, repair, and retry.

Pipeline for one request:

1. Augment the system prompt with format instructions derived from the
   output schema (computed once per request)
2. Request one completion from the model client
3. Repair the raw text and parse it as JSON
4. Check the array/object shape against the batch/single expectation
5. Validate and coerce every element field by field
6. On any failure, append the failure to the next attempt's system prompt
   and retry, up to ``max_attempts`` attempts in total

Only ``ExhaustedRetriesError`` (and ``ExtractionCancelledError`` when a
deadline is given) reach the caller; every per-attempt failure is logged and
turned into feedback for the model.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from quizgen.core.config import settings
from quizgen.services.llm_service.client import ChatMessage, ChatModelClient
from quizgen.services.llm_service.errors import (
    CompletionTransportError,
    ExhaustedRetriesError,
    ExtractionCancelledError,
    SchemaViolationError,
    ShapeMismatchError,
    StructuredOutputError,
)
from quizgen.services.llm_service.llm_schemas import PromptRequest
from quizgen.services.llm_service.output_schema import (
    ChoiceField,
    ListField,
    OutputSchema,
)
from quizgen.services.llm_service.text_repair import parse_completion

logger = logging.getLogger(__name__)

# ── Format instructions ───────────────────────────────────────

FORMAT_INSTRUCTION = (
    "\nYou are to output the following in json format: {schema}. "
    "\nDo not put quotation marks or escape character \\ in the output fields."
)
CHOICE_INSTRUCTION = "\nIf output field is a list, classify output into the best element of the list."
DYNAMIC_INSTRUCTION = (
    "\nAny text enclosed by < and > indicates you must generate content to replace it. "
    "Example input: Go to <location>, Example output: Go to the garden"
    "\nAny output key containing < and > indicates you must generate the key name to replace it. "
    "Example input: {'<location>': 'description of location'}, "
    "Example output: {school: a place for education}"
)
BATCH_INSTRUCTION = "\nGenerate a list of json, one json for each input element."

_FEEDBACK_RESPONSE_CHARS = 2000


def build_format_prompt(request: PromptRequest) -> str:
    """Format instructions appended to the caller's system prompt."""
    schema = request.output_format
    prompt = FORMAT_INSTRUCTION.format(schema=schema.render())
    if schema.has_choice_fields():
        prompt += CHOICE_INSTRUCTION
    if schema.has_dynamic_elements():
        prompt += DYNAMIC_INSTRUCTION
    if request.is_batch:
        prompt += BATCH_INSTRUCTION
    return prompt


def build_feedback(raw_text: str, error: BaseException) -> str:
    """Error feedback appended to the next attempt's system prompt."""
    return f"\n\nResult: {raw_text[:_FEEDBACK_RESPONSE_CHARS]}\n\nError message: {error}"


# ── Choice coercion rules ─────────────────────────────────────


def first_of_list(name: str, value: Any) -> Any:
    """A list answer for a choice field is replaced by its first element."""
    if isinstance(value, list):
        if not value:
            raise SchemaViolationError(f"empty list for {name}", reason=f"invalid choice for {name}")
        return value[0]
    return value


def apply_default_category(value: Any, candidates: tuple, default_category: Optional[str]) -> Any:
    """Snap a value outside the candidates to the configured default."""
    if default_category and value not in candidates:
        return default_category
    return value


def truncate_rationale(value: str) -> str:
    """Drop an explanation the model appended after a colon."""
    if ":" in value:
        return value.split(":", 1)[0].strip()
    return value


def coerce_choice(name: str, value: Any, field: ChoiceField, default_category: Optional[str]) -> str:
    value = first_of_list(name, value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    value = apply_default_category(value, field.candidates, default_category)
    if isinstance(value, str) and value not in field.candidates and value != default_category:
        value = truncate_rationale(value)
    if value in field.candidates or (default_category and value == default_category):
        return value
    raise SchemaViolationError(
        f"invalid choice for {name}: {value!r} is not one of {list(field.candidates)}",
        reason=f"invalid choice for {name}",
    )


def coerce_list(name: str, value: Any, field: ListField) -> List[str]:
    if not isinstance(value, list):
        raise SchemaViolationError(
            f"{name} must be a list of {field.size} strings", reason=f"invalid list for {name}"
        )
    if len(value) != field.size:
        raise SchemaViolationError(
            f"{name} must hold exactly {field.size} entries, got {len(value)}",
            reason=f"invalid list for {name}",
        )
    items = []
    for item in value:
        if item is None or isinstance(item, (dict, list)):
            raise SchemaViolationError(
                f"{name} entries must be plain strings", reason=f"invalid list for {name}"
            )
        items.append(item if isinstance(item, str) else str(item))
    return items


# ── Shape & element validation ────────────────────────────────


def normalize_shape(parsed: Any, is_batch: bool, expected: Optional[int] = None) -> list:
    """Return the parsed value as a list of elements.

    A batch must be an array with one element per user prompt (*expected*).
    """
    if is_batch:
        if not isinstance(parsed, list):
            raise ShapeMismatchError("Output format not in a list of json", reason="expected-array")
        if expected is not None and len(parsed) != expected:
            raise ShapeMismatchError(
                f"Output list has {len(parsed)} json, expected one for each of the {expected} inputs",
                reason="expected-array",
            )
        return parsed
    return [parsed]


def validate_element(element: Any, schema: OutputSchema, default_category: Optional[str] = None) -> dict:
    """Check presence of every static field and coerce choice/list fields.

    Nested schemas are only checked for presence.
    """
    if not isinstance(element, dict):
        raise ShapeMismatchError(
            f"Output element is {type(element).__name__}, expected a json object",
            reason="expected-object",
        )

    for name, field in schema.items():
        if schema.is_dynamic_key(name):
            continue
        if name not in element:
            raise SchemaViolationError(f"{name} not in json output", reason=f"missing field {name}")

        if isinstance(field, ChoiceField):
            element[name] = coerce_choice(name, element[name], field, default_category)
        elif isinstance(field, ListField):
            element[name] = coerce_list(name, element[name], field)

    return element


def element_values(element: dict, schema: OutputSchema) -> Any:
    """Values in schema order, then any model-generated dynamic keys.

    A single value is unwrapped to the bare scalar.
    """
    static = [name for name in schema if not schema.is_dynamic_key(name)]
    values = [element[name] for name in static if name in element]
    if len(static) != len(schema):
        values.extend(v for k, v in element.items() if k not in schema)
    if len(values) == 1:
        return values[0]
    return values


# ── Extractor ─────────────────────────────────────────────────


@dataclass
class ExtractionAttempt:
    """State of one retry iteration; never outlives it."""

    attempt_index: int
    system_prompt: str
    raw_text: str = ""
    parsed: Any = None
    failure: Optional[StructuredOutputError] = None


class StructuredExtractor:
    """Turns a ``PromptRequest`` into validated, coerced structured data.

    Args:
        client: Object with ``complete``/``acomplete`` (see ``ChatModelClient``).
            Defaults to a ``ChatModelClient`` built from settings.
        lenient_json: Use the ``json_repair`` fallback when strict parsing
            fails (default: LLM_JSON_REPAIR_FALLBACK).
    """

    def __init__(self, client: Any = None, lenient_json: Optional[bool] = None):
        self._client = client
        self.lenient_json = settings.LLM_JSON_REPAIR_FALLBACK if lenient_json is None else lenient_json

    @property
    def client(self):
        if self._client is None:
            self._client = ChatModelClient()
        return self._client

    # ── Attempt helpers ───────────────────────────────────

    def _messages(self, request: PromptRequest, system_prompt: str) -> List[ChatMessage]:
        return [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=request.joined_user_prompt),
        ]

    def _request_timeout(self, request: PromptRequest, deadline: Optional[float]) -> Optional[float]:
        """Per-request timeout, capped by the time left before *deadline*."""
        timeout = request.timeout
        if deadline is None:
            return timeout
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ExtractionCancelledError("Deadline expired before the next attempt")
        return remaining if timeout is None else min(timeout, remaining)

    def _log_verbose(self, request: PromptRequest, attempt: ExtractionAttempt) -> None:
        if request.verbose:
            logger.info(f"System prompt: {attempt.system_prompt}")
            logger.info(f"User prompt: {request.joined_user_prompt}")
            logger.info(f"Model response: {attempt.raw_text}")

    def _finish(
        self,
        request: PromptRequest,
        attempt: ExtractionAttempt,
        result_type: Optional[Type[BaseModel]],
    ) -> Any:
        """Parse, shape-check and validate one completion."""
        attempt.parsed = parse_completion(attempt.raw_text, lenient=self.lenient_json)
        elements = normalize_shape(attempt.parsed, request.is_batch, len(request.user_prompts))

        output = []
        for element in elements:
            element = validate_element(element, request.output_format, request.default_category)
            if request.output_value_only:
                output.append(element_values(element, request.output_format))
            elif result_type is not None:
                try:
                    output.append(result_type.model_validate(element))
                except ValidationError as exc:
                    raise SchemaViolationError(
                        f"{result_type.__name__} validation failed: {exc}",
                        reason=f"invalid {result_type.__name__}",
                    ) from exc
            else:
                output.append(element)

        return output if request.is_batch else output[0]

    def _record_failure(
        self, request: PromptRequest, attempt: ExtractionAttempt, exc: StructuredOutputError
    ) -> str:
        attempt.failure = exc
        logger.warning(
            f"Structured output failed (attempt {attempt.attempt_index}/{request.max_attempts}): "
            f"{exc.reason}: {str(exc)[:200]}"
        )
        if attempt.attempt_index == request.max_attempts:
            logger.error(f"Final attempt failed. Raw response: {attempt.raw_text[:1000]}")
        return build_feedback(attempt.raw_text, exc)

    def _exhausted(self, request: PromptRequest, last_error: Optional[StructuredOutputError]):
        error = ExhaustedRetriesError(last_error, request.max_attempts)
        logger.error(str(error))
        return error

    # ── Public API ────────────────────────────────────────

    def extract(
        self,
        request: PromptRequest,
        result_type: Optional[Type[BaseModel]] = None,
        deadline: Optional[float] = None,
    ) -> Any:
        """Run the extraction synchronously.

        Args:
            request: The prompt request.
            result_type: Optional pydantic model each element is validated into.
            deadline: Absolute ``time.monotonic()`` value after which no new
                attempt starts; also caps each request's timeout.

        Returns:
            One element for a single prompt, a list for a batch.

        Raises:
            ExhaustedRetriesError: No attempt succeeded.
            ExtractionCancelledError: The deadline expired.
        """
        base_prompt = request.system_prompt + build_format_prompt(request)
        feedback = ""
        last_error: Optional[StructuredOutputError] = None

        for index in range(1, request.max_attempts + 1):
            timeout = self._request_timeout(request, deadline)
            attempt = ExtractionAttempt(attempt_index=index, system_prompt=base_prompt + feedback)
            logger.debug(f"Requesting completion (attempt {index}/{request.max_attempts})")
            try:
                attempt.raw_text = self._complete(request, attempt, timeout)
                self._log_verbose(request, attempt)
                result = self._finish(request, attempt, result_type)
            except StructuredOutputError as exc:
                last_error = exc
                feedback = self._record_failure(request, attempt, exc)
                continue

            logger.info(f"Structured output validated successfully (attempt {index})")
            return result

        raise self._exhausted(request, last_error)

    async def aextract(
        self,
        request: PromptRequest,
        result_type: Optional[Type[BaseModel]] = None,
        deadline: Optional[float] = None,
    ) -> Any:
        """Async version of :meth:`extract`.

        When *deadline* passes while a request is in flight, the request is
        cancelled and ``ExtractionCancelledError`` is raised. Cancelling the
        calling task propagates ``asyncio.CancelledError`` unchanged.
        """
        base_prompt = request.system_prompt + build_format_prompt(request)
        feedback = ""
        last_error: Optional[StructuredOutputError] = None

        for index in range(1, request.max_attempts + 1):
            timeout = self._request_timeout(request, deadline)
            attempt = ExtractionAttempt(attempt_index=index, system_prompt=base_prompt + feedback)
            logger.debug(f"Async requesting completion (attempt {index}/{request.max_attempts})")
            try:
                coro = self._acomplete(request, attempt, timeout)
                if deadline is None:
                    attempt.raw_text = await coro
                else:
                    try:
                        attempt.raw_text = await asyncio.wait_for(coro, timeout=deadline - time.monotonic())
                    except asyncio.TimeoutError as exc:
                        logger.warning(f"Deadline expired during attempt {index}")
                        raise ExtractionCancelledError("Deadline expired during completion request") from exc
                self._log_verbose(request, attempt)
                result = self._finish(request, attempt, result_type)
            except ExtractionCancelledError:
                raise
            except StructuredOutputError as exc:
                last_error = exc
                feedback = self._record_failure(request, attempt, exc)
                continue

            logger.info(f"Async structured output validated (attempt {index})")
            return result

        raise self._exhausted(request, last_error)

    # ── Client calls ──────────────────────────────────────

    def _complete(self, request: PromptRequest, attempt: ExtractionAttempt, timeout: Optional[float]) -> str:
        try:
            return self.client.complete(
                self._messages(request, attempt.system_prompt),
                temperature=request.temperature,
                model=request.model,
                timeout=timeout,
            )
        except StructuredOutputError:
            raise
        except Exception as exc:
            raise CompletionTransportError(f"{type(exc).__name__}: {exc}") from exc

    async def _acomplete(self, request: PromptRequest, attempt: ExtractionAttempt, timeout: Optional[float]) -> str:
        try:
            return await self.client.acomplete(
                self._messages(request, attempt.system_prompt),
                temperature=request.temperature,
                model=request.model,
                timeout=timeout,
            )
        except StructuredOutputError:
            raise
        except Exception as exc:
            raise CompletionTransportError(f"{type(exc).__name__}: {exc}") from exc


@lru_cache(maxsize=1)
def get_default_extractor() -> StructuredExtractor:
    """Process-wide extractor using the configured provider."""
    return StructuredExtractor()


def strict_output(
    system_prompt: str,
    user_prompt: Union[str, List[str]],
    output_format: dict,
    default_category: str = "",
    output_value_only: bool = False,
    model: Optional[str] = None,
    temperature: float = 1.0,
    num_tries: int = 3,
    verbose: bool = False,
    extractor: Optional[StructuredExtractor] = None,
) -> Any:
    """One-call helper: build a ``PromptRequest`` and extract it."""
    request = PromptRequest(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        output_format=output_format,
        default_category=default_category,
        output_value_only=output_value_only,
        model=model,
        temperature=temperature,
        max_attempts=num_tries,
        verbose=verbose,
    )
    return (extractor or get_default_extractor()).extract(request)
