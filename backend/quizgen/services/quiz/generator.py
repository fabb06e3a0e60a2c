"""Quiz question generation on top of the structured extractor."""

from __future__ import annotations

import logging
from typing import Optional

from quizgen.core.config import settings
from quizgen.prompts import get_multiple_choice_prompts, get_open_ended_prompts
from quizgen.services.llm_service.llm_schemas import (
    MultipleChoiceQuestion,
    OpenEndedQuestion,
    PromptRequest,
)
from quizgen.services.llm_service.structured_invoker import (
    StructuredExtractor,
    get_default_extractor,
)

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE_FORMAT = {
    "question": "string",
    "options": ["string", "string", "string", "string"],
    "answer": "string",
}

OPEN_ENDED_FORMAT = {
    "question": "string",
    "answer": "string",
}


def _clean_topic(topic: str) -> str:
    if not topic or not topic.strip():
        raise ValueError("topic must not be empty")
    return topic.strip()


def multiple_choice_question(topic: str) -> PromptRequest:
    """Request for one four-option question about *topic*."""
    system_prompt, user_prompt = get_multiple_choice_prompts(_clean_topic(topic))
    return PromptRequest(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        output_format=MULTIPLE_CHOICE_FORMAT,
        model=settings.QUIZ_MODEL,
        temperature=settings.QUIZ_MCQ_TEMPERATURE,
        max_attempts=settings.QUIZ_MAX_ATTEMPTS,
    )


def open_ended_question(topic: str) -> PromptRequest:
    """Request for one short-answer question about *topic*."""
    system_prompt, user_prompt = get_open_ended_prompts(_clean_topic(topic))
    return PromptRequest(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        output_format=OPEN_ENDED_FORMAT,
        model=settings.QUIZ_MODEL,
        temperature=settings.QUIZ_OPEN_ENDED_TEMPERATURE,
        max_attempts=settings.QUIZ_MAX_ATTEMPTS,
    )


def get_multiple_choice_question(
    topic: str, extractor: Optional[StructuredExtractor] = None
) -> MultipleChoiceQuestion:
    """Generate a multiple-choice question.

    Raises:
        ExhaustedRetriesError: The model never produced a valid question.
    """
    request = multiple_choice_question(topic)
    logger.info(f"Generating multiple-choice question for topic={topic!r}")
    return (extractor or get_default_extractor()).extract(request, result_type=MultipleChoiceQuestion)


def get_open_ended_question(
    topic: str, extractor: Optional[StructuredExtractor] = None
) -> OpenEndedQuestion:
    """Generate an open-ended question.

    Raises:
        ExhaustedRetriesError: The model never produced a valid question.
    """
    request = open_ended_question(topic)
    logger.info(f"Generating open-ended question for topic={topic!r}")
    return (extractor or get_default_extractor()).extract(request, result_type=OpenEndedQuestion)


async def aget_multiple_choice_question(
    topic: str, extractor: Optional[StructuredExtractor] = None
) -> MultipleChoiceQuestion:
    request = multiple_choice_question(topic)
    return await (extractor or get_default_extractor()).aextract(request, result_type=MultipleChoiceQuestion)


async def aget_open_ended_question(
    topic: str, extractor: Optional[StructuredExtractor] = None
) -> OpenEndedQuestion:
    request = open_ended_question(topic)
    return await (extractor or get_default_extractor()).aextract(request, result_type=OpenEndedQuestion)
