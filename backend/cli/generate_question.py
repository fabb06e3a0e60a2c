#!/usr/bin/env python
"""Generate one quiz question from the command line.

Usage
-----
    # From backend/
    python -m cli.generate_question "photosynthesis"
    python -m cli.generate_question "the Roman Empire" --open-ended
    python -m cli.generate_question "rust ownership" --provider OLLAMA --model llama3

The question is printed to stdout as JSON. Exit status is 1 when the model
never produced a valid question or the provider could not be reached.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from quizgen.core.logging_config import configure_logging  # noqa: E402
from quizgen.services.llm_service.client import ChatModelClient  # noqa: E402
from quizgen.services.llm_service.errors import StructuredOutputError  # noqa: E402
from quizgen.services.llm_service.structured_invoker import StructuredExtractor  # noqa: E402
from quizgen.services.quiz.generator import (  # noqa: E402
    multiple_choice_question,
    open_ended_question,
)
from quizgen.services.llm_service.llm_schemas import (  # noqa: E402
    MultipleChoiceQuestion,
    OpenEndedQuestion,
)

logger = logging.getLogger("cli.generate_question")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a quiz question about a topic.")
    parser.add_argument("topic", help="Topic of the question")
    parser.add_argument("--open-ended", action="store_true", help="Short-answer question instead of multiple choice")
    parser.add_argument("--provider", default=None, help="Override LLM_PROVIDER")
    parser.add_argument("--model", default=None, help="Override the provider's model")
    parser.add_argument("--verbose", action="store_true", help="Log prompts and raw responses")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    configure_logging(level="DEBUG" if args.verbose else None, to_file=False)

    try:
        if args.open_ended:
            request, result_type = open_ended_question(args.topic), OpenEndedQuestion
        else:
            request, result_type = multiple_choice_question(args.topic), MultipleChoiceQuestion
    except ValueError as exc:
        logger.error(f"Invalid topic: {exc}")
        return 2

    overrides = {"verbose": args.verbose}
    if args.model:
        overrides["model"] = args.model
    request = request.model_copy(update=overrides)

    extractor = StructuredExtractor(client=ChatModelClient(provider=args.provider))
    try:
        question = extractor.extract(request, result_type=result_type)
    except StructuredOutputError as exc:
        logger.error(f"Question generation failed: {exc}")
        return 1

    print(json.dumps(question.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
