"""Pydantic models for structured LLM requests and their typed results."""

from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from quizgen.core.config import settings
from quizgen.services.llm_service.output_schema import OutputSchema


# ── Request ───────────────────────────────────────────────

class PromptRequest(BaseModel):
    """Everything one structured extraction needs. Immutable per call.

    ``user_prompt`` is either a single prompt or a batch. A list is always a
    batch, even with one entry, and yields a list result of the same length.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    system_prompt: str
    user_prompt: Union[str, Tuple[str, ...]]
    output_format: OutputSchema
    default_category: Optional[str] = None
    output_value_only: bool = False
    model: Optional[str] = None
    temperature: float = Field(
        default_factory=lambda: settings.LLM_TEMPERATURE_STRUCTURED_DEFAULT, ge=0.0, le=2.0
    )
    max_attempts: int = Field(default_factory=lambda: settings.LLM_MAX_ATTEMPTS, ge=1)
    timeout: Optional[float] = Field(default=None, gt=0)
    verbose: bool = False

    @field_validator("output_format", mode="before")
    @classmethod
    def _build_schema(cls, v):
        return OutputSchema.from_format(v)

    @field_validator("user_prompt", mode="after")
    @classmethod
    def _non_empty_batch(cls, v):
        if isinstance(v, tuple) and not v:
            raise ValueError("batch user_prompt must hold at least one prompt")
        return v

    @field_validator("default_category", mode="after")
    @classmethod
    def _empty_default_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def is_batch(self) -> bool:
        return isinstance(self.user_prompt, tuple)

    @property
    def user_prompts(self) -> Tuple[str, ...]:
        return self.user_prompt if self.is_batch else (self.user_prompt,)

    @property
    def joined_user_prompt(self) -> str:
        return "\n".join(self.user_prompts)


# ── Quiz ──────────────────────────────────────────────────

class MultipleChoiceQuestion(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=4, max_length=4)
    answer: str = Field(min_length=1)

    @model_validator(mode="after")
    def _snap_answer_to_option(self) -> "MultipleChoiceQuestion":
        """Use the option's exact spelling when the answer differs only in case."""
        if self.answer not in self.options:
            for option in self.options:
                if option.casefold() == self.answer.casefold():
                    self.answer = option
                    break
        return self

    def to_dict(self) -> dict:
        return self.model_dump()


class OpenEndedQuestion(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)

    def to_dict(self) -> dict:
        return self.model_dump()
