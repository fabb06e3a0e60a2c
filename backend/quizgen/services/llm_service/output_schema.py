"""Declarative output schema for structured LLM calls.

A schema maps field names to one of four field kinds:

- ``LiteralField``: free-form string (``"string"`` or a short description)
- ``ChoiceField``: value must snap to one of a fixed candidate list
- ``ListField``: fixed-size list of free-form strings
- ``NestedField``: a nested schema

Callers normally write schemas in the plain form the model also sees::

    {"question": "string",
     "options": ["string", "string", "string", "string"],
     "difficulty": ["easy", "medium", "hard"],
     "<topic>": "description of topic"}

A list whose entries are all the bare ``"string"`` marker is a ``ListField``;
any other list is a ``ChoiceField``. Text wrapped in ``<`` and ``>`` (in a key
or a value) is a placeholder the model has to replace with generated content.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Tuple, Union

PLACEHOLDER_RE = re.compile(r"<.*?>")
TYPE_MARKER = "string"


@dataclass(frozen=True)
class LiteralField:
    marker: str = TYPE_MARKER

    def to_format(self) -> str:
        return self.marker


@dataclass(frozen=True)
class ChoiceField:
    candidates: Tuple[str, ...]

    def __post_init__(self):
        if not self.candidates:
            raise ValueError("choice field needs at least one candidate")

    def to_format(self) -> list:
        return list(self.candidates)


@dataclass(frozen=True)
class ListField:
    size: int
    marker: str = TYPE_MARKER

    def to_format(self) -> list:
        return [self.marker] * self.size


@dataclass(frozen=True)
class NestedField:
    schema: "OutputSchema"

    def to_format(self) -> dict:
        return self.schema.to_format()


SchemaField = Union[LiteralField, ChoiceField, ListField, NestedField]


def _field_from_format(name: str, value: Any) -> SchemaField:
    if isinstance(value, OutputSchema):
        return NestedField(value)
    if isinstance(value, str):
        return LiteralField(value)
    if isinstance(value, (list, tuple)):
        if not value:
            raise ValueError(f"field {name!r}: list of allowed values must not be empty")
        if not all(isinstance(v, str) for v in value):
            raise ValueError(f"field {name!r}: list entries must be strings")
        if all(v == TYPE_MARKER for v in value):
            return ListField(len(value))
        return ChoiceField(tuple(value))
    if isinstance(value, Mapping):
        return NestedField(OutputSchema.from_format(value))
    raise ValueError(
        f"field {name!r}: expected a string, a list of strings or a mapping, "
        f"got {type(value).__name__}"
    )


class OutputSchema:
    """Ordered, immutable mapping of field name to ``SchemaField``."""

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, SchemaField]):
        for name in fields:
            if not isinstance(name, str):
                raise ValueError(f"schema keys must be strings, got {name!r}")
        self._fields: Dict[str, SchemaField] = dict(fields)

    @classmethod
    def from_format(cls, output_format: Union["OutputSchema", Mapping[str, Any]]) -> "OutputSchema":
        """Build a schema from its plain ``{name: str | list | mapping}`` form."""
        if isinstance(output_format, OutputSchema):
            return output_format
        if not isinstance(output_format, Mapping):
            raise ValueError(f"output format must be a mapping, got {type(output_format).__name__}")
        return cls({name: _field_from_format(name, value) for name, value in output_format.items()})

    # ── Mapping-ish access ────────────────────────────────

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __getitem__(self, name: str) -> SchemaField:
        return self._fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def items(self):
        return self._fields.items()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OutputSchema):
            return NotImplemented
        return list(self._fields.items()) == list(other._fields.items())

    def __hash__(self) -> int:
        return hash(tuple(self._fields.items()))

    def __repr__(self) -> str:
        return f"OutputSchema({self.render()})"

    # ── Rendering & inspection ────────────────────────────

    def to_format(self) -> dict:
        return {name: field.to_format() for name, field in self._fields.items()}

    def render(self) -> str:
        """JSON rendering shown to the model."""
        return json.dumps(self.to_format(), ensure_ascii=False)

    @staticmethod
    def is_dynamic_key(name: str) -> bool:
        return PLACEHOLDER_RE.search(name) is not None

    def has_dynamic_elements(self) -> bool:
        """True if any key or value (at any depth) holds a ``<...>`` placeholder."""
        return PLACEHOLDER_RE.search(self.render()) is not None

    def has_choice_fields(self) -> bool:
        for field in self._fields.values():
            if isinstance(field, ChoiceField):
                return True
            if isinstance(field, NestedField) and field.schema.has_choice_fields():
                return True
        return False
