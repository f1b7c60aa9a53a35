"""Core data models shared by the engine, the JSON pipeline and evidence bundles.

Every model serializes with camelCase keys (``charStart``, ``extractionClass``)
so that persisted bundles keep the wire format; Python code uses snake_case
attribute names.
"""

from __future__ import annotations

from typing import Any, ClassVar, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
)
from pydantic.alias_generators import to_camel

OffsetMode = Literal["utf16_code_unit"]
Grounding = Literal["explicit", "inferred"]


class WireModel(BaseModel):
    """Base for all persisted records.

    Fields named in ``omit_when_none`` are treated as optional-and-absent:
    they are dropped from dumps when unset rather than written as ``null``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    omit_when_none: ClassVar[tuple[str, ...]] = ()

    @model_serializer(mode="wrap")
    def _drop_absent_fields(self, handler: SerializerFunctionWrapHandler) -> Any:
        data = handler(self)
        if not self.omit_when_none or not isinstance(data, dict):
            return data
        fields = type(self).model_fields
        for name in self.omit_when_none:
            if getattr(self, name, None) is not None:
                continue
            data.pop(name, None)
            alias = fields[name].alias if name in fields else None
            if alias:
                data.pop(alias, None)
        return data

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-compatible dict with wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Spans and extractions
# ---------------------------------------------------------------------------


class Span(WireModel):
    """Half-open ``[char_start, char_end)`` interval in UTF-16 code units."""

    offset_mode: OffsetMode = "utf16_code_unit"
    char_start: int
    char_end: int


class Extraction(WireModel):
    """A grounded extraction: ``document[span] == quote``."""

    omit_when_none: ClassVar[tuple[str, ...]] = ("attributes",)

    extraction_class: str
    quote: str
    span: Span
    attributes: dict[str, Any] | None = None
    grounding: Grounding = "explicit"

    def identity(self) -> tuple[str, str, int, int]:
        """Key used to collapse duplicates seen through overlapping shards."""
        return (
            self.extraction_class,
            self.quote,
            self.span.char_start,
            self.span.char_end,
        )


# ---------------------------------------------------------------------------
# Program
# ---------------------------------------------------------------------------


class ProgramClass(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("attributes_schema", "allow_inferred")

    name: str
    attributes_schema: dict[str, Any] | None = None
    allow_inferred: bool | None = None


class ProgramConstraints(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("max_extractions_per_shard",)

    require_exact_quote: bool = True
    forbid_overlap: bool = True
    max_extractions_per_shard: int | None = None


class ProgramExample(WireModel):
    input: str
    output: list[Extraction] = Field(default_factory=list)


class Program(WireModel):
    """Normalized extraction program.

    The engine treats a program as immutable input; ``program_hash`` is
    opaque and flows into every shard id and prompt.
    """

    program_id: str = ""
    description: str = ""
    instructions: str
    classes: list[ProgramClass] = Field(default_factory=list)
    constraints: ProgramConstraints = Field(default_factory=ProgramConstraints)
    examples: list[ProgramExample] = Field(default_factory=list)
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")
    program_hash: str


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentInput(WireModel):
    omit_when_none: ClassVar[tuple[str, ...]] = ("document_id", "meta")

    document_id: str | None = None
    text: str
    meta: dict[str, str] | None = None


class NormalizationStep(WireModel):
    step: Literal["normalizeNewlines", "trimTrailingWhitespacePerLine"]
    mapping_strategy: Literal["not_reversible"] = "not_reversible"
    lossy: bool
    before_length: int
    after_length: int


class NormalizationLedger(WireModel):
    steps: list[NormalizationStep] = Field(default_factory=list)
