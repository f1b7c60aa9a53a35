"""Normalize loosely-shaped program input into a canonical :class:`Program`.

Schema dialect validation is not performed here; the schema mapping is
carried through as given and only contributes to the program hash.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .canonical import canonical_json
from .hashing import sha256_hex
from .types import Program, ProgramClass, ProgramConstraints, ProgramExample

_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


class ProgramError(ValueError):
    """Raised when program input cannot be normalized."""


def _fail(message: str) -> ProgramError:
    return ProgramError(f"invalid program: {message}")


def _non_empty_string(label: str, value: Any) -> str:
    if not isinstance(value, str):
        raise _fail(f"{label} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise _fail(f"{label} must be non-empty")
    return trimmed


def _normalize_examples(raw: Any) -> list[ProgramExample]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise _fail("examples must be an array")

    examples: list[ProgramExample] = []
    for index, entry in enumerate(raw):
        if isinstance(entry, ProgramExample):
            examples.append(entry)
            continue
        if not isinstance(entry, Mapping):
            raise _fail(f"examples[{index}] must be an object")
        if not isinstance(entry.get("input"), str):
            raise _fail(f"examples[{index}].input must be a string")
        if not isinstance(entry.get("output"), list):
            raise _fail(f"examples[{index}].output must be an array")
        try:
            examples.append(ProgramExample.model_validate(entry))
        except ValidationError as exc:
            raise _fail(f"examples[{index}] is malformed: {exc.errors()[0]['msg']}") from exc
    return examples


def _normalize_classes(raw: Any, examples: list[ProgramExample]) -> list[ProgramClass]:
    if raw is None or (isinstance(raw, list) and not raw):
        names: list[str] = []
        for example in examples:
            for output in example.output:
                name = output.extraction_class.strip()
                if name and name not in names:
                    names.append(name)
        if not names:
            names = ["extraction"]
        return [ProgramClass(name=name, allow_inferred=False) for name in names]

    if not isinstance(raw, list):
        raise _fail("classes must be an array")

    seen: set[str] = set()
    classes: list[ProgramClass] = []
    for index, entry in enumerate(raw):
        if isinstance(entry, str):
            entry = {"name": entry}
        if isinstance(entry, ProgramClass):
            entry = entry.model_dump(exclude_none=True)
        if not isinstance(entry, Mapping):
            raise _fail(f"classes[{index}] must be an object")
        name = _non_empty_string(f"classes[{index}].name", entry.get("name"))
        if name in seen:
            raise _fail(f"classes contains duplicate name: {name}")
        seen.add(name)

        attributes_schema = entry.get("attributesSchema", entry.get("attributes_schema"))
        if attributes_schema is not None and not isinstance(attributes_schema, Mapping):
            raise _fail(f"classes[{index}].attributesSchema must be an object when provided")
        allow_inferred = entry.get("allowInferred", entry.get("allow_inferred"))
        if allow_inferred is not None and not isinstance(allow_inferred, bool):
            raise _fail(f"classes[{index}].allowInferred must be boolean when provided")

        classes.append(
            ProgramClass(
                name=name,
                attributes_schema=dict(attributes_schema) if attributes_schema is not None else None,
                allow_inferred=allow_inferred,
            )
        )
    return classes


def _normalize_constraints(raw: Any) -> ProgramConstraints:
    if raw is None:
        return ProgramConstraints()
    if isinstance(raw, ProgramConstraints):
        return raw
    if not isinstance(raw, Mapping):
        raise _fail("constraints must be an object")

    require_exact_quote = raw.get("requireExactQuote", raw.get("require_exact_quote", True))
    forbid_overlap = raw.get("forbidOverlap", raw.get("forbid_overlap", True))
    max_per_shard = raw.get("maxExtractionsPerShard", raw.get("max_extractions_per_shard"))

    if not isinstance(require_exact_quote, bool):
        raise _fail("constraints.requireExactQuote must be boolean when provided")
    if not isinstance(forbid_overlap, bool):
        raise _fail("constraints.forbidOverlap must be boolean when provided")
    if max_per_shard is not None and (
        not isinstance(max_per_shard, int) or isinstance(max_per_shard, bool) or max_per_shard <= 0
    ):
        raise _fail("constraints.maxExtractionsPerShard must be a positive integer when provided")

    return ProgramConstraints(
        require_exact_quote=require_exact_quote,
        forbid_overlap=forbid_overlap,
        max_extractions_per_shard=max_per_shard,
    )


def normalize_program(source: Program | Mapping[str, Any]) -> Program:
    """Return a canonical :class:`Program` for *source*.

    A :class:`Program` instance is returned unchanged.  Mappings may use
    camelCase or snake_case keys.  ``programHash`` is computed from the
    canonical payload unless a valid 64-char lowercase hex hash is given.
    """
    if isinstance(source, Program):
        return source
    if not isinstance(source, Mapping):
        raise _fail("program must be an object")

    instructions = _non_empty_string("instructions", source.get("instructions"))
    description = _non_empty_string("description", source.get("description", instructions))
    examples = _normalize_examples(source.get("examples"))
    classes = _normalize_classes(source.get("classes"), examples)

    class_names = {entry.name for entry in classes}
    for index, example in enumerate(examples):
        for output in example.output:
            if output.extraction_class not in class_names:
                raise _fail(
                    f"examples[{index}] output extractionClass must match a declared class: "
                    f"{output.extraction_class}"
                )

    constraints = _normalize_constraints(source.get("constraints"))
    schema = source.get("schema", {})
    if schema is None:
        schema = {}
    if not isinstance(schema, Mapping):
        raise _fail("schema must be an object")
    schema = dict(schema)

    payload = {
        "instructions": instructions,
        "description": description,
        "classes": [entry.to_dict() for entry in classes],
        "constraints": constraints.to_dict(),
        "examples": [entry.to_dict() for entry in examples],
        "schema": schema,
    }
    computed_hash = sha256_hex(canonical_json(payload))

    provided_hash = source.get("programHash", source.get("program_hash"))
    if provided_hash is not None and (
        not isinstance(provided_hash, str) or not _HASH_RE.match(provided_hash)
    ):
        raise _fail("programHash must be a 64-char lowercase hex string when provided")
    program_hash = provided_hash or computed_hash

    program_id = source.get("programId", source.get("program_id"))
    if program_id is None:
        program_id = f"program-{program_hash[:16]}"
    else:
        program_id = _non_empty_string("programId", program_id)

    return Program(
        program_id=program_id,
        description=description,
        instructions=instructions,
        classes=classes,
        constraints=constraints,
        examples=examples,
        schema=schema,
        program_hash=program_hash,
    )
