"""Core primitives: hashing, canonical JSON, offsets, data models and invariants."""

from .canonical import canonical_json
from .hashing import sha256_hex
from .invariants import QuoteInvariantError, QuoteInvariantViolation, assert_quote_invariant
from .normalize import NormalizationResult, normalize_text
from .offsets import OFFSET_MODE, utf16_length, utf16_slice
from .prng import DeterministicPrng
from .program import ProgramError, normalize_program
from .types import (
    DocumentInput,
    Extraction,
    NormalizationLedger,
    NormalizationStep,
    Program,
    ProgramClass,
    ProgramConstraints,
    ProgramExample,
    Span,
    WireModel,
)

__all__ = [
    "OFFSET_MODE",
    "DeterministicPrng",
    "DocumentInput",
    "Extraction",
    "NormalizationLedger",
    "NormalizationResult",
    "NormalizationStep",
    "Program",
    "ProgramClass",
    "ProgramConstraints",
    "ProgramError",
    "ProgramExample",
    "QuoteInvariantError",
    "QuoteInvariantViolation",
    "Span",
    "WireModel",
    "assert_quote_invariant",
    "canonical_json",
    "normalize_program",
    "normalize_text",
    "sha256_hex",
    "utf16_length",
    "utf16_slice",
]
