"""JSON recovery: frame decoding, candidate extraction, repair, strict parse."""

from .extract import JsonSlice, detect_json_flavor, extract_first_json, extract_json_candidates
from .frames import FrameDecodeError, FrameDecodeResult, decode_streaming_json_frames
from .parse import JsonParseError, JsonParseFailure, parse_json_strict, try_parse_json_strict
from .pipeline import (
    JsonPipelineFailure,
    JsonPipelineLog,
    JsonPipelineResult,
    parse_json_with_repair_pipeline,
)
from .repair import RepairBudgets, RepairLog, RepairResult, RepairStep, repair_json_text
from .tool_calls import AssembledToolCall, assemble_streaming_tool_calls

__all__ = [
    "AssembledToolCall",
    "FrameDecodeError",
    "FrameDecodeResult",
    "JsonParseError",
    "JsonParseFailure",
    "JsonPipelineFailure",
    "JsonPipelineLog",
    "JsonPipelineResult",
    "JsonSlice",
    "RepairBudgets",
    "RepairLog",
    "RepairResult",
    "RepairStep",
    "assemble_streaming_tool_calls",
    "decode_streaming_json_frames",
    "detect_json_flavor",
    "extract_first_json",
    "extract_json_candidates",
    "parse_json_strict",
    "parse_json_with_repair_pipeline",
    "repair_json_text",
    "try_parse_json_strict",
]
