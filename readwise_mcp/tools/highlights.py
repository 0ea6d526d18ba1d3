"""Highlight search tool: argument models, validation and the upstream call."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, StrictStr, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from readwise_mcp.readwise_api import ReadwiseApiClient, default_client

logger = logging.getLogger(__name__)

TOOL_NAME = "search_readwise_highlights"
TOOL_DESCRIPTION = "Search through Readwise highlights using vector search and full-text queries"

FIELD_NAMES = (
    "document_author",
    "document_title",
    "highlight_note",
    "highlight_plaintext",
    "highlight_tags",
)

FieldName = Literal[
    "document_author",
    "document_title",
    "highlight_note",
    "highlight_plaintext",
    "highlight_tags",
]

INPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "vector_search_term": {
            "type": "string",
            "description": "Semantic search term for vector search",
        },
        "full_text_queries": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "field_name": {"type": "string", "enum": list(FIELD_NAMES)},
                    "search_term": {"type": "string"},
                },
            },
        },
    },
}


class FullTextQuery(BaseModel):
    field_name: FieldName
    search_term: StrictStr


class SearchArguments(BaseModel):
    """Arguments accepted on the single-response path; both fields required."""

    vector_search_term: StrictStr
    full_text_queries: List[FullTextQuery]


class StreamingSearchArguments(BaseModel):
    """Arguments accepted on the streaming path; both fields optional."""

    vector_search_term: Optional[StrictStr] = None
    full_text_queries: Optional[List[FullTextQuery]] = None

    @field_validator("vector_search_term", "full_text_queries", mode="before")
    @classmethod
    def _reject_null(cls, value: Any, info) -> Any:
        # Fields may be left out, but an explicit null is a type error.
        if value is None:
            expected = "string" if info.field_name == "vector_search_term" else "array"
            raise PydanticCustomError("null_type", "Expected {expected}, received null", {"expected": expected})
        return value


class InvalidArgumentsError(ValueError):
    """Raised when tool arguments fail validation; one reason per failing field."""

    def __init__(self, reasons: List[str]) -> None:
        super().__init__(", ".join(reasons))
        self.reasons = reasons


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _describe(error: Dict[str, Any]) -> str:
    kind = error.get("type")
    received = error.get("input")
    if kind == "missing":
        return "Required"
    if kind == "string_type":
        return f"Expected string, received {_json_type(received)}"
    if kind == "list_type":
        return f"Expected array, received {_json_type(received)}"
    if kind in ("model_type", "model_attributes_type", "dict_type"):
        return f"Expected object, received {_json_type(received)}"
    if kind == "literal_error":
        expected = " | ".join(f"'{name}'" for name in FIELD_NAMES)
        return f"Invalid enum value. Expected {expected}, received '{received}'"
    return str(error.get("msg", "Invalid value"))


def format_validation_error(exc: ValidationError) -> List[str]:
    """Turn a pydantic error into short per-field reasons, in field order."""
    return [_describe(error) for error in exc.errors()]


def _validate(model: Type[BaseModel], arguments: Any, *, exclude_none: bool) -> Dict[str, Any]:
    if arguments is None:
        raise InvalidArgumentsError(["Required"])
    try:
        parsed = model.model_validate(arguments)
    except ValidationError as exc:
        raise InvalidArgumentsError(format_validation_error(exc)) from exc
    return parsed.model_dump(exclude_none=exclude_none)


def parse_search_arguments(arguments: Any) -> Dict[str, Any]:
    """
    Validate arguments for a single-response search.

    Returns:
        The validated payload with unknown keys dropped.

    Raises:
        InvalidArgumentsError: if a field is missing or has the wrong shape.
    """
    return _validate(SearchArguments, arguments, exclude_none=False)


def parse_streaming_search_arguments(arguments: Any) -> Dict[str, Any]:
    """Validate arguments for a streamed search; absent fields are left out."""
    return _validate(StreamingSearchArguments, arguments, exclude_none=True)


def has_search_terms(payload: Dict[str, Any]) -> bool:
    """A streamed search needs a non-empty vector term or at least one full-text query."""
    return bool(payload.get("vector_search_term")) or bool(payload.get("full_text_queries"))


async def search_readwise_highlights(
    payload: Dict[str, Any], client: ReadwiseApiClient = default_client
) -> List[Any]:
    """
    Forward a validated payload to Readwise.

    Args:
        payload: Output of one of the ``parse_*`` helpers.
        client: Readwise API client (override for testing).

    Returns:
        The upstream results list, in upstream order.
    """
    logger.debug("calling readwise highlight search", extra={"tool": TOOL_NAME})
    return await client.search_highlights(payload)
