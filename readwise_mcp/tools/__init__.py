"""LLM-facing tool implementations."""

from .highlights import (
    FIELD_NAMES,
    INPUT_SCHEMA,
    TOOL_DESCRIPTION,
    TOOL_NAME,
    InvalidArgumentsError,
    has_search_terms,
    parse_search_arguments,
    parse_streaming_search_arguments,
    search_readwise_highlights,
)

__all__ = [
    "FIELD_NAMES",
    "INPUT_SCHEMA",
    "TOOL_DESCRIPTION",
    "TOOL_NAME",
    "InvalidArgumentsError",
    "has_search_terms",
    "parse_search_arguments",
    "parse_streaming_search_arguments",
    "search_readwise_highlights",
]
