"""HTTP client wrappers for the Readwise MCP API."""

from .client import (
    ReadwiseApiClient,
    ReadwiseApiError,
    ReadwiseUnreachableError,
    RetryPolicy,
    UnexpectedResponseError,
    default_client,
    retry_on_error_status,
    retry_on_server_error,
)

__all__ = [
    "ReadwiseApiClient",
    "ReadwiseApiError",
    "ReadwiseUnreachableError",
    "UnexpectedResponseError",
    "RetryPolicy",
    "retry_on_error_status",
    "retry_on_server_error",
    "default_client",
]
