"""
Structured Error Logging - functions for logging errors with full context.

Errors logged here reach logs/errors/ as JSONL through the handlers
installed by reflect.core.logging.setup_logging.

Usage:
    from reflect.utils.error_logger import log_error, log_model_error

    log_error("questions", error, operation="validate", context={"reason": "parse_failed"})
    log_model_error("profile_memory", error, model_spec="openai:gpt-4o-mini", session_id="...")
"""

from typing import Any

from reflect.core.logging import get_logger


def _extract_http_details(response: Any) -> dict[str, Any]:
    """Pull status, url and a truncated body off an httpx-like response."""
    details: dict[str, Any] = {}
    status_code = getattr(response, "status_code", None)
    if status_code is not None:
        details["status_code"] = status_code
    url = getattr(response, "url", None)
    if url is not None:
        details["url"] = str(url)
    text = getattr(response, "text", None)
    if isinstance(text, str):
        details["response_body"] = text[:1000]
    return details


def log_error(
    component: str,
    error: Exception,
    *,
    operation: str | None = None,
    context: dict[str, Any] | None = None,
    http_response: Any | None = None,
    session_id: str | None = None,
) -> None:
    """Log error with full context to both console and JSONL.

    Args:
        component: Component name for identifying the source of errors.
        error: The exception that occurred.
        operation: Name of the operation that failed.
        context: Additional context data.
        http_response: HTTP response object (if applicable).
        session_id: Journal session the error belongs to (if applicable).
    """
    logger = get_logger(f"error.{component}")

    operation_str = f" during {operation}" if operation else ""
    session_str = f" (session: {session_id})" if session_id else ""

    logger.error(
        f"{component} error{operation_str}{session_str}: {error}",
        exc_info=error,
        extra={
            "component": component,
            "operation": operation,
            "context_data": context,
            "http_details": _extract_http_details(http_response) if http_response else None,
            "session_id": session_id,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def log_model_error(
    component: str,
    error: Exception,
    *,
    model_spec: str,
    operation: str | None = None,
    session_id: str | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    """Log a failed LLM call; the caller has already fallen back."""
    full_context: dict[str, Any] = {"model_spec": model_spec}
    if context:
        full_context.update(context)
    log_error(
        component,
        error,
        operation=operation or "model_call",
        context=full_context,
        session_id=session_id,
    )
