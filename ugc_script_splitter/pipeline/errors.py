"""Typed error taxonomy for the generation pipeline.

WHY: Every layer needs to know what kind of failure it is looking at. The
resilience layer retries only timeouts and transient upstream failures,
the orchestrator lets everything propagate, and the HTTP boundary picks a
status code per kind. Re-deriving the kind from message text at each
layer is fragile, so the kind is decided once, where the failure is
detected, and carried on the exception.

HOW: PipelineError carries an ErrorKind and an optional call-site label.
One subclass per kind. classify_exception() maps foreign exceptions
(httpx, asyncio, anything else) onto a kind as a single fallback.

RULES:
- UpstreamTimeoutError messages end in "_timeout" (e.g. "openai_segment_3_timeout")
- MalformedOutputError is raised only after every JSON recovery tier failed
- Only TIMEOUT and TRANSIENT are retryable
- TemplateLoadError is fatal for the run
"""

from __future__ import annotations

import asyncio
import enum
import re


class ErrorKind(str, enum.Enum):
    """What went wrong, decided once at the point of detection."""

    TIMEOUT = "timeout"
    TRANSIENT = "transient"
    MALFORMED = "malformed"
    FATAL = "fatal"
    VALIDATION = "validation"


RETRYABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.TRANSIENT})


class PipelineError(Exception):
    """Base class for every failure the pipeline reports.

    RULES:
    - kind is always set; subclasses fix it
    - label names the call site ("openai_base", "openai_segment_2", ...)
    """

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str, *, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class UpstreamTimeoutError(PipelineError):
    """Raised when an upstream call does not finish within its budget.

    The message is ``f"{label}_timeout"`` so logs and callers that only see
    the text still recognise it.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(self, label: str) -> None:
        super().__init__(f"{label}_timeout", label=label)


class TransientUpstreamError(PipelineError):
    """Raised for rate-limit, overload and connection-level upstream failures."""

    kind = ErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        *,
        label: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, label=label)
        self.status_code = status_code


class FatalUpstreamError(PipelineError):
    """Raised for upstream failures that retrying cannot fix (auth, bad request)."""

    kind = ErrorKind.FATAL

    def __init__(
        self,
        message: str,
        *,
        label: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, label=label)
        self.status_code = status_code


class MalformedOutputError(PipelineError):
    """Raised when model output cannot be turned into the expected JSON.

    HOW: The JSON recovery chain raises this with "json_repair_failed" once
    the repair call's reply is still unparseable. Schema validation of
    base descriptions raises it with "base_descriptions_invalid".
    """

    kind = ErrorKind.MALFORMED

    def __init__(
        self,
        message: str = "json_repair_failed",
        *,
        label: str | None = None,
        raw: str | None = None,
    ) -> None:
        super().__init__(message, label=label)
        self.raw = raw


class InputValidationError(PipelineError, ValueError):
    """Raised when caller input violates a precondition. Never retried."""

    kind = ErrorKind.VALIDATION


class TemplateLoadError(PipelineError):
    """Raised when a prompt template cannot be read. Fatal for the run."""

    kind = ErrorKind.FATAL


# ---------------------------------------------------------------------------
# Classification of foreign exceptions
# ---------------------------------------------------------------------------

_TRANSIENT_RE = re.compile(r"rate.?limit|overloaded|temporar|\b429\b|try again", re.IGNORECASE)
_TIMEOUT_RE = re.compile(r"timeout|timed out", re.IGNORECASE)


def classify_exception(exc: BaseException) -> ErrorKind:
    """Return the ErrorKind for any exception.

    HOW: PipelineError subclasses carry their own kind. Built-in timeouts
    map to TIMEOUT and connection errors to TRANSIENT. Anything else is
    classified by message text as a last resort, defaulting to FATAL.
    """
    if isinstance(exc, PipelineError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.TRANSIENT

    message = str(exc)
    if message.endswith("_timeout") or _TIMEOUT_RE.search(message):
        return ErrorKind.TIMEOUT
    if _TRANSIENT_RE.search(message):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def is_retryable(exc: BaseException) -> bool:
    """True when exc should be retried by the resilience layer."""
    return classify_exception(exc) in RETRYABLE_KINDS
