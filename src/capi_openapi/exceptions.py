"""Exception hierarchy for capi-openapi.

Extraction ambiguities are not exceptions: they are recorded on the
ExtractionResult and reported. Exceptions are reserved for conditions that
stop a command:

- InputError: the input file is missing or cannot be parsed.
- ToolError: an external binary is missing or exited non-zero.
- ValidationFailedError: the finished spec has hard validation failures.
"""

from __future__ import annotations

from typing import Any


class CapiOpenApiError(Exception):
    """Base class for all errors raised by capi-openapi."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extra = ", ".join(f"{k}={v}" for k, v in sorted(self.details.items()))
        return f"{self.message} ({extra})"


class InputError(CapiOpenApiError):
    """Input file absent or unparseable. Nothing is written."""


class ExtractionError(CapiOpenApiError):
    """The HTML has no document body to extract from."""


class ToolError(CapiOpenApiError):
    """An external tool could not be used. This is a setup problem, not a spec problem."""


class ToolNotFoundError(ToolError):
    def __init__(self, tool: str):
        super().__init__(f"External tool not found on PATH: {tool}", {"tool": tool})
        self.tool = tool


class ToolFailedError(ToolError):
    def __init__(self, tool: str, returncode: int, output: str = ""):
        super().__init__(
            f"External tool failed: {tool}",
            {"tool": tool, "returncode": returncode},
        )
        self.tool = tool
        self.returncode = returncode
        self.output = output


class ValidationFailedError(CapiOpenApiError):
    """The spec has at least one error-severity finding."""

    def __init__(self, error_count: int):
        super().__init__("Spec validation failed", {"errors": error_count})
        self.error_count = error_count
