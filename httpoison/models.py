"""Internal data models for httpoison.

All models use Pydantic v2.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Core HTTP Models
# =============================================================================


class RequestDescription(BaseModel):
    """One HTTP request to be executed.

    Header and query values are arrays to support repeated parameters.
    The body is any JSON-encodable value; None means no body is sent.
    Frozen so the instance embedded in the response is the one the caller built.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(default="", description="HTTP method (empty means GET)")
    url: str = Field(default="", description="Absolute http(s) URL")
    body: Any = Field(default=None, description="Payload to JSON-encode, or None")
    headers: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Request headers (arrays for repeated headers). Replaces the whole header set.",
    )
    query_params: dict[str, list[str]] = Field(
        default_factory=dict, description="Query parameters (arrays for repeated params)"
    )
    log_request_body: bool = Field(default=False, description="Include request body in debug log")
    log_response_body: bool = Field(default=False, description="Include response body in debug log")


class ResponseDescription(BaseModel):
    """One HTTP response received for a RequestDescription.

    Header keys are lowercase, so index `headers` with lowercase names
    (`headers["content-type"]`) or use get_header() for case-insensitive
    lookup. Header values are arrays for repeated headers.
    The body is the complete payload as received (Content-Encoding is not
    undone), never truncated.
    """

    model_config = ConfigDict(extra="forbid")

    status_code: int = Field(description="HTTP status code")
    body: bytes = Field(default=b"", description="Raw response body")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )
    request: RequestDescription = Field(description="The request that produced this response")

    def get_header(self, name: str) -> str | None:
        """First value of a header (case-insensitive), or None if absent."""
        values = self.headers.get(name.lower())
        if not values:
            return None
        return values[0]


# =============================================================================
# Runtime Configuration Models
# =============================================================================


_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ExecutorConfig(BaseModel):
    """Top-level configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    max_log_chars: int = Field(
        default=10000, ge=0, description="Maximum body characters in a debug log record"
    )
    timeout: float | None = Field(
        default=None, gt=0, description="Request timeout in seconds (None = no deadline)"
    )
    log_level: str = Field(default="INFO", description="Log level used by the CLI")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level
