"""Success and error envelopes shared by every endpoint.

    {"success": true,  "data": {...},  "meta": {...}}
    {"success": false, "error": {...}, "meta": {...}}
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from bookmark_sync import __version__
from bookmark_sync.api.context import correlation_id_ctx


def _utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MetaInfo(BaseModel):
    correlation_id: str = ""
    timestamp: str = Field(default_factory=_utc_now)
    version: str = __version__


class ErrorDetail(BaseModel):
    code: str
    error_type: str = Field(default="internal", serialization_alias="errorType")
    message: str
    retryable: bool = False
    details: dict[str, Any] | None = None
    correlation_id: str = ""


class SuccessResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]
    meta: MetaInfo = Field(default_factory=MetaInfo)


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
    meta: MetaInfo = Field(default_factory=MetaInfo)


def _resolve_correlation_id(correlation_id: str | None) -> str:
    return correlation_id or correlation_id_ctx.get() or ""


def success_response(
    data: BaseModel | dict[str, Any],
    *,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    payload = data.model_dump(by_alias=True) if isinstance(data, BaseModel) else data
    meta = MetaInfo(correlation_id=_resolve_correlation_id(correlation_id))
    return SuccessResponse(data=payload, meta=meta).model_dump()


def make_error(
    code: str,
    message: str,
    *,
    error_type: str = "internal",
    retryable: bool = False,
    details: dict[str, Any] | None = None,
) -> ErrorDetail:
    return ErrorDetail(
        code=code,
        error_type=error_type,
        message=message,
        retryable=retryable,
        details=details,
    )


def error_response(detail: ErrorDetail, *, correlation_id: str | None = None) -> dict[str, Any]:
    """Envelope for ``detail``; the correlation id is copied into both blocks."""
    corr = _resolve_correlation_id(correlation_id)
    if not detail.correlation_id:
        detail = detail.model_copy(update={"correlation_id": corr})
    return ErrorResponse(error=detail, meta=MetaInfo(correlation_id=corr)).model_dump(
        by_alias=True
    )
