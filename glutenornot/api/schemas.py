"""Request and error body models for the REST API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class AnalyzeRequest(BaseModel):
    """POST /api/analyze body.

    ``image`` is left untyped so a missing or malformed value reaches the
    orchestrator and is reported as a 400, not a framework 422.
    """

    image: Any = Field(None, description="Base64-encoded JPEG")


class BarcodeRequest(BaseModel):
    """POST /api/barcode body."""

    barcode: Any = Field(None, description="8-14 digit barcode")


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""

    error: str
    message: str
    code: Optional[str] = None
    retry_after: Optional[int] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
