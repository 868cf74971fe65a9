"""
API response envelopes for TillGate REST endpoints.

Request bodies are not modelled here: routes hand the raw JSON object to the
auth workflows, which validate it with auth/schemas.py. Keeping one validation
path means the CLI, tests and HTTP clients all get identical error detail.

Every response -- success or failure -- uses the same envelope so clients can
parse it without inspecting the status code first.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class Envelope(BaseModel):
    """Success envelope: {"status": 200, "message": "...", "data": {...}}."""

    status: int
    message: str
    data: Optional[Any] = None


class ErrorEnvelope(BaseModel):
    """Failure envelope. detail carries field-level validation errors when present."""

    status: int
    message: str
    detail: Optional[Any] = None


class HealthComponents(BaseModel):
    app: str = "ok"
    database: str = "ok"


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: HealthComponents
