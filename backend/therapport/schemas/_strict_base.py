"""Schema bases. Unknown fields are rejected on requests and responses alike."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Response DTO base; assignments are re-validated."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class StrictRequestModel(StrictModel):
    """Request DTO base. A stray field in a booking or checkout body is a 422, not a silent drop."""
