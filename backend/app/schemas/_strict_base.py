"""Strict request/response bases that reject unknown fields."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Strict base for response DTOs built from ORM rows."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base; a typo in a field name is a 422, not a silent drop."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
