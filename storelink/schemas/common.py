"""Common Pydantic schemas used across the API."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class HealthResponse(BaseSchema):
    """Health check response schema."""

    status: str
    version: str
    environment: str
    checks: dict[str, str]
    connected_stores: int | None = None


class ErrorResponse(BaseSchema):
    """Error body returned for store-connection failures."""

    error: str
    detail: str | None = None
    code: int | None = None
