"""
Pydantic schemas for request pool inputs.

pydantic.ValidationError subclasses ValueError, so callers see invalid
input as ValueError.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from request_pool.config import PoolConfig
from request_pool.models import MatchStatus


class PoolRequest(BaseModel):
    """The rental request fields the pool needs for admission and matching."""

    model_config = ConfigDict(extra='ignore', from_attributes=True)

    id: int = Field(..., ge=1)
    location: str = Field(..., min_length=1, max_length=255)
    budget: float = Field(..., ge=0)
    property_type: Optional[str] = None

    @field_validator('location')
    @classmethod
    def validate_location(cls, v: str) -> str:
        v = ' '.join(v.split())
        if not v:
            raise ValueError('Location must not be blank')
        return v


class ListingQuery(BaseModel):
    """Pagination of a landlord listing."""

    landlord_id: int = Field(..., ge=1)
    page: int = Field(1, ge=1)
    limit: int = Field(PoolConfig.DEFAULT_PAGE_SIZE, ge=1, le=PoolConfig.MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class ResponseUpdate(BaseModel):
    """A landlord's response to a match."""

    status: MatchStatus

    @field_validator('status')
    @classmethod
    def validate_status(cls, v: MatchStatus) -> MatchStatus:
        if v == MatchStatus.PENDING:
            raise ValueError('Response status must be OFFERED or DECLINED')
        return v
