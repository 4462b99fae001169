"""
Domain models for aggregator token persistence.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TokenRecord(BaseModel):
    """The single live token row held for a user."""

    user_id: str = Field(..., description="Application-level user identifier.")
    access_token: str
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    expires_in: Optional[int] = Field(
        None, description="Access token lifetime in seconds, as issued."
    )
    created_at: datetime = Field(
        ..., description="Time the current token set was written."
    )


__all__ = ["TokenRecord"]
