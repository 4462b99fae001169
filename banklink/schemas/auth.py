"""Schemas related to the aggregator OAuth flow."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class TokenBundle(BaseModel):
    """Token endpoint response for both code exchange and refresh grants."""

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(..., description="Bearer token for Data API calls.")
    refresh_token: Optional[str] = Field(
        None, description="Long-lived token used to renew the access token."
    )
    expires_in: Optional[int] = Field(
        None, description="Access token lifetime in seconds."
    )
    token_type: Optional[str] = None
    scope: Optional[str] = None


class ExtendConnectionRequest(BaseModel):
    """Body accepted by the connection extension endpoint."""

    user_has_reconfirmed_consent: StrictBool = Field(
        ..., description="Whether the user re-confirmed consent in the UI."
    )


__all__ = ["ExtendConnectionRequest", "TokenBundle"]
