"""
Scrapbook Backend — Sign-in Schemas
====================================

What:  The identity assertion accepted from the identity-provider gateway,
       and the two possible sign-in outcomes (session or pending request).

Assertion wire shape (camelCase, snake_case also accepted):
    {"externalId": "...", "email": "...", "displayName": "...", "avatarUrl": "..."}
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scrapbook.schemas.user import UserProfile


class IdentityAssertion(BaseModel):
    """
    Verified identity claim handed back by the external provider.

    Only the shape is checked here; email normalization and domain policy
    belong to the identity/access services.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    external_id: Optional[str] = Field(default=None, max_length=255)
    email: str = Field(max_length=320)
    display_name: str = Field(default="", max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=2048)


class DevLoginRequest(BaseModel):
    email: str = Field(max_length=320)
    display_name: str = Field(default="", max_length=255)


class AdminLoginRequest(BaseModel):
    login_id: str
    login_pass: str


class TokenResponse(BaseModel):
    """Session established."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")
    user: Optional[UserProfile] = None


class PendingResponse(BaseModel):
    """Sign-in refused for now; an administrator has to review the request."""
    status: str = "pending"
    reason: str = Field(description="'submitted' or 'already_pending'")
    message: str
