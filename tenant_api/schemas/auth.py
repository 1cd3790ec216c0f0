"""
Authentication Schemas

Request/response models for authentication endpoints.

Payloads use camelCase on the wire (tenantCode, accessToken, ...); fields
can also be populated by their Python names.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class LoginRequest(CamelModel):
    """Login request body."""
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    # Also read by TenantMiddleware before the endpoint runs
    tenant_code: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("tenantCode", "TenantCode", "tenant_code")
    )

    class Config:
        json_schema_extra = {
            "example": {
                "tenantCode": "acme",
                "email": "admin@acme.com",
                "password": "Admin@123"
            }
        }


class LoginResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_at: datetime
    user_id: str
    email: str
    full_name: str
    roles: List[str] = []


class RefreshRequest(CamelModel):
    refresh_token: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("refreshToken", "RefreshToken", "refresh_token")
    )


class TokenResponse(CamelModel):
    """Rotated token pair."""
    access_token: str
    refresh_token: str
    expires_at: datetime


class CurrentUserResponse(CamelModel):
    """Identity carried by the bearer access token."""
    user_id: str
    email: str
    full_name: str = ""
    roles: List[str] = []
    tenant_code: str
