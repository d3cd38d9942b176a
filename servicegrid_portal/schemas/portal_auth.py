"""Request and response bodies for the portal-auth action endpoint.

Wire format is camelCase; every request carries an ``action`` tag that picks
exactly one of the request models below.
"""

import uuid
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


SessionToken = Annotated[str, Field(min_length=1, max_length=512)]


# Requests

class GenerateMagicLinkRequest(CamelModel):
    action: Literal["generate-magic-link"]
    email: str = Field(..., min_length=1, max_length=255)


class ValidateMagicLinkRequest(CamelModel):
    action: Literal["validate-magic-link"]
    token: str = Field(..., min_length=1, max_length=512)


class LoginPasswordRequest(CamelModel):
    action: Literal["login-password"]
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class CreatePasswordRequest(CamelModel):
    action: Literal["create-password"]
    session_token: SessionToken
    password: str = Field(..., min_length=1)


class ValidateSessionRequest(CamelModel):
    action: Literal["validate-session"]
    session_token: SessionToken


class RefreshSessionRequest(CamelModel):
    action: Literal["refresh-session"]
    session_token: SessionToken


class LogoutRequest(CamelModel):
    action: Literal["logout"]
    session_token: SessionToken


class SwitchContextRequest(CamelModel):
    action: Literal["switch-context"]
    session_token: SessionToken
    business_id: uuid.UUID
    customer_id: uuid.UUID


class SendInviteRequest(CamelModel):
    action: Literal["send-invite"]
    customer_id: uuid.UUID
    business_id: uuid.UUID
    email: Optional[EmailStr] = None
    customer_name: Optional[str] = Field(None, max_length=255)


class RevokeAccessRequest(CamelModel):
    action: Literal["revoke-access"]
    customer_id: uuid.UUID
    business_id: uuid.UUID


PortalAuthRequest = Annotated[
    Union[
        GenerateMagicLinkRequest,
        ValidateMagicLinkRequest,
        LoginPasswordRequest,
        CreatePasswordRequest,
        ValidateSessionRequest,
        RefreshSessionRequest,
        LogoutRequest,
        SwitchContextRequest,
        SendInviteRequest,
        RevokeAccessRequest,
    ],
    Field(discriminator="action"),
]

# Actions reachable without any credential, throttled per client IP
UNAUTHENTICATED_ACTIONS = frozenset({"generate-magic-link", "validate-magic-link", "login-password"})


# Responses

class LinkedBusiness(CamelModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    name: Optional[str] = None
    logo_url: Optional[str] = None
    is_primary: bool = False


class SuccessResponse(CamelModel):
    success: bool = True


class MessageResponse(SuccessResponse):
    message: str


class InviteSentResponse(MessageResponse):
    email: str


class PasswordLoginResponse(CamelModel):
    session_token: str
    customer_account_id: uuid.UUID
    active_business_id: Optional[uuid.UUID] = None
    active_customer_id: Optional[uuid.UUID] = None
    businesses: List[LinkedBusiness] = []


class MagicLinkLoginResponse(PasswordLoginResponse):
    customer_name: Optional[str] = None


class SessionInfoResponse(CamelModel):
    valid: bool = True
    customer_account_id: uuid.UUID
    active_business_id: Optional[uuid.UUID] = None
    active_customer_id: Optional[uuid.UUID] = None
    businesses: List[LinkedBusiness] = []
    email: str


class RefreshSessionResponse(SuccessResponse):
    expires_at: datetime
