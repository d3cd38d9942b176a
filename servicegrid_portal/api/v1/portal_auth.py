"""
Customer portal authentication endpoint.

One POST route; the body's ``action`` field selects the handler. Customer
actions authenticate with a portal session token in the body, staff actions
(send-invite, revoke-access) with a staff Bearer JWT.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Body
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicegrid_portal.api.deps import (
    ClientInfoDep,
    ClockDep,
    DbSession,
    EmailServiceDep,
    OptionalStaffUser,
    SessionFactory,
)
from servicegrid_portal.exceptions import UnauthorizedError
from servicegrid_portal.models import StaffUser
from servicegrid_portal.schemas.portal_auth import (
    UNAUTHENTICATED_ACTIONS,
    CreatePasswordRequest,
    GenerateMagicLinkRequest,
    InviteSentResponse,
    LinkedBusiness,
    LoginPasswordRequest,
    LogoutRequest,
    MagicLinkLoginResponse,
    MessageResponse,
    PasswordLoginResponse,
    PortalAuthRequest,
    RefreshSessionRequest,
    RefreshSessionResponse,
    RevokeAccessRequest,
    SendInviteRequest,
    SessionInfoResponse,
    SuccessResponse,
    SwitchContextRequest,
    ValidateMagicLinkRequest,
    ValidateSessionRequest,
)
from servicegrid_portal.security.rate_limiter import get_rate_limiter
from servicegrid_portal.services.account_links import linked_businesses
from servicegrid_portal.services.email_service import EmailService
from servicegrid_portal.services.invite_manager import InviteManager
from servicegrid_portal.services.magic_link import MagicLinkService
from servicegrid_portal.services.notification_dispatcher import schedule_first_login_notifications
from servicegrid_portal.services.password_auth import PasswordAuthenticator
from servicegrid_portal.services.session_manager import LoginOutcome, SessionManager
from servicegrid_portal.utils.datetime_utils import Clock
from servicegrid_portal.utils.request_info import ClientInfo

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class ActionContext:
    db: AsyncSession
    clock: Clock
    email_service: EmailService
    session_factory: async_sessionmaker
    client: ClientInfo
    staff_user: Optional[StaffUser]

    def require_staff(self) -> StaffUser:
        if self.staff_user is None:
            raise UnauthorizedError("Could not validate credentials")
        return self.staff_user


def _businesses(links) -> list:
    return [LinkedBusiness(**entry) for entry in linked_businesses(links)]


def _customer_name_for(outcome: LoginOutcome) -> Optional[str]:
    for link in outcome.links:
        if link.business_id == outcome.business_id and link.customer_id == outcome.customer_id:
            return link.customer.full_name if link.customer else None
    return None


def _notify_if_first_login(ctx: ActionContext, outcome: LoginOutcome, customer_name: Optional[str]) -> None:
    if not outcome.first_login:
        return
    schedule_first_login_notifications(
        ctx.session_factory,
        ctx.email_service,
        business_id=outcome.business_id,
        customer_id=outcome.customer_id,
        customer_email=outcome.account.email,
        customer_name=customer_name,
    )


async def generate_magic_link(body: GenerateMagicLinkRequest, ctx: ActionContext) -> MessageResponse:
    message = await MagicLinkService(ctx.db, ctx.email_service, ctx.clock).issue(body.email)
    return MessageResponse(message=message)


async def validate_magic_link(body: ValidateMagicLinkRequest, ctx: ActionContext) -> MagicLinkLoginResponse:
    service = MagicLinkService(ctx.db, ctx.email_service, ctx.clock)
    outcome, customer_name = await service.redeem(body.token, ctx.client)
    _notify_if_first_login(ctx, outcome, customer_name)
    return MagicLinkLoginResponse(
        session_token=outcome.session_token,
        customer_account_id=outcome.account.id,
        active_business_id=outcome.business_id,
        active_customer_id=outcome.customer_id,
        businesses=_businesses(outcome.links),
        customer_name=customer_name,
    )


async def login_password(body: LoginPasswordRequest, ctx: ActionContext) -> PasswordLoginResponse:
    outcome = await PasswordAuthenticator(ctx.db, ctx.clock).login(body.email, body.password, ctx.client)
    _notify_if_first_login(ctx, outcome, _customer_name_for(outcome))
    return PasswordLoginResponse(
        session_token=outcome.session_token,
        customer_account_id=outcome.account.id,
        active_business_id=outcome.business_id,
        active_customer_id=outcome.customer_id,
        businesses=_businesses(outcome.links),
    )


async def create_password(body: CreatePasswordRequest, ctx: ActionContext) -> SuccessResponse:
    await PasswordAuthenticator(ctx.db, ctx.clock).create_password(body.session_token, body.password)
    return SuccessResponse()


async def validate_session(body: ValidateSessionRequest, ctx: ActionContext) -> SessionInfoResponse:
    state = await SessionManager(ctx.db, ctx.clock).validate(body.session_token)
    session = state["session"]
    return SessionInfoResponse(
        customer_account_id=state["account"].id,
        active_business_id=session.active_business_id,
        active_customer_id=session.active_customer_id,
        businesses=_businesses(state["links"]),
        email=state["account"].email,
    )


async def refresh_session(body: RefreshSessionRequest, ctx: ActionContext) -> RefreshSessionResponse:
    expires_at = await SessionManager(ctx.db, ctx.clock).refresh(body.session_token)
    return RefreshSessionResponse(expires_at=expires_at)


async def logout(body: LogoutRequest, ctx: ActionContext) -> SuccessResponse:
    await SessionManager(ctx.db, ctx.clock).logout(body.session_token)
    return SuccessResponse()


async def switch_context(body: SwitchContextRequest, ctx: ActionContext) -> SuccessResponse:
    await SessionManager(ctx.db, ctx.clock).switch_context(
        body.session_token, body.business_id, body.customer_id
    )
    return SuccessResponse()


async def send_invite(body: SendInviteRequest, ctx: ActionContext) -> InviteSentResponse:
    staff_user = ctx.require_staff()
    email = await InviteManager(ctx.db, ctx.email_service, ctx.clock).send_invite(
        staff_user,
        body.business_id,
        body.customer_id,
        ctx.client,
        email=body.email,
        customer_name=body.customer_name,
    )
    return InviteSentResponse(message="Portal invite sent", email=email)


async def revoke_access(body: RevokeAccessRequest, ctx: ActionContext) -> MessageResponse:
    staff_user = ctx.require_staff()
    await InviteManager(ctx.db, ctx.email_service, ctx.clock).revoke_access(
        staff_user, body.business_id, body.customer_id, ctx.client
    )
    return MessageResponse(message="Portal access revoked")


ACTION_HANDLERS: Dict[str, Callable[..., Awaitable[BaseModel]]] = {
    "generate-magic-link": generate_magic_link,
    "validate-magic-link": validate_magic_link,
    "login-password": login_password,
    "create-password": create_password,
    "validate-session": validate_session,
    "refresh-session": refresh_session,
    "logout": logout,
    "switch-context": switch_context,
    "send-invite": send_invite,
    "revoke-access": revoke_access,
}


@router.post("")
async def portal_auth(
    db: DbSession,
    clock: ClockDep,
    email_service: EmailServiceDep,
    session_factory: SessionFactory,
    client: ClientInfoDep,
    staff_user: OptionalStaffUser,
    body: PortalAuthRequest = Body(...),
):
    """Dispatch a portal auth action."""
    if body.action in UNAUTHENTICATED_ACTIONS:
        await get_rate_limiter().check(client.ip_address, body.action)

    ctx = ActionContext(
        db=db,
        clock=clock,
        email_service=email_service,
        session_factory=session_factory,
        client=client,
        staff_user=staff_user,
    )
    logger.debug("Portal auth action", extra={"action": body.action})
    return await ACTION_HANDLERS[body.action](body, ctx)
