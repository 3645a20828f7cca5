"""
Scrapbook Backend — Sign-in Route Handlers
===========================================

What:  Turns a verified identity (or admin credentials) into a bearer token.
Who:   Called by the identity-provider gateway, the local dev login form and
       the admin console login.

Outcomes of a member sign-in:
    200  {access_token, user}              session established
    202  {status: "pending", reason, ...}  queued for administrator review
    403  email domain not permitted
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.database import get_db_session
from scrapbook.exceptions import AuthenticationError
from scrapbook.schemas.common import ErrorResponse
from scrapbook.schemas.identity import (
    AdminLoginRequest,
    DevLoginRequest,
    IdentityAssertion,
    PendingResponse,
    TokenResponse,
)
from scrapbook.schemas.user import UserProfile
from scrapbook.security import (
    admin_token,
    require_dev_login,
    token_lifetime_seconds,
    user_token,
    verify_admin_credentials,
    verify_gateway_key,
)
from scrapbook.services.access_service import SignInResult, access_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

SIGN_IN_RESPONSES = {
    200: {"description": "Signed in", "model": TokenResponse},
    202: {"description": "Access request pending review", "model": PendingResponse},
    400: {"description": "Unusable email", "model": ErrorResponse},
    403: {"description": "Email domain not permitted", "model": ErrorResponse},
}


def sign_in_response(result: SignInResult) -> JSONResponse:
    if result.signed_in:
        body = TokenResponse(
            access_token=user_token(result.user),
            expires_in=token_lifetime_seconds(),
            user=UserProfile.from_user(result.user),
        )
        return JSONResponse(status_code=200, content=body.model_dump(mode="json"))

    body = PendingResponse(reason=result.pending_reason.value, message=result.message)
    return JSONResponse(status_code=202, content=body.model_dump(mode="json"))


@router.post(
    "/identity",
    response_model=None,
    responses=SIGN_IN_RESPONSES,
    dependencies=[Depends(verify_gateway_key)],
    summary="Sign in with a verified identity assertion",
)
async def identity_sign_in(
    assertion: IdentityAssertion,
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    result = await access_service.sign_in(db, assertion)
    return sign_in_response(result)


@router.post(
    "/dev",
    response_model=None,
    responses=SIGN_IN_RESPONSES,
    dependencies=[Depends(require_dev_login)],
    summary="Local development sign-in (ALLOW_DEV_LOGIN only)",
)
async def dev_sign_in(
    payload: DevLoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    assertion = IdentityAssertion(
        external_id=None,
        email=payload.email,
        display_name=payload.display_name,
    )
    result = await access_service.sign_in(db, assertion)
    return sign_in_response(result)


@router.post(
    "/admin",
    response_model=TokenResponse,
    responses={401: {"description": "Wrong credentials", "model": ErrorResponse}},
    summary="Administrator sign-in",
)
async def admin_sign_in(payload: AdminLoginRequest) -> TokenResponse:
    if not verify_admin_credentials(payload.login_id, payload.login_pass):
        logger.warning("Failed administrator sign-in")
        raise AuthenticationError(message="Invalid admin credentials")
    logger.info("Administrator signed in")
    return TokenResponse(access_token=admin_token(), expires_in=token_lifetime_seconds())
