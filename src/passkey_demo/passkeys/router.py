"""Passkey (WebAuthn) API router - mounted at ``/passkey``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from passkey_demo.errors import PasskeyError
from passkey_demo.passkeys import schemas
from passkey_demo.passkeys.service import CeremonyService

router = APIRouter(prefix="/passkey", tags=["passkey"])


def _ceremonies(request: Request) -> CeremonyService:
    return request.app.state.ceremonies  # type: ignore[no-any-return]


def _http_error(exc: PasskeyError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail=schemas.ErrorDetail(code=exc.code, message=exc.message).model_dump(),
    )


_CEREMONY_ERRORS = {
    400: {
        "model": schemas.ErrorResponse,
        "description": "Missing or expired challenge, or the WebAuthn response did not verify.",
    },
    503: {"model": schemas.ErrorResponse, "description": "Storage unavailable, retry."},
}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post(
    "/register",
    response_model=schemas.CeremonyStartResponse,
    summary="Start passkey registration",
    description=(
        "Begin a passkey registration ceremony. Issues a single-use challenge bound to a "
        "new flow ID and returns WebAuthn creation options."
    ),
    responses={503: _CEREMONY_ERRORS[503]},
)
async def register_start(ceremonies: CeremonyService = Depends(_ceremonies)):
    try:
        flow_id, options = await ceremonies.begin_registration()
    except PasskeyError as exc:
        raise _http_error(exc) from None
    return schemas.CeremonyStartResponse(flow_id=flow_id, options=options)


@router.post(
    "/register/verify",
    response_model=schemas.VerifyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Finish passkey registration",
    description=(
        "Verify the attestation for the flow and store the new passkey. The flow's "
        "challenge is consumed whether or not verification succeeds."
    ),
    responses={
        **_CEREMONY_ERRORS,
        409: {"model": schemas.ErrorResponse, "description": "Credential already registered."},
    },
)
async def register_verify(
    body: schemas.RegisterVerifyRequest,
    ceremonies: CeremonyService = Depends(_ceremonies),
):
    try:
        result = await ceremonies.complete_registration(body.flow_id, body.credential)
    except PasskeyError as exc:
        raise _http_error(exc) from None
    return schemas.VerifyResponse(verified=result.verified, user_id=result.user_id)


# ---------------------------------------------------------------------------
# Authentication  (username-less)
# ---------------------------------------------------------------------------


@router.post(
    "/authenticate",
    response_model=schemas.CeremonyStartResponse,
    summary="Start passkey authentication",
    description="Begin a username-less passkey login and return WebAuthn request options.",
    responses={503: _CEREMONY_ERRORS[503]},
)
async def authenticate_start(ceremonies: CeremonyService = Depends(_ceremonies)):
    try:
        flow_id, options = await ceremonies.begin_authentication()
    except PasskeyError as exc:
        raise _http_error(exc) from None
    return schemas.CeremonyStartResponse(flow_id=flow_id, options=options)


@router.post(
    "/authenticate/verify",
    response_model=schemas.VerifyResponse,
    summary="Finish passkey authentication",
    description=(
        "Verify the assertion for the flow, enforce the signature counter and return the "
        "authenticated user ID."
    ),
    responses={
        **_CEREMONY_ERRORS,
        401: {
            "model": schemas.ErrorResponse,
            "description": "Unknown or deactivated passkey, or signature counter replay.",
        },
    },
)
async def authenticate_verify(
    body: schemas.AuthenticateVerifyRequest,
    ceremonies: CeremonyService = Depends(_ceremonies),
):
    try:
        result = await ceremonies.complete_authentication(body.flow_id, body.credential)
    except PasskeyError as exc:
        raise _http_error(exc) from None
    return schemas.VerifyResponse(verified=result.verified, user_id=result.user_id)
