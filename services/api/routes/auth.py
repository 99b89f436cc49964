"""
Authentication routes: email/password, federated sign-in and sign-out.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from services.api.dependencies import get_timely_app
from services.auth.gateway import FederatedChallenge
from services.timely.app import TimelyApp
from shared.errors import FederatedSignInError
from shared.schemas import AuthSession

logger = logging.getLogger(__name__)

router = APIRouter()


class SignInRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    first_name: str
    last_name: str = ""


class PasswordResetRequest(BaseModel):
    email: str


class FederatedBeginResponse(BaseModel):
    """Hashed nonce for the platform request; raw nonce to send back on completion."""
    raw_nonce: str
    hashed_nonce: str


class FederatedCompleteRequest(BaseModel):
    raw_nonce: str
    id_token: str
    provider_id: Optional[str] = None


class AuthResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    provider_id: str

    @classmethod
    def from_session(cls, session: AuthSession) -> "AuthResponse":
        return cls(
            user_id=session.user_id,
            email=session.email,
            display_name=session.display_name,
            provider_id=session.provider_id,
        )


class MeResponse(BaseModel):
    signed_in: bool
    user_id: Optional[str] = None
    email: Optional[str] = None


@router.post("/signin", response_model=AuthResponse)
async def sign_in(request: SignInRequest, timely: TimelyApp = Depends(get_timely_app)):
    session = await timely.auth.sign_in(request.email, request.password)
    return AuthResponse.from_session(session)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, timely: TimelyApp = Depends(get_timely_app)):
    await timely.create_account(request.email, request.password, request.first_name, request.last_name)
    return AuthResponse.from_session(timely.auth.session)


@router.post("/password-reset", status_code=status.HTTP_202_ACCEPTED)
async def password_reset(request: PasswordResetRequest, timely: TimelyApp = Depends(get_timely_app)):
    await timely.auth.send_password_reset(request.email)
    return {"message": "If an account exists for this email, a reset link has been sent."}


@router.post("/signout")
async def sign_out(timely: TimelyApp = Depends(get_timely_app)):
    await timely.auth.sign_out()
    return {"message": "Signed out"}


@router.post("/federated/begin", response_model=FederatedBeginResponse)
async def begin_federated(timely: TimelyApp = Depends(get_timely_app)):
    challenge = timely.auth.begin_federated_sign_in()
    return FederatedBeginResponse(raw_nonce=challenge.raw_nonce, hashed_nonce=challenge.hashed_nonce)


@router.post("/federated/complete", response_model=AuthResponse)
async def complete_federated(
    request: FederatedCompleteRequest, timely: TimelyApp = Depends(get_timely_app)
):
    if not request.raw_nonce:
        raise FederatedSignInError("Invalid state: a sign-in request was not started.")
    challenge = FederatedChallenge(raw_nonce=request.raw_nonce, hashed_nonce="")
    session = await timely.auth.complete_federated_sign_in(
        challenge, request.id_token, request.provider_id
    )
    return AuthResponse.from_session(session)


@router.get("/me", response_model=MeResponse)
async def me(timely: TimelyApp = Depends(get_timely_app)):
    return MeResponse(
        signed_in=timely.auth.is_signed_in,
        user_id=timely.auth.current_user_id,
        email=timely.auth.current_email,
    )
