"""
api/routes/v1/auth.py -- Login, registration and logout endpoints.

Routes:
  POST /api/v1/auth/login      -- password login; sets session cookie
  POST /api/v1/auth/register   -- create a USER account
  POST /api/v1/auth/logout     -- replaces the cookie with an expired one; 200

Security:
  Every path under /api/v1/auth/ passes the per-client token bucket in
    api/main.py before reaching these handlers.
  login() goes through authenticate_user(), which equalizes timing for
    unknown emails -- never inline get_by_email() + verify_password().
  Cache-Control: no-store on login responses, success and failure alike.
  Unknown email and wrong password produce byte-identical 401 bodies apart
  from the timestamp.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, UserResponse
from auth import service
from auth.dependencies import authorize
from auth.policy import EndpointClass
from auth.store import UserStore
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy: all three endpoints are PUBLIC.
router = APIRouter(dependencies=[Depends(authorize(EndpointClass.PUBLIC))])


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    InvalidCredentials propagates to the AuthError handler, which adds
    no-store there as well.
    """
    user_store: UserStore = request.app.state.user_store
    codec = request.app.state.token_codec
    user, token = service.login(user_store, codec, body.email, body.password)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(message="Logged in successfully.", user=UserResponse.from_user(user)).model_dump(
            mode="json"
        ),
    )
    set_session_cookie(resp, token, max_age=codec.ttl_seconds, secure=request.app.state.settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a USER account. Returns public fields only; does not log the user in."""
    user_store: UserStore = request.app.state.user_store
    user = service.register_user(user_store, body.name, body.email, body.password)
    return UserResponse.from_user(user)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request) -> JSONResponse:
    """Tell the browser to discard the session cookie.

    The token itself is not revoked: a copy presented later still verifies
    until its exp claim passes.
    """
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp, secure=request.app.state.settings.secure_cookies)
    return resp
