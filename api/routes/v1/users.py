"""
api/routes/v1/users.py -- Account management endpoints.

Routes:
  GET    /api/v1/users            -- list all users (admin only)
  GET    /api/v1/users/me         -- caller's account (requires auth)
  PUT    /api/v1/users/me         -- update own name/email/password (requires auth)
  DELETE /api/v1/users/me         -- delete own account and products (requires auth)
  PUT    /api/v1/users/{id}       -- update any account incl. role (admin only)
  DELETE /api/v1/users/{id}       -- delete any account and its products (admin only)

Self-update:
  When the caller changes email or password, a fresh session cookie is minted
  for the already-verified identity (no password replay). The update is
  committed first; if the refresh fails the response says so through
  session_refreshed=false and the old cookie stays in place.

/me routes are registered before /{user_id} so "me" is never captured as an id.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import limiter
from api.models import AdminUserUpdate, MessageResponse, UserResponse, UserUpdate, UserUpdateResponse
from auth.dependencies import authorize
from auth.errors import DuplicateEmail
from auth.models import CallerContext, User
from auth.policy import EndpointClass
from auth.service import refresh_session
from auth.store import UserStore
from auth.tokens import clear_session_cookie, hash_password
from catalog.store import ProductStore
from core.config import get_settings

router = APIRouter()

_WRITE_LIMIT = get_settings().write_rate_limit

require_caller = authorize(EndpointClass.AUTHENTICATED)
require_admin = authorize(EndpointClass.ADMIN_ONLY)


# ---------------------------------------------------------------------------
# Admin listing
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, caller: CallerContext = Depends(require_admin)) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


# ---------------------------------------------------------------------------
# Own account
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=UserResponse)
def get_me(request: Request, caller: CallerContext = Depends(require_caller)) -> UserResponse:
    return UserResponse.from_user(_load_user(request, caller.identity_id))


@limiter.limit(_WRITE_LIMIT)
@router.put("/users/me", response_model=UserUpdateResponse)
def update_me(
    request: Request,
    response: Response,
    body: UserUpdate,
    caller: CallerContext = Depends(require_caller),
) -> UserUpdateResponse:
    """Update the caller's own name, email or password.

    Role is not accepted here -- only admins change roles, via PUT /users/{id}.
    Cookies set on the injected `response` are merged into the final response.
    """
    user_store: UserStore = request.app.state.user_store
    user = _load_user(request, caller.identity_id)
    updated, credentials_changed = _apply_update(user_store, user, body)

    refreshed = False
    if credentials_changed:
        refreshed = refresh_session(
            response,
            request.app.state.token_codec,
            updated,
            secure=request.app.state.settings.secure_cookies,
        )
    return UserUpdateResponse(
        message="Updated successfully.",
        user=UserResponse.from_user(updated),
        session_refreshed=refreshed,
    )


@limiter.limit(_WRITE_LIMIT)
@router.delete("/users/me", response_model=MessageResponse)
def delete_me(
    request: Request,
    response: Response,
    caller: CallerContext = Depends(require_caller),
) -> MessageResponse:
    """Delete the caller's products and account, then clear the session cookie."""
    _delete_account(request, caller.identity_id)
    clear_session_cookie(response, secure=request.app.state.settings.secure_cookies)
    return MessageResponse(message="Deleted successfully.")


# ---------------------------------------------------------------------------
# Admin management of any account
# ---------------------------------------------------------------------------


@limiter.limit(_WRITE_LIMIT)
@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: AdminUserUpdate,
    caller: CallerContext = Depends(require_admin),
) -> UserResponse:
    """Update another account's fields, including role. Admin only.

    No session is minted here: the admin's own cookie is unaffected and the
    target user's existing tokens keep their subject (the id never changes).
    """
    user_store: UserStore = request.app.state.user_store
    target = _load_user(request, user_id)
    updated, _ = _apply_update(user_store, target, body, role=body.role)
    return UserResponse.from_user(updated)


@limiter.limit(_WRITE_LIMIT)
@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    response: Response,
    user_id: str,
    caller: CallerContext = Depends(require_admin),
) -> MessageResponse:
    """Delete any account and its products. Admin only.

    An admin deleting their own account loses the session cookie, as with
    DELETE /users/me.
    """
    _load_user(request, user_id)
    _delete_account(request, user_id)
    if user_id == caller.identity_id:
        clear_session_cookie(response, secure=request.app.state.settings.secure_cookies)
    return MessageResponse(message="Deleted successfully.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_user(request: Request, user_id: str) -> User:
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


def _apply_update(store: UserStore, user: User, body: UserUpdate, role=None) -> tuple[User, bool]:
    """Write the non-empty fields of `body` onto `user`.

    Returns (stored user, credentials_changed). Email uniqueness is checked
    before the write; the store's UNIQUE constraint covers the race.
    """
    changes: dict = {}
    credentials_changed = False
    if body.name is not None and body.name != user.name:
        changes["name"] = body.name
    if body.email is not None and body.email != user.email:
        existing = store.get_by_email(body.email)
        if existing is not None and existing.id != user.id:
            raise DuplicateEmail()
        changes["email"] = body.email
        credentials_changed = True
    if body.password is not None:
        changes["hashed_password"] = hash_password(body.password)
        credentials_changed = True
    if role is not None and role != user.role:
        changes["role"] = role

    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update.")

    for key, value in changes.items():
        setattr(user, key, value)
    return store.save(user), credentials_changed


def _delete_account(request: Request, user_id: str) -> None:
    products: ProductStore = request.app.state.product_store
    products.delete_by_owner(user_id)
    request.app.state.user_store.delete_by_id(user_id)
