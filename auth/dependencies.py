"""
auth/dependencies.py -- Caller resolution and the authorization dependency.

The session token is read from the "jwt" cookie only. There is no
Authorization header or API key path.

try_get_current_caller() is the soft variant (returns None on failure). The
request-time filter in api/main.py calls it for every request, so by the time
a route runs request.state.caller is already set; the dependencies below
reuse that value instead of verifying the token a second time.

authorize(endpoint_class, owner_of) is the single authorization interceptor.
Every route declares its class through it:

    @router.put("/products/{product_id}")
    def update(caller = Depends(authorize(EndpointClass.OWNER_OR_ADMIN, owner_of=product_owner))): ...

owner_of(request) must read the resource's owner id fresh from the store.

Layer rule: no imports from api/ or catalog/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Request

from auth.errors import AuthError, Forbidden, Unauthenticated
from auth.models import CallerContext
from auth.policy import DenyReason, EndpointClass, decide
from auth.service import resolve_caller
from auth.tokens import SESSION_COOKIE

logger = logging.getLogger("secureapi.auth")

_UNSET = object()


def try_get_current_caller(request: Request) -> CallerContext | None:
    """Resolve the caller from the session cookie. Never raises.

    The result (including None) is cached on request.state.caller.
    """
    cached = getattr(request.state, "caller", _UNSET)
    if cached is not _UNSET:
        return cached

    caller: CallerContext | None = None
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        try:
            caller = resolve_caller(token, request.app.state.token_codec, request.app.state.user_store)
        except AuthError as exc:
            # Invalid/expired token or deleted identity: continue unauthenticated
            logger.debug("Caller resolution failed: %s", exc.message)
    request.state.caller = caller
    return caller


def get_current_caller(request: Request) -> CallerContext:
    """Require authentication. Raises Unauthenticated (401) if no caller resolved."""
    caller = try_get_current_caller(request)
    if caller is None:
        raise Unauthenticated()
    return caller


def authorize(
    endpoint_class: EndpointClass,
    owner_of: Callable[[Request], str | None] | None = None,
) -> Callable[[Request], CallerContext | None]:
    """Build the dependency that enforces `endpoint_class` on a route.

    Returns the CallerContext (or None on PUBLIC routes with no caller).
    Raises Unauthenticated (401) or Forbidden (403) on deny. A deny happens
    before the handler runs, so it has no side effects.
    """
    if endpoint_class == EndpointClass.OWNER_OR_ADMIN and owner_of is None:
        raise ValueError("OWNER_OR_ADMIN routes need an owner_of lookup")

    def dependency(request: Request) -> CallerContext | None:
        caller = try_get_current_caller(request)
        owner_id = None
        if owner_of is not None and caller is not None:
            owner_id = owner_of(request)
        decision = decide(caller, endpoint_class, owner_id)
        if decision.allowed:
            return caller
        if decision.reason == DenyReason.UNAUTHENTICATED:
            raise Unauthenticated()
        raise Forbidden()

    return dependency
