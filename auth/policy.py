"""
auth/policy.py -- Authorization decisions, as one pure function.

Every route declares an EndpointClass; auth.dependencies.authorize() feeds the
resolved caller and (for owner-scoped routes) the resource's current owner id
into decide(). Nothing in here touches the request, the database, or FastAPI,
so the whole policy is unit-testable as a truth table.

Rules:
  PUBLIC          -> allow
  AUTHENTICATED   -> allow iff a caller was resolved
  ADMIN_ONLY      -> allow iff caller.role is ADMIN
  OWNER_OR_ADMIN  -> allow iff caller.role is ADMIN or caller owns the resource

A missing caller is always UNAUTHENTICATED (401) on non-public classes. A
resolved caller that fails the rule is FORBIDDEN (403). For OWNER_OR_ADMIN a
resource that does not exist (owner id None) is denied to non-admins the same
way a non-owned one is, so a 403 does not reveal whether the id exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.models import CallerContext


class EndpointClass(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ADMIN_ONLY = "admin_only"
    OWNER_OR_ADMIN = "owner_or_admin"


class DenyReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DenyReason | None = None


ALLOW = Decision(allowed=True)


def deny(reason: DenyReason) -> Decision:
    return Decision(allowed=False, reason=reason)


def decide(
    caller: CallerContext | None,
    endpoint_class: EndpointClass,
    resource_owner_id: str | None = None,
) -> Decision:
    """Return ALLOW or a Deny decision for one request."""
    if endpoint_class == EndpointClass.PUBLIC:
        return ALLOW
    if caller is None:
        return deny(DenyReason.UNAUTHENTICATED)
    if endpoint_class == EndpointClass.AUTHENTICATED:
        return ALLOW
    if caller.is_admin:
        return ALLOW
    if endpoint_class == EndpointClass.OWNER_OR_ADMIN:
        if resource_owner_id is not None and caller.identity_id == resource_owner_id:
            return ALLOW
    return deny(DenyReason.FORBIDDEN)
