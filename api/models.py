"""
API request and response models for SecureAPI REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Field-level validation (lengths, email shape, positive price) happens here;
failures are rendered as 400 with per-field detail by api/main.py.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.networks import validate_email

from auth.models import Role, User
from catalog.models import Product

# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


def _checked_email(value: str) -> str:
    """Reject malformed addresses but return the address exactly as submitted.

    The stored email is the login key and login matches it byte for byte, so
    the value is never rewritten (no domain lowercasing, no trimming).
    """
    validate_email(value)
    return value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    No format validation on email here: a malformed address simply fails
    authentication like any other unknown email. Neither field is altered.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Only name is trimmed. Email and password are stored exactly as sent, so
    the same body works unchanged against /auth/login.
    """

    name: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=255)
    password: str = Field(min_length=8, max_length=72)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def email_format(cls, value: str) -> str:
        return _checked_email(value)


# ---------------------------------------------------------------------------
# Users -- request models
# ---------------------------------------------------------------------------


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/me. Omitted or blank fields are left unchanged."""

    name: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=72)

    @field_validator("name", "email", "password", mode="before")
    @classmethod
    def blank_as_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("name")
    @classmethod
    def name_length(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value.strip()) < 3:
            raise ValueError("Name must be between 3 and 50 characters")
        return value.strip() if value is not None else None

    @field_validator("email")
    @classmethod
    def email_format(cls, value: Optional[str]) -> Optional[str]:
        return _checked_email(value) if value is not None else None

    @field_validator("password")
    @classmethod
    def password_length(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) < 6:
            raise ValueError("Password must be at least 6 characters")
        return value


class AdminUserUpdate(UserUpdate):
    """Request body for PUT /api/v1/users/{id}. Admins may also change the role."""

    role: Optional[Role] = None


# ---------------------------------------------------------------------------
# Products -- request models
# ---------------------------------------------------------------------------


class ProductCreate(BaseModel):
    """Request body for POST /api/v1/products. The owner is always the caller."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: float = Field(gt=0)


class ProductUpdate(BaseModel):
    """Request body for PUT /api/v1/products/{id}. Blank strings are ignored."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: Optional[float] = Field(default=None, gt=0)

    def changes(self) -> dict:
        """Return only the fields that should be written."""
        updates: dict = {}
        if self.name:
            updates["name"] = self.name
        if self.description:
            updates["description"] = self.description
        if self.price is not None:
            updates["price"] = self.price
        return updates


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public fields of an identity. The password hash is never serialized."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login. The token itself travels only in the cookie."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class UserUpdateResponse(BaseModel):
    """Response for PUT /api/v1/users/me.

    session_refreshed is False when the update was saved but a new session
    cookie could not be issued.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse
    session_refreshed: bool


class ProductResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str]
    price: float
    owner_id: str
    owner_name: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product, owner_name: Optional[str] = None) -> "ProductResponse":
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            price=product.price,
            owner_id=product.owner_id,
            owner_name=owner_name,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorResponse(BaseModel):
    """Error body returned on every 4xx/5xx JSON response."""

    model_config = ConfigDict(frozen=True)

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    message: str
    details: Optional[str] = None
    field_errors: Optional[dict[str, str]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
