"""Authentication schemas."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Same shape check the registration form performs: one "@", a local part,
# and a dotted domain. Emails are stored exactly as typed.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserRegister(BaseModel):
    """User registration request."""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=72)
    confirm_password: str = Field(..., max_length=72)

    @model_validator(mode="after")
    def check_passwords_match(self) -> "UserRegister":
        """Reject a confirmation that differs from the password."""
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class UserLogin(BaseModel):
    """User login request."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)


class UserResponse(BaseModel):
    """User information response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class AuthResponse(BaseModel):
    """Authentication response with token and user info."""

    access_token: str
    token_type: str = "bearer"  # noqa: S105
    user: UserResponse
