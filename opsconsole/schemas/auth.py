from pydantic import BaseModel, Field
from typing import List, Optional

class LoginRequest(BaseModel):
    email: str
    password: str

class AuthenticatedUser(BaseModel):
    id: str
    username: str
    email: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    roles: List[str] = Field(default_factory=list)

    def is_admin(self) -> bool:
        return any(r.lower() == "admin" for r in self.roles)

class SessionBlob(BaseModel):
    """Session record as persisted: `timestamp` and `expiresIn` are milliseconds."""
    user: AuthenticatedUser
    timestamp: int
    expiresIn: int
    permissions: List[str] = Field(default_factory=list)

    def expired(self, now_ms: int) -> bool:
        return self.timestamp + self.expiresIn < now_ms

class LoginResponse(BaseModel):
    token: str
    session: SessionBlob
    redirect_url: str = "/dashboard"

class RegistrationRequest(BaseModel):
    first_name: str = ""
    last_name: str = ""
    username: str = ""
    email: str = ""
    phone: str = ""
    password: str = ""
    confirmPassword: str = ""

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None

class PasswordChange(BaseModel):
    current_password: str = ""
    new_password: str = ""
    confirm_password: str = ""
