"""
Authentication models for credentials and login sessions
"""
from sqlmodel import Field, SQLModel
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel


class LoginCredentials(SQLModel):
    """Login request body"""

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class SessionUser(SQLModel):
    """A live login session held in the session store"""

    session_id: str
    id: str
    username: str
    expires_at: int  # Epoch milliseconds


class UserPublic(SQLModel):
    """Public view of the logged in user"""

    id: str
    username: str
    expires_at: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserStatus(UserPublic):
    """Current user plus the time left on the session"""

    remaining_ms: int
