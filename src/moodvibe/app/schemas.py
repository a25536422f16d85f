from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from ..agents.models import Song

MAX_MOOD_LENGTH = 500


class MoodRequest(BaseModel):
    # Length is checked on the raw text; trimming happens afterwards.
    mood: str = Field(..., min_length=1, max_length=MAX_MOOD_LENGTH)

    @field_validator("mood")
    def mood_must_not_be_blank(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("Mood cannot be empty")
        return v


class AuthUser(BaseModel):
    id: str
    email: str
    name: str
    avatar: Optional[str] = None
    provider: str


class RecommendationsResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    detected_mood: str
    songs: list[Song]
    user: Optional[AuthUser] = None


class RegisterRequest(BaseModel):
    email: EmailStr
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2)]
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    message: str
    user: AuthUser
    token: str


class MeResponse(BaseModel):
    user: AuthUser


class MessageResponse(BaseModel):
    message: str
