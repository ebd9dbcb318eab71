from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum

from .base import CamelModel

MIN_PASSWORD_LENGTH = 6

class ProfileVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"

def _clean_skills(skills: Optional[List[str]]) -> Optional[List[str]]:
    if skills is None:
        return None
    return [s.strip() for s in skills if s and s.strip()]

class UserCreate(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    name: str = Field(..., max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

class UserUpdate(CamelModel):
    name: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    skills_offered: Optional[List[str]] = None
    skills_wanted: Optional[List[str]] = None
    availability: Optional[str] = Field(None, max_length=100)
    profile_visibility: Optional[ProfileVisibility] = None
    profile_photo: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v

    @field_validator("location", "availability", "profile_photo")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @field_validator("skills_offered", "skills_wanted")
    @classmethod
    def clean_skills(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_skills(v)

class UserSummary(CamelModel):
    id: str
    name: str
    email: str
    profile_photo: Optional[str] = None

class UserResponse(CamelModel):
    id: str
    email: str
    name: str
    location: Optional[str] = None
    profile_photo: Optional[str] = None
    skills_offered: List[str] = []
    skills_wanted: List[str] = []
    availability: str = "weekends"
    profile_visibility: ProfileVisibility = ProfileVisibility.PUBLIC
    rating: float = 0
    ratings_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class RegisterResponse(CamelModel):
    id: str
    email: str
    name: str

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

class UserListResponse(CamelModel):
    users: List[UserResponse]
    pagination: Pagination

class Token(BaseModel):
    # OAuth2 clients expect these exact snake_case keys
    access_token: str
    token_type: str = "bearer"
