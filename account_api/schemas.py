"""Request/response models for the HTTP surface."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mobile: str
    email: Optional[str] = None
    name: Optional[str] = None
    mobile_verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mobile: Optional[str] = Field(default=None, min_length=1, max_length=32)
    email: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)


class UserReplace(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mobile: str = Field(min_length=1, max_length=32)
    email: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)


class CountOut(BaseModel):
    count: int


class TokenOut(BaseModel):
    token: str


class ForgetPasswordOut(BaseModel):
    result: bool
    token: Optional[str] = None


class ResultOut(BaseModel):
    result: bool


class OTPRefreshOut(BaseModel):
    refresh: bool
    sent: bool


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    device: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None


class TrackOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None


class JournalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    title: str
    content: Optional[str] = None
    created_at: Optional[datetime] = None


ProfileData = dict[str, Any]
