import uuid
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi_users import schemas
from pydantic import AfterValidator, ConfigDict


def _check_timezone(v: str) -> str:
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"unknown timezone {v!r}")
    return v


TimezoneName = Annotated[str, AfterValidator(_check_timezone)]


class UserRead(schemas.BaseUser[uuid.UUID]):
    full_name: str
    role: Literal["learner", "mentor", "admin"]
    timezone: str

    model_config = ConfigDict(from_attributes=True)


class UserCreate(schemas.BaseUserCreate):
    full_name: str
    role: Literal["learner", "mentor"] = "learner"
    timezone: TimezoneName = "UTC"


class UserUpdate(schemas.BaseUserUpdate):
    full_name: str | None = None
    timezone: TimezoneName | None = None
