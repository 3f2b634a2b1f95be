from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Stored datetimes are naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ProjectCreate(CamelModel):
    name: str
    description: Optional[str] = Field(default="", max_length=2000)
    location: Optional[str] = Field(default="", max_length=500)
    client_name: Optional[str] = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    project_manager_id: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _naive_utc(cls, v: Any) -> Any:
        return _to_naive_utc(v)


class ProjectUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    location: Optional[str] = Field(default=None, max_length=500)
    client_name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    project_manager_id: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _naive_utc(cls, v: Any) -> Any:
        return _to_naive_utc(v)


class EmployeeAssign(CamelModel):
    user_id: str


class InspectorCreate(CamelModel):
    name: str
    company: Optional[str] = ""
    phone: Optional[str] = ""
    email: Optional[EmailStr] = None
    specialization: Optional[str] = ""
    certifications: List[str] = []
    is_active: bool = True


class InspectorUpdate(CamelModel):
    name: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    specialization: Optional[str] = None
    certifications: Optional[List[str]] = None
    is_active: Optional[bool] = None
