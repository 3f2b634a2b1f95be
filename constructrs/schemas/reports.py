from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


ReportStatus = Literal["draft", "submitted", "pending", "approved", "rejected", "completed", "reviewed"]
CellValue = Optional[Union[int, float, str]]

# Optional keys older clients send at the top level of a report; folded into extraFields
LEGACY_EXTRA_KEYS = (
    "photos", "attachments", "tags", "priority", "category",
    "location", "duration", "equipmentUsed", "materials",
    "safetyNotes", "quality", "progress", "issues", "delays",
    "nextSteps", "signature", "approved", "reviewedBy",
    "completionPercentage", "weatherAffected", "laborHours",
    "costImpact", "scheduleImpact", "rework", "defects",
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LaborRow(CamelModel):
    position: Optional[str] = None
    quantity: CellValue = None
    hours: CellValue = None


class EquipmentRow(CamelModel):
    equipment: Optional[str] = None
    quantity: CellValue = None
    hours: CellValue = None


class WeatherSnapshot(CamelModel):
    temperature: Optional[float] = None  # °F
    description: Optional[str] = None
    humidity: Optional[float] = None  # %
    wind_speed: Optional[float] = None  # mph
    wind_direction: Optional[str] = None
    pressure: Optional[float] = None  # inHg
    location: Optional[str] = None
    captured_at: Optional[str] = None


class ReportFields(CamelModel):
    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = None
    author: Optional[str] = None
    jobname: Optional[str] = None
    jobid: Optional[str] = None
    project_id: Optional[str] = None
    inspector_id: Optional[str] = None
    inspection_type: Optional[str] = None
    findings: Optional[str] = None
    recommendations: Optional[str] = None
    status: Optional[ReportStatus] = None
    labor_breakdown_title: Optional[str] = None
    labor_breakdown: Optional[List[LaborRow]] = None
    equipment_breakdown_title: Optional[str] = None
    equipment_breakdown: Optional[List[EquipmentRow]] = None
    weather: Optional[WeatherSnapshot] = None
    extra_fields: Optional[Dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        legacy = {k: data[k] for k in LEGACY_EXTRA_KEYS if k in data}
        if not legacy:
            return data
        data = {k: v for k, v in data.items() if k not in legacy}
        explicit = data.get("extraFields", data.get("extra_fields")) or {}
        data["extraFields"] = {**legacy, **explicit}
        data.pop("extra_fields", None)
        return data

    @field_validator("project_id", "inspector_id", mode="before")
    @classmethod
    def _blank_ref_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_columns(self, exclude_unset: bool = False) -> Dict[str, Any]:
        """Column-name dict for the Report model."""
        values = self.model_dump(exclude_unset=exclude_unset)
        if self.weather is not None:
            values["weather"] = self.weather.model_dump(by_alias=True, exclude_none=True)
        return values


class ReportCreate(ReportFields):
    pass


class ReportUpdate(ReportFields):
    """Partial update; fields left out keep their stored values."""


class ReportIdsRequest(CamelModel):
    report_ids: List[str] = Field(min_length=1)
