from pydantic import BaseModel, ConfigDict, Field, validator
from typing import List, Optional
from datetime import datetime
from app.models.shared.enums import TemplateFrequency


class SubMetric(BaseModel):
    name: str
    key: str

    @validator('name', 'key')
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Sub-metric name and key are required')
        return v.strip()


class Metric(BaseModel):
    name: str
    description: str = ""
    max_marks: int = Field(..., ge=0)
    unit: str = "%"
    is_dynamic: bool = False
    sub_metrics: List[SubMetric] = []

    @validator('name')
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError('Metric name is required')
        return v.strip()

    @validator('unit')
    def validate_unit(cls, v):
        if v != "%":
            raise ValueError('Only "%" is supported as metric unit')
        return v


def _check_metrics(metrics: List[Metric]) -> List[Metric]:
    if len(metrics) < 2:
        raise ValueError('Template must have at least 2 metrics')
    names = [m.name for m in metrics]
    if len(names) != len(set(names)):
        raise ValueError('Metric names must be unique within a template')
    return metrics


class TemplateBase(BaseModel):
    name: str
    description: str
    kpi_name: Optional[str] = None
    role: str
    frequency: TemplateFrequency
    department_slug: str
    metrics: List[Metric]


class TemplateCreate(TemplateBase):
    @validator('name', 'role', 'department_slug')
    def validate_required_text(cls, v):
        if not v or not v.strip():
            raise ValueError('Field cannot be blank')
        return v.strip()

    @validator('metrics')
    def validate_metrics(cls, v):
        return _check_metrics(v)


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    kpi_name: Optional[str] = None
    role: Optional[str] = None
    frequency: Optional[TemplateFrequency] = None
    department_slug: Optional[str] = None
    metrics: Optional[List[Metric]] = None

    @validator('metrics')
    def validate_metrics(cls, v):
        if v is None:
            return v
        return _check_metrics(v)


class TemplateResponse(TemplateBase):
    id: int
    total_max_marks: float
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TemplateVersionCreate(TemplateCreate):
    template_id: int
    version: int = Field(..., ge=1)


class TemplateVersionResponse(TemplateBase):
    id: int
    template_id: int
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FormSubMetric(BaseModel):
    name: str
    key: str


class FormField(BaseModel):
    name: str
    key: str
    description: str = ""
    max_marks: int
    unit: str = "%"
    is_dynamic: bool = False
    sub_metrics: List[FormSubMetric] = []


class TemplateFormStructure(BaseModel):
    template_id: int
    name: str
    kpi_name: Optional[str] = None
    role: str
    department_slug: str
    frequency: TemplateFrequency
    total_max_marks: float
    fields: List[FormField]
