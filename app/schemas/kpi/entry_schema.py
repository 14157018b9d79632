from pydantic import BaseModel, ConfigDict, Field, validator
from typing import List, Optional
from datetime import datetime
from app.models.shared.enums import EntryStatus
from app.services.kpi.scoring import COMPLETED_KEY, TOTAL_KEY


class MetricLabel(BaseModel):
    label: str
    value: Optional[str] = None

    @validator('label')
    def validate_label(cls, v):
        if not v or not v.strip():
            raise ValueError('Metric label is required')
        return v.strip()


class SubMetricValue(BaseModel):
    key: str
    value: float = Field(0, ge=0)


class MetricValue(BaseModel):
    key: str
    value: Optional[float] = Field(None, ge=0, le=100)
    score: Optional[float] = Field(None, ge=0)
    sub_metric_values: List[SubMetricValue] = []

    @validator('sub_metric_values')
    def validate_sub_metric_values(cls, v):
        if v:
            keys = {item.key for item in v}
            if COMPLETED_KEY not in keys or TOTAL_KEY not in keys:
                raise ValueError(
                    f'Sub-metric values must include both "{COMPLETED_KEY}" and "{TOTAL_KEY}"'
                )
        return v


class EntryBase(BaseModel):
    employee_id: int
    template_id: int
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000)
    metric_labels: List[MetricLabel] = Field(..., min_length=1)
    metric_values: List[MetricValue] = Field(..., min_length=1)
    data_source: Optional[str] = None


class EntryCreate(EntryBase):
    status: EntryStatus = EntryStatus.INITIATED


class EntryUpdate(BaseModel):
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2000)
    metric_labels: Optional[List[MetricLabel]] = None
    metric_values: Optional[List[MetricValue]] = None
    status: Optional[EntryStatus] = None
    data_source: Optional[str] = None

    @validator('metric_labels', 'metric_values')
    def validate_not_empty(cls, v):
        if v is not None and len(v) == 0:
            raise ValueError('At least one item is required')
        return v


class EntryStatusUpdate(BaseModel):
    status: EntryStatus


class EntryGetOrCreate(BaseModel):
    employee_id: int
    template_id: int
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000)


class EntryBulkGenerate(BaseModel):
    department: str
    role: str
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2000)


class SubMetricValueOut(BaseModel):
    key: str
    value: float = 0


class MetricValueOut(BaseModel):
    key: str
    value: Optional[float] = None
    score: Optional[float] = None
    sub_metric_values: List[SubMetricValueOut] = []


class EntryResponse(BaseModel):
    id: int
    employee_id: int
    template_id: int
    month: int
    year: int
    metric_labels: List[MetricLabel]
    metric_values: List[MetricValueOut]
    total_score: float
    status: EntryStatus
    data_source: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EntryExistsResponse(BaseModel):
    exists: bool
    entry_id: Optional[int] = None


class EntryGetOrCreateResponse(BaseModel):
    created: bool
    entry: EntryResponse


class AvailablePeriod(BaseModel):
    month: int
    year: int
    count: int


class EntrySearch(BaseModel):
    employee_id: Optional[int] = None
    template_id: Optional[int] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2000)
    metric_labels: List[MetricLabel] = []


class NotificationRequest(BaseModel):
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2000)
    template_id: Optional[int] = None
    dry_run: bool = False
