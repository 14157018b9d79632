import json
from sqlalchemy import Column, Integer, String, Float, JSON, Enum as SQLEnum, UniqueConstraint, Index
from app.models.base import BaseModel
from app.models.shared.enums import EntryStatus


def label_signature(metric_labels) -> str:
    """Canonical form of an entry's metric labels, used for the uniqueness constraint"""
    pairs = [[item.get("label"), item.get("value")] for item in metric_labels or []]
    return json.dumps(pairs, ensure_ascii=False, separators=(",", ":"))


class KpiEntry(BaseModel):
    __tablename__ = 'kpi_entries'
    # template_id is intentionally not part of the unique key: entries with
    # different label sets may coexist for one employee and month.
    __table_args__ = (
        UniqueConstraint('employee_id', 'month', 'year', 'label_signature', name='uq_kpi_entry_employee_period_labels'),
        Index('ix_kpi_entries_employee_template', 'employee_id', 'template_id'),
        Index('ix_kpi_entries_period', 'month', 'year'),
    )
    
    # Plain references, integrity is checked by the application
    employee_id = Column(Integer, nullable=False)
    template_id = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    metric_labels = Column(JSON, nullable=False, default=list)
    label_signature = Column(String(1000), nullable=False, default="[]")
    # [{key, value, score, sub_metric_values: [{key, value}]}]
    metric_values = Column(JSON, nullable=False, default=list)
    total_score = Column(Float, nullable=False, default=0)
    status = Column(SQLEnum(EntryStatus, values_callable=lambda e: [m.value for m in e]), nullable=False, default=EntryStatus.INITIATED, index=True)
    data_source = Column(String(50))
