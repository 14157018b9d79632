from sqlalchemy import Column, Integer, String, Text, JSON, Enum as SQLEnum, UniqueConstraint
from app.models.base import BaseModel
from app.models.shared.enums import TemplateFrequency

class KpiTemplate(BaseModel):
    __tablename__ = 'kpi_templates'
    
    name = Column(String(200), nullable=False)
    kpi_name = Column(String(200))
    description = Column(Text, nullable=False)
    role = Column(String(100), nullable=False, index=True)
    frequency = Column(SQLEnum(TemplateFrequency, values_callable=lambda e: [m.value for m in e]), nullable=False)
    department_slug = Column(String(100), nullable=False, index=True)
    # [{name, description, max_marks, unit, is_dynamic, sub_metrics: [{name, key}]}]
    metrics = Column(JSON, nullable=False, default=list)

    @property
    def total_max_marks(self) -> float:
        return sum(metric.get("max_marks", 0) for metric in self.metrics or [])


class KpiTemplateVersion(BaseModel):
    __tablename__ = 'kpi_template_versions'
    __table_args__ = (
        UniqueConstraint('template_id', 'version', name='uq_kpi_template_version'),
    )
    
    template_id = Column(Integer, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    name = Column(String(200), nullable=False)
    kpi_name = Column(String(200))
    description = Column(Text, nullable=False)
    role = Column(String(100), nullable=False)
    frequency = Column(SQLEnum(TemplateFrequency, values_callable=lambda e: [m.value for m in e]), nullable=False)
    department_slug = Column(String(100), nullable=False)
    metrics = Column(JSON, nullable=False, default=list)
