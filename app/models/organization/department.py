from sqlalchemy import Column, String, Boolean, Text
from app.models.base import BaseModel

class Department(BaseModel):
    __tablename__ = 'departments'
    
    name = Column(String(150), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    logo = Column(String(255))
    metadata_ = Column("metadata", Text)
    is_active = Column(Boolean, default=True)
