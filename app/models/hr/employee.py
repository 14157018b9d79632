from sqlalchemy import Column, String, Boolean, JSON
from app.models.base import BaseModel

class Employee(BaseModel):
    __tablename__ = 'employees'
    
    name = Column(String(150), nullable=False)
    email = Column(String(150))
    phone = Column(String(20), nullable=False)
    department = Column(String(100), index=True)  # Department slug
    department_role = Column(String(100), index=True)
    metadata_ = Column("metadata", JSON)
    is_active = Column(Boolean, default=True)

    @property
    def contact(self) -> dict:
        return {"email": self.email, "phone": self.phone}
