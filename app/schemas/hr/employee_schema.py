from pydantic import BaseModel, ConfigDict, Field, validator, EmailStr
from typing import Dict, Optional
from datetime import datetime

class EmployeeContact(BaseModel):
    email: Optional[EmailStr] = None
    phone: str

class EmployeeBase(BaseModel):
    name: str
    contact: EmployeeContact
    department: str
    department_role: str
    metadata: Optional[Dict[str, str]] = None

class EmployeeCreate(EmployeeBase):
    @validator('name')
    def validate_name(cls, v):
        if not v or len(v.strip()) < 2:
            raise ValueError('Name must be at least 2 characters')
        return v.strip()

class EmployeeUpdate(BaseModel):
    name: Optional[str] = None
    contact: Optional[EmployeeContact] = None
    department: Optional[str] = None
    department_role: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    is_active: Optional[bool] = None

class EmployeeResponse(BaseModel):
    id: int
    name: str
    contact: EmployeeContact
    department: Optional[str] = None
    department_role: Optional[str] = None
    metadata: Optional[Dict[str, str]] = Field(None, validation_alias="metadata_")
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
