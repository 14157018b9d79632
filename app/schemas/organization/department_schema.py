import re
from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:[-_][a-z0-9]+)*$")

class DepartmentBase(BaseModel):
    name: str
    slug: str
    logo: Optional[str] = None
    metadata: Optional[str] = None

class DepartmentCreate(DepartmentBase):
    @validator('name')
    def validate_name(cls, v):
        if not v or len(v.strip()) < 2:
            raise ValueError('Department name must be at least 2 characters')
        return v.strip()

    @validator('slug')
    def validate_slug(cls, v):
        v = (v or "").strip().lower()
        if not SLUG_PATTERN.match(v):
            raise ValueError('Slug may only contain lowercase letters, digits, "-" and "_"')
        return v

class DepartmentUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    logo: Optional[str] = None
    metadata: Optional[str] = None
    is_active: Optional[bool] = None

    @validator('slug')
    def validate_slug(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        if not SLUG_PATTERN.match(v):
            raise ValueError('Slug may only contain lowercase letters, digits, "-" and "_"')
        return v

class DepartmentResponse(BaseModel):
    id: int
    name: str
    slug: str
    logo: Optional[str] = None
    metadata: Optional[str] = Field(None, validation_alias="metadata_")
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime]
    
    class Config:
        from_attributes = True
