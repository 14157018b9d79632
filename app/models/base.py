from sqlalchemy import Boolean, Column, DateTime, Integer
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class BaseModel(Base):
    """Surrogate id, audit columns and the soft delete flag shared by every table"""
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    # Entries are removed for real; everything else is only flagged
    is_deleted = Column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id}>"
