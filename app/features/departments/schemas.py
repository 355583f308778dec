"""
Pydantic schemas for department requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field


class DepartmentBase(BaseModel):
    """Base department schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Unique department name")


class DepartmentCreate(DepartmentBase):
    """Schema for creating a new department."""
    pass


class DepartmentUpdate(DepartmentBase):
    """Schema for renaming a department."""
    pass


class DepartmentResponse(DepartmentBase):
    """Schema for department responses."""
    id: int
    created_at: datetime
    updated_at: datetime
    
    model_config = {"from_attributes": True}
