"""
Pydantic schemas for roles and the role hierarchy.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Role name (e.g. 'Manager')")
    department_id: int = Field(..., gt=0, description="Department owning the role")
    parent_role_id: Optional[int] = Field(None, gt=0, description="Role this one inherits grants from")
    is_global: bool = Field(False, description="Descriptive hint only; never used to resolve checks")
    
    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        """Reject names made only of whitespace."""
        if not v.strip():
            raise ValueError('Role name must not be blank')
        return v.strip()


class RoleCreate(RoleBase):
    """Schema for creating a role."""
    pass


class RoleUpdate(RoleBase):
    """Schema for replacing a role. Changing parent_role_id is checked for cycles."""
    pass


class RoleResponse(RoleBase):
    """Schema for role responses."""
    id: int
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class RoleMembersResponse(BaseModel):
    """Employees assigned a role directly."""
    role_id: int
    employees: list[int]


class RoleNodeResponse(BaseModel):
    """One role in a hierarchy listing."""
    id: int
    name: str
    department_id: int
    parent_id: Optional[int] = None
    is_global: bool = False
    
    model_config = ConfigDict(from_attributes=True)
