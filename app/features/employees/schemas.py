"""
Pydantic schemas for employee role assignments and employee queries.
"""
from datetime import datetime
from typing import Dict, List
from pydantic import BaseModel, Field, field_validator


class AssignRoleRequest(BaseModel):
    """Schema for assigning a role to an employee."""
    role_id: int = Field(..., gt=0)


class ReassignRoleRequest(BaseModel):
    """Schema for replacing one of an employee's roles with another."""
    new_role_id: int = Field(..., gt=0)


class EmployeeRoleResponse(BaseModel):
    """Schema for an employee role assignment."""
    employee_id: int
    role_id: int
    created_at: datetime
    updated_at: datetime
    
    model_config = {"from_attributes": True}


class BulkRoleRequest(BaseModel):
    """
    Schema for bulk assignment or revocation.
    
    Maps employee id to the role ids to add or remove, e.g.
    ``{"assignments": {"7": [1, 2], "8": [2]}}``.
    """
    assignments: Dict[int, List[int]] = Field(..., min_length=1)
    
    @field_validator('assignments')
    @classmethod
    def positive_ids(cls, v: Dict[int, List[int]]) -> Dict[int, List[int]]:
        for employee_id, role_ids in v.items():
            if employee_id <= 0 or any(role_id <= 0 for role_id in role_ids):
                raise ValueError('Employee and role ids must be positive')
        return v


class BulkRoleResponse(BaseModel):
    """Response for bulk assignment operations."""
    message: str
    affected_count: int
    employee_count: int


class SubordinatesResponse(BaseModel):
    employee_id: int
    subordinates: List[int]


class EffectivePermissionsRequest(BaseModel):
    employee_ids: List[int] = Field(..., min_length=1, max_length=1000)


class EffectivePermissionsResponse(BaseModel):
    permissions: Dict[int, List[str]]
