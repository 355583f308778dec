"""
Pydantic schemas for permissions, scoped grants and permission checks.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.permissions.types import Decision


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Unique permission name, e.g. 'users.read'")
    is_global: bool = Field(False, description="Descriptive hint only")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""
    
    @field_validator('name')
    @classmethod
    def name_format(cls, v: str) -> str:
        """Validate permission name format."""
        if not v.replace('_', '').replace('.', '').replace(':', '').replace('-', '').isalnum():
            raise ValueError('Permission name must contain only alphanumeric characters, underscores, dashes, dots, and colons')
        return v


class PermissionUpdate(PermissionCreate):
    """Schema for replacing a permission."""
    pass


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: int
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Scoped Grant Schemas
# ============================================================================

class ScopedPermissionBase(BaseModel):
    """
    Attach a permission to a role.
    
    Leave department_id or employee_id empty to grant regardless of that scope.
    """
    role_id: int = Field(..., gt=0)
    permission_id: int = Field(..., gt=0)
    department_id: Optional[int] = Field(None, gt=0, description="Only applies to checks in this department")
    employee_id: Optional[int] = Field(None, gt=0, description="Only applies to checks acting on this employee")


class ScopedPermissionCreate(ScopedPermissionBase):
    pass


class ScopedPermissionUpdate(ScopedPermissionBase):
    pass


class ScopedPermissionResponse(ScopedPermissionBase):
    id: int
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking a single permission."""
    employee_id: int = Field(..., gt=0, description="Employee whose access is checked")
    permission: str = Field(..., min_length=1, max_length=100, description="Permission name")
    department_id: Optional[int] = Field(None, gt=0, description="Department scope of the request")
    target_employee_id: Optional[int] = Field(None, gt=0, description="Employee being acted on")


class PermissionCheckResponse(BaseModel):
    """Schema for a permission check result."""
    employee_id: int
    permission: str
    department_id: Optional[int] = None
    target_employee_id: Optional[int] = None
    decision: Optional[Decision] = None
    allowed: bool = False
    error: Optional[str] = None


class PermissionCheckItem(BaseModel):
    employee_id: int
    permission: str
    department_id: Optional[int] = None
    target_employee_id: Optional[int] = None


class BulkPermissionCheckRequest(BaseModel):
    """
    Schema for checking many permissions at once.
    
    Items are validated one by one during evaluation, so an invalid item
    is reported in its own result instead of rejecting the batch.
    """
    checks: List[PermissionCheckItem] = Field(..., min_length=1, max_length=1000)


class BulkPermissionCheckResponse(BaseModel):
    results: List[PermissionCheckResponse]
    allowed_count: int
    denied_count: int
    failed_count: int


class CacheStatsResponse(BaseModel):
    namespace: str
    enabled: bool
    ttl_seconds: int
    cached_decisions: Optional[int] = None
    metrics: Dict[str, int]


class CacheClearResponse(BaseModel):
    deleted_keys: int
