from datetime import date
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Literal, Optional

Role = Literal["customer", "admin", "super_admin"]

# Authenticated caller, as decoded from the backend-issued access token
class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None
    role: Role = "customer"
    email_verified: bool = False

# Output schema for profile details
class UserResponse(BaseModel):
    id: str
    email: EmailStr
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    class Config:
        from_attributes = True


Gender = Literal["male", "female", "other", "prefer_not_to_say"]

# Editable part of the caller's own profile; a PUT replaces all of it
class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    dni: Optional[str] = Field(None, max_length=20)
    bio: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = None

# Caller's profile; email_verified comes from the token, not the table
class ProfileResponse(ProfileUpdate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: EmailStr
    role: Role
    email_verified: bool = False

# Schema for administrative role updates
class RoleUpdate(BaseModel):
    role: Role

# Permissions of the caller inside the admin shell
class AdminPermissions(BaseModel):
    role: Role
    is_admin: bool
    is_super_admin: bool
    is_customer: bool
    can_manage_products: bool
    can_manage_stock: bool
    can_view_all_orders: bool
    can_manage_orders: bool
    can_manage_promo_codes: bool
    can_view_analytics: bool
    can_manage_users: bool
    can_manage_roles: bool
    can_access_system_config: bool
