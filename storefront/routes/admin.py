# storefront/routes/admin.py
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from typing import Any, List, Optional, Literal
from datetime import datetime
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.models.log import Log
from storefront.models.users import User
from storefront.schemas.user import AdminPermissions, Identity, RoleUpdate, UserResponse
from storefront.utils.audit import write_log
from storefront.utils.roles import ADMIN_ROLES, SUPER_ADMIN, permissions_for
from storefront.utils.tokenJWT import role_required

router = APIRouter(prefix="/admin", tags=["Admin"])

# Schema for paginated user list response
class PaginatedUsersResponse(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    page_size: int

class LogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[str] = None
    device_id: Optional[str] = None
    action: str
    resource: str
    status: str
    ip: Optional[str] = None
    ts: datetime
    meta: Optional[Any] = None

class LogPage(BaseModel):
    items: List[LogResponse]
    total: int
    page: int
    page_size: int


# Permissions of the caller inside the admin shell
@router.get("/me", response_model=AdminPermissions)
def admin_me(identity: Identity = Depends(role_required(*ADMIN_ROLES))):
    return permissions_for(identity.role)


# Retrieve a list of users with filtering, sorting, and pagination (admins)
@router.get("/users", response_model=PaginatedUsersResponse)
def get_all_users(
    q: Optional[str] = Query(None, description="Search by e-mail"),
    role: Optional[str] = Query(None, description="Filter by role"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["email", "role", "created_at"] = "email",
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_db),
    identity: Identity = Depends(role_required(*ADMIN_ROLES)),
):
    query = db.query(User)

    # Filter by email
    if q:
        query = query.filter(User.email.ilike(f"%{q.lower()}%"))

    # Filter by role
    if role:
        query = query.filter(User.role == role.lower())

    # Apply sorting based on selected field and order
    sort_map = {
        "email": User.email,
        "role": User.role,
        "created_at": User.created_at,
    }
    col = sort_map.get(sort_by, User.email)
    query = query.order_by(col.asc() if order == "asc" else col.desc())

    # Apply pagination
    total = query.count()
    users = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "items": users,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


# Update user role (super admins only)
@router.put("/users/{user_id}/role")
def update_user_role(
    user_id: str,
    new_role: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(role_required(SUPER_ADMIN)),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    # A super admin cannot demote themselves and lock the shell
    if user.id == identity.user_id and new_role.role != SUPER_ADMIN:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")

    previous = user.role
    user.role = new_role.role
    db.commit()
    db.refresh(user)

    write_log(
        db,
        user_id=identity.user_id,
        action="ROLE_UPDATE",
        resource="users",
        status="SUCCESS",
        ip=request.client.host if request.client else None,
        meta={"target": user.id, "from": previous, "to": user.role},
    )
    return {"message": f"User {user.email} role updated to {user.role}", "id": user.id, "role": user.role}


# Browse the audit log (admins)
@router.get("/logs", response_model=LogPage)
def get_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None, description="Filter by action"),
    user_id: Optional[str] = Query(None, description="Filter by user id"),
    resource: Optional[str] = Query(None, description="Filter by resource"),
    status: Optional[str] = Query(None, description="Filter by status (SUCCESS/FAIL)"),
    db: Session = Depends(get_db),
    identity: Identity = Depends(role_required(*ADMIN_ROLES)),
):
    query = db.query(Log)

    if action:
        query = query.filter(Log.action.ilike(f"%{action}%"))
    if user_id is not None:
        query = query.filter(Log.user_id == user_id)
    if resource:
        query = query.filter(Log.resource.ilike(f"%{resource}%"))
    if status:
        query = query.filter(Log.status == status)

    # Newest first
    query = query.order_by(Log.ts.desc(), Log.id.desc())

    total = query.count()
    logs = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "items": logs,
        "total": total,
        "page": page,
        "page_size": page_size,
    }
