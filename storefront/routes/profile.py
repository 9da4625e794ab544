# storefront/routes/profile.py
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.models.users import User
from storefront.schemas.user import Identity, ProfileResponse, ProfileUpdate
from storefront.utils.audit import write_log
from storefront.utils.roles import normalize_role
from storefront.utils.tokenJWT import get_current_identity

router = APIRouter(prefix="/profile", tags=["Profile"])

# Profile row of the caller; created on first access when the token carries an e-mail
def _get_or_create_profile(db: Session, identity: Identity) -> User:
    user = db.query(User).filter(User.id == identity.user_id).first()
    if user:
        return user
    if not identity.email:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")

    db.add(User(id=identity.user_id, email=identity.email, role=identity.role))
    try:
        db.commit()
    except IntegrityError:
        # Created by a concurrent request, or the e-mail belongs to another profile
        db.rollback()
    user = db.query(User).filter(User.id == identity.user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="E-mail already used by another profile")
    return user

def _to_response(user: User, identity: Identity) -> ProfileResponse:
    data = {f: getattr(user, f) for f in ProfileUpdate.model_fields}
    return ProfileResponse(
        id=user.id,
        email=user.email,
        role=normalize_role(user.role),
        email_verified=identity.email_verified,
        **data,
    )

@router.get("", response_model=ProfileResponse)
def get_profile(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return _to_response(_get_or_create_profile(db, identity), identity)

# Replace the editable fields of the caller's profile
@router.put("", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    user = _get_or_create_profile(db, identity)

    for key, value in payload.model_dump().items():
        setattr(user, key, value)

    db.commit()
    db.refresh(user)

    write_log(
        db,
        user_id=identity.user_id,
        action="PROFILE_UPDATE",
        resource="profiles",
        status="SUCCESS",
        ip=request.client.host if request.client else None,
        meta={"fields": sorted(payload.model_fields_set)},
    )
    return _to_response(user, identity)
