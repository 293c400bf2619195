# app/routes/admin.py
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.auth.principal import Principal
from app.core.database import get_db
from app.dependencies.admin import require_admin
from app.services.users import get_user_by_email

router = APIRouter(prefix="/admin", tags=["admin"])


class AdminIdentityOut(BaseModel):
    id: str
    email: str
    role: str
    first_name: str | None = None
    last_name: str | None = None
    is_verified: bool
    verified_at: datetime | None = None
    has_pending_otp: bool
    has_pending_reset: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.get("/identities", response_model=AdminIdentityOut)
def lookup_identity(
    email: str = Query(..., min_length=3, max_length=255),
    db: Session = Depends(get_db),
    _admin: Principal = Depends(require_admin),
):
    user = get_user_by_email(db, email)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Identity not found")
    return user
