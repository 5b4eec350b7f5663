import logging

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from ..database import get_db
from ..exceptions import AccountNotFound
from ..models.profile import Profile
from ..models.user_role import UserRole
from ..schemas.admin import (
    ModeratorResponse, ModeratorListResponse, BulkSmsRequest, BulkSmsResponse
)
from ..services.sms_service import get_sms_dispatcher
from ..utils.helpers import db_errors
from ..utils.security import CurrentSession, require_admin, require_moderator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin Management"])


def _get_profile(db: Session, user_id: str) -> Profile:
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise AccountNotFound()
    return profile


@router.get("/moderators", response_model=ModeratorListResponse)
async def list_moderators(
    current: CurrentSession = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get list of moderator accounts"""
    with db_errors("moderator listing", db):
        rows = db.query(Profile, UserRole.created_at)\
            .join(UserRole, UserRole.user_id == Profile.id)\
            .filter(UserRole.role == "moderator")\
            .order_by(UserRole.created_at.desc())\
            .all()

    return {
        "moderators": [
            ModeratorResponse(
                id=profile.id,
                first_name=profile.first_name,
                last_name=profile.last_name,
                phone=profile.phone,
                granted_at=granted_at
            )
            for profile, granted_at in rows
        ]
    }


@router.post("/moderators/{user_id}", response_model=ModeratorResponse)
async def grant_moderator(
    user_id: str,
    current: CurrentSession = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Grant the moderator role; granting twice is a no-op"""
    with db_errors("moderator grant", db):
        profile = _get_profile(db, user_id)

        role = db.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role == "moderator"
        ).first()

        if not role:
            role = UserRole(user_id=user_id, role="moderator")
            db.add(role)
            db.commit()
            db.refresh(role)
            logger.info(f"Moderator role granted to {user_id} by {current.profile.id}")

    return ModeratorResponse(
        id=profile.id,
        first_name=profile.first_name,
        last_name=profile.last_name,
        phone=profile.phone,
        granted_at=role.created_at
    )


@router.delete("/moderators/{user_id}")
async def revoke_moderator(
    user_id: str,
    current: CurrentSession = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Revoke the moderator role"""
    with db_errors("moderator revoke", db):
        _get_profile(db, user_id)

        deleted = db.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role == "moderator"
        ).delete(synchronize_session=False)
        db.commit()

    if deleted:
        logger.info(f"Moderator role revoked from {user_id} by {current.profile.id}")

    return {"success": True, "revoked": bool(deleted)}


@router.post("/sms/bulk", response_model=BulkSmsResponse)
async def send_bulk_sms(
    request: BulkSmsRequest,
    current: CurrentSession = Depends(require_moderator),
    sms=Depends(get_sms_dispatcher)
):
    """Send one message to a list of phone numbers"""
    result = await run_in_threadpool(sms.send, request.recipients, request.message)

    logger.info(
        f"Bulk SMS by {current.profile.id}: "
        f"{len(result.sent)} sent, {len(result.failed)} failed"
    )

    return {
        "success": result.success,
        "message": result.message,
        "sent": len(result.sent),
        "failed": len(result.failed)
    }
