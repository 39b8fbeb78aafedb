from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from letter_studio.db import get_db
from letter_studio.dependencies import get_current_active_user
from letter_studio.models_db import User
from letter_studio.schemas import UserOut, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/users/me", response_model=UserOut)
async def get_me(db_user: User = Depends(get_current_active_user)):
    """Profile used to fill in letter placeholders."""
    return db_user


@router.patch("/users/me", response_model=UserOut)
async def update_me(
    user_update: UserUpdate,
    db: AsyncSession = Depends(get_db),
    db_user: User = Depends(get_current_active_user),
):
    changes = user_update.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(db_user, key, value)

    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    logger.info(f"Updated profile fields {sorted(changes)} for user {db_user.id}")
    return db_user
