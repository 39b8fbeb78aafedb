from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc, func
from typing import List, Optional
import logging

from letter_studio.db import get_db
from letter_studio.dependencies import get_current_active_user
from letter_studio.models_db import User, CoverLetter
from letter_studio.sanitizer import clean_ai_output
from letter_studio.schemas import CoverLetterCreate, CoverLetterUpdate, CoverLetterOut, LetterContent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cover-letters", tags=["Cover Letters"])

COPY_SUFFIX = " (Copy)"


def sanitized_content(content: LetterContent) -> dict:
    """Serialize letter content for storage with AI commentary stripped from the body."""
    return content.model_copy(update={"body": clean_ai_output(content.body)}).model_dump()


def duplicate_payload(letter: CoverLetterOut) -> CoverLetterCreate:
    """
    Build the create payload for a copy of ``letter``.

    Identity and timestamps stay with the original; the copy gets its own when saved.
    """
    data = letter.model_dump(exclude={"id", "createdAt", "updatedAt"})
    data["name"] = f"{letter.name}{COPY_SUFFIX}"
    return CoverLetterCreate.model_validate(data)


async def get_owned_letter(db: AsyncSession, letter_id: int, user: User) -> CoverLetter:
    result = await db.execute(
        select(CoverLetter).where(
            CoverLetter.id == letter_id,
            CoverLetter.user_id == user.id
        )
    )
    document = result.scalar_one_or_none()

    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cover letter not found or you do not have permission to access it.",
        )
    return document


async def _store_letter(db: AsyncSession, user: User, payload: CoverLetterCreate) -> CoverLetter:
    record = CoverLetter(
        user_id=user.id,
        name=payload.name,
        job_title=payload.jobTitle,
        template=payload.template,
        content=sanitized_content(payload.content),
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


@router.get("", response_model=List[CoverLetterOut])
async def list_cover_letters(
    q: Optional[str] = None,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Lists the current user's cover letters, most recently updated first.
    ``q`` filters by name, case-insensitively.
    """
    query = select(CoverLetter).where(CoverLetter.user_id == user.id)
    if q:
        query = query.where(func.lower(CoverLetter.name).contains(q.lower()))
    query = query.order_by(desc(CoverLetter.updated_at), desc(CoverLetter.id))

    result = await db.execute(query)
    return [CoverLetterOut.from_record(record) for record in result.scalars().all()]


@router.get("/latest", response_model=CoverLetterOut)
async def get_latest_cover_letter(
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Fetches the most recently created cover letter for the current user.
    """
    result = await db.execute(
        select(CoverLetter)
        .where(CoverLetter.user_id == user.id)
        .order_by(desc(CoverLetter.created_at), desc(CoverLetter.id))
        .limit(1)
    )
    document = result.scalar_one_or_none()

    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No cover letters found for this user.",
        )
    return CoverLetterOut.from_record(document)


@router.get("/{letter_id}", response_model=CoverLetterOut)
async def get_cover_letter(
    letter_id: int,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    document = await get_owned_letter(db, letter_id, user)
    return CoverLetterOut.from_record(document)


@router.post("", response_model=CoverLetterOut, status_code=status.HTTP_201_CREATED)
async def create_cover_letter(
    request: CoverLetterCreate,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Saves a cover letter. The body is sanitized before it is stored.
    """
    record = await _store_letter(db, user, request)
    logger.info(f"Saved cover letter {record.id} '{record.name}' for user {user.id}")
    return CoverLetterOut.from_record(record)


@router.put("/{letter_id}", response_model=CoverLetterOut)
async def update_cover_letter(
    letter_id: int,
    request: CoverLetterUpdate,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Updates the given fields of a specific cover letter.
    """
    document = await get_owned_letter(db, letter_id, user)

    if request.name is not None:
        document.name = request.name
    if request.jobTitle is not None:
        document.job_title = request.jobTitle
    if request.template is not None:
        document.template = request.template
    if request.content is not None:
        document.content = sanitized_content(request.content)

    db.add(document)
    await db.commit()
    await db.refresh(document)

    logger.info(f"Updated cover letter {letter_id} for user {user.id}")
    return CoverLetterOut.from_record(document)


@router.delete("/{letter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_cover_letter(
    letter_id: int,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    document = await get_owned_letter(db, letter_id, user)
    await db.delete(document)
    await db.commit()

    logger.info(f"Deleted cover letter {letter_id} for user {user.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{letter_id}/duplicate", response_model=CoverLetterOut, status_code=status.HTTP_201_CREATED)
async def duplicate_cover_letter(
    letter_id: int,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Creates a copy of a cover letter named "<name> (Copy)".
    """
    original = await get_owned_letter(db, letter_id, user)
    payload = duplicate_payload(CoverLetterOut.from_record(original))
    record = await _store_letter(db, user, payload)

    logger.info(f"Duplicated cover letter {letter_id} as {record.id} for user {user.id}")
    return CoverLetterOut.from_record(record)
