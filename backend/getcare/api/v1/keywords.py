"""Keyword API router."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from getcare.core.database import get_session
from getcare.core.logging import get_logger
from getcare.models.keyword import Keyword, KeywordStatus
from getcare.repositories.keyword import KeywordRepository
from getcare.schemas.keyword import KeywordResponse, KeywordStatusUpdate

logger = get_logger(__name__)

router = APIRouter(prefix="/keywords", tags=["Keywords"])


async def _get_or_404(repo: KeywordRepository, keyword_id: str) -> Keyword:
    keyword = await repo.get(keyword_id)
    if keyword is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Keyword with id '{keyword_id}' not found",
        )
    return keyword


@router.get("/{keyword_id}", response_model=KeywordResponse)
async def get_keyword(
    keyword_id: str,
    session: AsyncSession = Depends(get_session),
) -> KeywordResponse:
    """Get a keyword by ID."""
    keyword = await _get_or_404(KeywordRepository(session), keyword_id)
    return KeywordResponse.model_validate(keyword)


@router.patch("/{keyword_id}/status", response_model=KeywordResponse)
async def update_keyword_status(
    keyword_id: str,
    data: KeywordStatusUpdate,
    session: AsyncSession = Depends(get_session),
) -> KeywordResponse:
    """Set a keyword's status.

    Only pending, generating, generated and published are accepted (422
    otherwise). Setting 'pending' clears the stored error message.
    """
    repo = KeywordRepository(session)
    await _get_or_404(repo, keyword_id)

    new_status = KeywordStatus(data.status)
    keyword = await repo.set_status(
        keyword_id,
        new_status,
        clear_error=new_status == KeywordStatus.PENDING,
    )
    if keyword is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Keyword with id '{keyword_id}' not found",
        )

    logger.info(
        "Keyword status updated",
        extra={"keyword_id": keyword_id, "status": new_status.value},
    )
    return KeywordResponse.model_validate(keyword)
