from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth_utils import get_current_user
from ..database import get_db_async
from ..library import library_view

router = APIRouter(prefix="/items", tags=["items"])


@router.get("", response_model=list[schemas.LibraryItem])
async def read_library(
    search: Optional[str] = None,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    """The caller's item library: own items plus system items not shadowed by them."""
    return await library_view(db, user.id, search)
