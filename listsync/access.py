from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .errors import ForbiddenError, NotFoundError

EDIT = "edit"
VIEW = "view"


async def check_access(
    db: AsyncSession, user_id: int, list_id: int, require_edit: bool = False
) -> models.List:
    """Return the list if ``user_id`` may access it.

    Owners always pass. Sharees pass with any permission unless
    ``require_edit`` is set, in which case the share must grant ``edit``.
    """
    shopping_list = await db.get(models.List, list_id)
    if shopping_list is None:
        raise NotFoundError("List not found")

    if shopping_list.owner_id == user_id:
        return shopping_list

    stmt = select(models.ListShare).where(
        models.ListShare.list_id == list_id, models.ListShare.user_id == user_id
    )
    result = await db.execute(stmt)
    share = result.scalar_one_or_none()

    if share is None:
        raise ForbiddenError("Access denied")
    if require_edit and share.permission != EDIT:
        raise ForbiddenError("Edit permission required", code="edit_required")

    return shopping_list
