"""Item library lookups used by the list-item mutations.

Library items are owned either by a user or by the system (``created_by``
is null). System items are templates: before one lands on a list it is
resolved to the user's own item of the same name, cloning it when needed.
"""

import logging
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from . import models
from .errors import NotFoundError

logger = logging.getLogger(__name__)


class ItemNameTaken(Exception):
    """Another request created the user's item with this name first.

    The session must be rolled back; repeating the operation finds the
    winner's item instead of inserting a second one.
    """


def normalize_name(name: str) -> str:
    return name.strip().lower()


async def _insert_item(db: AsyncSession, item: models.Item) -> models.Item:
    db.add(item)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ItemNameTaken(item.name) from e
    return item


async def find_user_item(
    db: AsyncSession, user_id: int, name: str
) -> Optional[models.Item]:
    stmt = select(models.Item).where(
        models.Item.created_by == user_id,
        func.lower(models.Item.name) == normalize_name(name),
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def find_or_create_user_item(
    db: AsyncSession, user_id: int, name: str, category_id: int
) -> models.Item:
    """Return the user's own item called ``name``, creating it if absent.

    Only the user's items are searched; system items and other users'
    items never match here. The new row is flushed, not committed.
    """
    item = await find_user_item(db, user_id, name)
    if item is not None:
        return item

    item = await _insert_item(
        db, models.Item(name=name.strip(), category_id=category_id, created_by=user_id)
    )
    logger.info("Created library item %r for user %s", item.name, user_id)
    return item


async def resolve_for_user(
    db: AsyncSession, item: models.Item, user_id: int
) -> Optional[models.Item]:
    """Map a source item to the item that should be referenced on a list.

    User-owned items resolve to themselves. A system item resolves to the
    user's same-named item, or to a fresh clone in the user's library.
    Another user's item resolves to None.
    """
    if item.created_by == user_id:
        return item
    if not item.is_system:
        return None

    own = await find_user_item(db, user_id, item.name)
    if own is not None:
        return own

    clone = await _insert_item(
        db,
        models.Item(name=item.name, category_id=item.category_id, created_by=user_id),
    )
    logger.info(
        "Cloned system item %s (%r) into library of user %s",
        item.id,
        item.name,
        user_id,
    )
    return clone


async def get_visible_category(
    db: AsyncSession, user_id: int, category_id: int
) -> models.Category:
    stmt = select(models.Category).where(
        models.Category.id == category_id,
        or_(
            models.Category.is_default.is_(True),
            models.Category.user_id.is_(None),
            models.Category.user_id == user_id,
        ),
    )
    result = await db.execute(stmt)
    category = result.scalar_one_or_none()
    if category is None:
        raise NotFoundError("Category not found")
    return category


async def library_view(
    db: AsyncSession, user_id: int, search: Optional[str] = None
) -> list[models.Item]:
    """The items a user can pick from, sorted by name.

    The user's own items come first in precedence: a system item whose
    name matches one of them (case-insensitively) is hidden.
    """
    own_names = select(func.lower(models.Item.name)).where(
        models.Item.created_by == user_id
    )
    stmt = (
        select(models.Item)
        .options(selectinload(models.Item.category))
        .where(
            or_(
                models.Item.created_by == user_id,
                models.Item.created_by.is_(None)
                & func.lower(models.Item.name).not_in(own_names),
            )
        )
        .order_by(func.lower(models.Item.name), models.Item.id)
    )
    if search:
        stmt = stmt.where(models.Item.name.ilike(f"%{search.strip()}%"))

    result = await db.execute(stmt)
    return list(result.scalars().all())
