"""State changes for the items on a shopping list.

Every function here runs its writes in a single transaction on the given
session, commits, and returns the materialized rows together with the
events the caller must publish. Access control happens before these are
called; publishing happens after they return, so a subscriber never sees
an event for state that was rolled back.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import models, schemas
from .config import DEFAULT_NOTES, DEFAULT_QUANTITY, NOTES_MAX_LENGTH
from .errors import ConflictError, NotFoundError, ValidationError
from .library import (
    ItemNameTaken,
    find_or_create_user_item,
    get_visible_category,
    resolve_for_user,
)
from .materializer import materialize, materialize_many

logger = logging.getLogger(__name__)

ALREADY_ON_LIST = "Item already on this list"
LIBRARY_RACE = "Item was changed by another request, try again"


@dataclass
class MutationResult:
    items: list[schemas.EnrichedListItem] = field(default_factory=list)
    events: list[schemas.ListEvent] = field(default_factory=list)
    created: bool = False

    @property
    def item(self) -> Optional[schemas.EnrichedListItem]:
        return self.items[0] if self.items else None


@asynccontextmanager
async def transaction(db: AsyncSession, conflict_message: str = ALREADY_ON_LIST):
    """Commit on success, roll back on any error.

    A unique-constraint violation means a concurrent request already put
    the same item on the list, so it surfaces as the same conflict the
    explicit pre-check reports. Library-item collisions never get here:
    they are raised as ``ItemNameTaken`` at the insert.
    """
    try:
        yield
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info("Unique constraint rejected write: %s", e.orig)
        raise ConflictError(conflict_message) from e
    except Exception:
        await db.rollback()
        raise


async def retry_library_race(operation, *args):
    """Run ``operation`` again if it lost a race creating a library item.

    The first attempt has already been rolled back by ``transaction``; on
    the second the winner's item is found and reused.
    """
    try:
        return await operation(*args)
    except ItemNameTaken as e:
        logger.info("Library item %r was created concurrently, retrying", str(e))

    try:
        return await operation(*args)
    except ItemNameTaken as e:
        raise ConflictError(LIBRARY_RACE) from e


def merge_notes(notes: str, menu_name: str) -> str:
    merged = f"{notes}, {menu_name}" if notes else menu_name
    return merged[:NOTES_MAX_LENGTH]


def reactivate(entry: models.ListItem, quantity: str, notes: str, sort_order: int):
    # a reactivated row rejoins the unchecked rows at the bottom
    entry.is_checked = False
    entry.checked_at = None
    entry.quantity = quantity
    entry.notes = notes
    entry.sort_order = sort_order


async def next_sort_order(db: AsyncSession, list_id: int) -> int:
    stmt = select(func.max(models.ListItem.sort_order)).where(
        models.ListItem.list_id == list_id, models.ListItem.is_checked.is_(False)
    )
    result = await db.execute(stmt)
    return (result.scalar() or 0) + 1


async def find_entry(
    db: AsyncSession, list_id: int, item_id: int
) -> Optional[models.ListItem]:
    stmt = select(models.ListItem).where(
        models.ListItem.list_id == list_id, models.ListItem.item_id == item_id
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_entry(
    db: AsyncSession, list_id: int, list_item_id: int
) -> models.ListItem:
    stmt = select(models.ListItem).where(
        models.ListItem.id == list_item_id, models.ListItem.list_id == list_id
    )
    result = await db.execute(stmt)
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("List item not found")
    return entry


async def add_item(
    db: AsyncSession, list_id: int, user_id: int, payload: schemas.ListItemCreate
) -> MutationResult:
    """Add an item by name, reactivating it if it is checked on the list.

    An item that is already active on the list is a conflict.
    """
    return await retry_library_race(_add_item, db, list_id, user_id, payload)


async def _add_item(
    db: AsyncSession, list_id: int, user_id: int, payload: schemas.ListItemCreate
) -> MutationResult:
    name = payload.name.strip()
    if not name:
        raise ValidationError("Name is required")
    await get_visible_category(db, user_id, payload.category_id)

    quantity = payload.quantity or DEFAULT_QUANTITY
    notes = payload.notes or DEFAULT_NOTES

    async with transaction(db):
        item = await find_or_create_user_item(db, user_id, name, payload.category_id)
        entry = await find_entry(db, list_id, item.id)

        if entry is None:
            entry = models.ListItem(
                list_id=list_id,
                item_id=item.id,
                quantity=quantity,
                notes=notes,
                is_checked=False,
                sort_order=await next_sort_order(db, list_id),
            )
            db.add(entry)
            await db.flush()
            created = True
        elif entry.is_checked:
            reactivate(entry, quantity, notes, await next_sort_order(db, list_id))
            created = False
        else:
            raise ConflictError(ALREADY_ON_LIST)

    enriched = await materialize(db, entry.id)
    if created:
        logger.info("Added item %r to list %s", name, list_id)
        event = schemas.ItemAddedEvent(
            data=schemas.ItemAddedData(listId=list_id, listItem=enriched)
        )
    else:
        logger.info("Reactivated item %r on list %s", name, list_id)
        event = schemas.ItemUpdatedEvent(
            data=schemas.ItemUpdatedData(listId=list_id, listItem=enriched)
        )
    return MutationResult(items=[enriched], events=[event], created=created)


async def _apply_items(
    db: AsyncSession,
    list_id: int,
    user_id: int,
    source_item_ids: Iterable[int],
    menu_name: Optional[str] = None,
) -> MutationResult:
    # menu_name is None for a plain library batch
    affected: list[int] = []
    seen: set[int] = set()

    async with transaction(db):
        sort_order = await next_sort_order(db, list_id)

        for source_id in dict.fromkeys(source_item_ids):
            source = await db.get(models.Item, source_id)
            item = await resolve_for_user(db, source, user_id) if source else None
            if item is None:
                logger.info("Skipping unknown item %s for list %s", source_id, list_id)
                continue
            if item.id in seen:
                continue
            seen.add(item.id)

            entry = await find_entry(db, list_id, item.id)
            if entry is None:
                entry = models.ListItem(
                    list_id=list_id,
                    item_id=item.id,
                    quantity=DEFAULT_QUANTITY,
                    notes=menu_name or DEFAULT_NOTES,
                    is_checked=False,
                    sort_order=sort_order,
                )
                db.add(entry)
                await db.flush()
                sort_order += 1
            elif entry.is_checked:
                reactivate(
                    entry, DEFAULT_QUANTITY, menu_name or DEFAULT_NOTES, sort_order
                )
                sort_order += 1
            elif menu_name is not None:
                entry.notes = merge_notes(entry.notes, menu_name)
            else:
                continue
            affected.append(entry.id)

    items = await materialize_many(db, affected)
    events = []
    if items:
        events.append(
            schemas.ItemsAddedEvent(
                data=schemas.ItemsAddedData(listId=list_id, listItems=items)
            )
        )
    return MutationResult(items=items, events=events, created=True)


async def add_items_batch(
    db: AsyncSession, list_id: int, user_id: int, item_ids: Iterable[int]
) -> MutationResult:
    item_ids = list(item_ids)
    result = await retry_library_race(_apply_items, db, list_id, user_id, item_ids)
    logger.info("Batch added %d items to list %s", len(result.items), list_id)
    return result


async def add_menu_to_list(
    db: AsyncSession,
    list_id: int,
    user_id: int,
    menu_id: int,
    exclude_item_ids: Iterable[int] = (),
) -> MutationResult:
    menu = await db.get(models.Menu, menu_id)
    if menu is None or menu.created_by != user_id:
        raise NotFoundError("Menu not found")

    stmt = (
        select(models.MenuItem.item_id)
        .where(models.MenuItem.menu_id == menu_id)
        .order_by(models.MenuItem.id)
    )
    result = await db.execute(stmt)
    excluded = set(exclude_item_ids)
    item_ids = [item_id for item_id in result.scalars().all() if item_id not in excluded]

    menu_name = menu.name
    applied = await retry_library_race(
        _apply_items, db, list_id, user_id, item_ids, menu_name
    )
    logger.info(
        "Applied menu %r to list %s (%d items)", menu_name, list_id, len(applied.items)
    )
    return applied


async def update_list_item(
    db: AsyncSession,
    list_id: int,
    list_item_id: int,
    user_id: int,
    payload: schemas.ListItemUpdate,
) -> MutationResult:
    fields = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None
    }
    if not fields:
        raise ValidationError("No updates provided")

    entry = await get_entry(db, list_id, list_item_id)
    category = None
    if "category_id" in fields:
        category = await get_visible_category(db, user_id, fields["category_id"])

    async with transaction(db):
        if "quantity" in fields:
            entry.quantity = fields["quantity"]
        if "notes" in fields:
            entry.notes = fields["notes"]

        if fields.get("is_checked") is True:
            # checking always starts the next active stint from defaults
            entry.is_checked = True
            entry.checked_at = models.utcnow()
            entry.quantity = DEFAULT_QUANTITY
            entry.notes = DEFAULT_NOTES
        elif fields.get("is_checked") is False:
            entry.is_checked = False
            entry.checked_at = None

        if category is not None:
            item = await db.get(models.Item, entry.item_id)
            item.category_id = category.id

    enriched = await materialize(db, list_item_id)
    logger.info("Updated list item %s on list %s: %s", list_item_id, list_id, sorted(fields))

    if set(fields) == {"is_checked"}:
        event = schemas.ItemCheckedEvent(
            data=schemas.ItemCheckedData(
                listId=list_id,
                listItemId=list_item_id,
                is_checked=enriched.is_checked,
                checked_at=enriched.checked_at,
            )
        )
    else:
        event = schemas.ItemUpdatedEvent(
            data=schemas.ItemUpdatedData(listId=list_id, listItem=enriched)
        )
    return MutationResult(items=[enriched], events=[event])


async def remove_list_item(
    db: AsyncSession, list_id: int, list_item_id: int
) -> MutationResult:
    entry = await get_entry(db, list_id, list_item_id)

    async with transaction(db):
        await db.delete(entry)

    logger.info("Removed list item %s from list %s", list_item_id, list_id)
    event = schemas.ItemRemovedEvent(
        data=schemas.ItemRemovedData(listId=list_id, listItemId=list_item_id)
    )
    return MutationResult(events=[event])


async def clear_checked(db: AsyncSession, list_id: int) -> MutationResult:
    """Delete every checked item on the list in one transaction."""
    stmt = select(models.ListItem).where(
        models.ListItem.list_id == list_id, models.ListItem.is_checked.is_(True)
    )
    result = await db.execute(stmt)
    entries = result.scalars().all()

    removed_ids = [entry.id for entry in entries]
    async with transaction(db):
        for entry in entries:
            await db.delete(entry)

    logger.info("Cleared %d checked items from list %s", len(removed_ids), list_id)
    events = [
        schemas.ItemRemovedEvent(
            data=schemas.ItemRemovedData(listId=list_id, listItemId=list_item_id)
        )
        for list_item_id in removed_ids
    ]
    return MutationResult(events=events)
