from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models, schemas


def _enriched_select():
    return (
        select(models.ListItem, models.Item, models.Category)
        .join(models.Item, models.ListItem.item_id == models.Item.id)
        .join(models.Category, models.Item.category_id == models.Category.id)
        .execution_options(populate_existing=True)
    )


def _to_schema(
    list_item: models.ListItem, item: models.Item, category: models.Category
) -> schemas.EnrichedListItem:
    return schemas.EnrichedListItem(
        id=list_item.id,
        list_id=list_item.list_id,
        item_id=list_item.item_id,
        quantity=list_item.quantity,
        notes=list_item.notes,
        is_checked=bool(list_item.is_checked),
        sort_order=list_item.sort_order,
        added_at=list_item.added_at,
        checked_at=list_item.checked_at,
        item=schemas.ItemRef.model_validate(item),
        category=schemas.CategoryRef.model_validate(category),
    )


async def materialize(
    db: AsyncSession, list_item_id: int
) -> Optional[schemas.EnrichedListItem]:
    result = await db.execute(
        _enriched_select().where(models.ListItem.id == list_item_id)
    )
    row = result.first()
    if row is None:
        return None
    return _to_schema(*row)


async def materialize_many(
    db: AsyncSession, list_item_ids: Iterable[int]
) -> list[schemas.EnrichedListItem]:
    """Materialize several rows in one query, keeping the order of ``list_item_ids``.

    Ids that no longer exist are dropped.
    """
    ids = list(dict.fromkeys(list_item_ids))
    if not ids:
        return []

    result = await db.execute(_enriched_select().where(models.ListItem.id.in_(ids)))
    by_id = {row[0].id: _to_schema(*row) for row in result.all()}
    return [by_id[i] for i in ids if i in by_id]


async def materialize_list(
    db: AsyncSession, list_id: int
) -> list[schemas.EnrichedListItem]:
    stmt = (
        _enriched_select()
        .where(models.ListItem.list_id == list_id)
        .order_by(
            models.ListItem.is_checked.asc(),
            models.ListItem.sort_order.asc(),
            models.ListItem.added_at.asc(),
        )
    )
    result = await db.execute(stmt)
    return [_to_schema(*row) for row in result.all()]
