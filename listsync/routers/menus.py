import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth_utils import get_current_user
from ..database import get_db_async
from ..errors import NotFoundError, ValidationError
from ..mutations import transaction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/menus", tags=["menus"])


async def _usable_item_ids(db: AsyncSession, user_id: int, item_ids: list[int]):
    # own items and system templates only
    unique_ids = list(dict.fromkeys(item_ids))
    stmt = select(models.Item.id).where(
        models.Item.id.in_(unique_ids),
        (models.Item.created_by == user_id) | models.Item.created_by.is_(None),
    )
    result = await db.execute(stmt)
    found = set(result.scalars().all())
    missing = [item_id for item_id in unique_ids if item_id not in found]
    if missing:
        raise ValidationError(f"Unknown item ids: {missing}")
    return unique_ids


async def _owned_menu(db: AsyncSession, user_id: int, menu_id: int) -> models.Menu:
    menu = await db.get(models.Menu, menu_id)
    if menu is None or menu.created_by != user_id:
        raise NotFoundError("Menu not found")
    return menu


async def _menu_response(db: AsyncSession, menu: models.Menu) -> schemas.MenuBase:
    stmt = select(func.count(models.MenuItem.id)).where(
        models.MenuItem.menu_id == menu.id
    )
    result = await db.execute(stmt)
    return schemas.MenuBase(
        id=menu.id,
        name=menu.name,
        created_by=menu.created_by,
        item_count=result.scalar() or 0,
    )


@router.get("", response_model=list[schemas.MenuBase])
async def read_menus(
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    stmt = (
        select(models.Menu, func.count(models.MenuItem.id))
        .outerjoin(models.MenuItem, models.MenuItem.menu_id == models.Menu.id)
        .where(models.Menu.created_by == user.id)
        .group_by(models.Menu.id)
        .order_by(models.Menu.name)
    )
    result = await db.execute(stmt)
    return [
        schemas.MenuBase(
            id=menu.id, name=menu.name, created_by=menu.created_by, item_count=count
        )
        for menu, count in result.all()
    ]


@router.post("", response_model=schemas.MenuBase, status_code=status.HTTP_201_CREATED)
async def create_menu(
    payload: schemas.MenuCreate,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    name = payload.name.strip()
    if not name:
        raise ValidationError("Name is required")
    item_ids = await _usable_item_ids(db, user.id, payload.item_ids)

    async with transaction(db, "Menu already contains this item"):
        menu = models.Menu(name=name, created_by=user.id)
        db.add(menu)
        await db.flush()
        for item_id in item_ids:
            db.add(models.MenuItem(menu_id=menu.id, item_id=item_id))

    logger.info("User %s created menu %r with %d items", user.id, name, len(item_ids))
    return await _menu_response(db, menu)


@router.put("/{menu_id}", response_model=schemas.MenuBase)
async def update_menu(
    menu_id: int,
    payload: schemas.MenuUpdate,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    menu = await _owned_menu(db, user.id, menu_id)

    name = payload.name.strip() if payload.name is not None else None
    if name == "":
        raise ValidationError("Name cannot be empty")
    item_ids = None
    if payload.item_ids is not None:
        item_ids = await _usable_item_ids(db, user.id, payload.item_ids)

    async with transaction(db, "Menu already contains this item"):
        if name is not None:
            menu.name = name
        menu.updated_at = models.utcnow()
        if item_ids is not None:
            await db.execute(
                delete(models.MenuItem).where(models.MenuItem.menu_id == menu_id)
            )
            for item_id in item_ids:
                db.add(models.MenuItem(menu_id=menu_id, item_id=item_id))

    return await _menu_response(db, menu)


@router.get("/{menu_id}", response_model=schemas.MenuWithItems)
async def read_menu(
    menu_id: int,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    menu = await _owned_menu(db, user.id, menu_id)

    stmt = (
        select(models.MenuItem, models.Item, models.Category)
        .join(models.Item, models.MenuItem.item_id == models.Item.id)
        .join(models.Category, models.Item.category_id == models.Category.id)
        .where(models.MenuItem.menu_id == menu_id)
        .order_by(models.MenuItem.id)
    )
    result = await db.execute(stmt)
    entries = [
        schemas.MenuEntry(
            id=menu_item.id,
            menu_id=menu_item.menu_id,
            item_id=menu_item.item_id,
            item=schemas.ItemRef.model_validate(item),
            category=schemas.CategoryRef.model_validate(category),
        )
        for menu_item, item, category in result.all()
    ]
    return schemas.MenuWithItems(
        id=menu.id,
        name=menu.name,
        created_by=menu.created_by,
        item_count=len(entries),
        items=entries,
    )


@router.delete("/{menu_id}", response_model=schemas.SuccessResponse)
async def delete_menu(
    menu_id: int,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    menu = await _owned_menu(db, user.id, menu_id)

    await db.delete(menu)
    await db.commit()
    logger.info("User %s deleted menu %s", user.id, menu_id)
    return {"success": True}
