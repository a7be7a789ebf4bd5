import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..access import check_access
from ..auth_utils import get_current_user
from ..broadcaster import manager
from ..database import get_db_async
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..materializer import materialize_list

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lists", tags=["lists"])


async def _owned_list(db: AsyncSession, user_id: int, list_id: int, action: str):
    db_list = await check_access(db, user_id, list_id)
    if db_list.owner_id != user_id:
        raise ForbiddenError(f"Only the owner can {action}")
    return db_list


async def _item_counts(db: AsyncSession, list_ids: list[int]) -> dict[int, tuple]:
    if not list_ids:
        return {}
    stmt = (
        select(
            models.ListItem.list_id,
            func.count(models.ListItem.id),
            func.sum(case((models.ListItem.is_checked.is_(False), 1), else_=0)),
        )
        .where(models.ListItem.list_id.in_(list_ids))
        .group_by(models.ListItem.list_id)
    )
    result = await db.execute(stmt)
    return {list_id: (total, unchecked or 0) for list_id, total, unchecked in result.all()}


@router.get("", response_model=list[schemas.ListSummary])
async def read_lists(
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    """Lists the user owns, followed by lists shared with them."""
    owned = await db.execute(
        select(models.List)
        .where(models.List.owner_id == user.id)
        .order_by(models.List.id)
    )
    shared = await db.execute(
        select(models.List, models.User.username, models.ListShare.permission)
        .join(models.ListShare, models.ListShare.list_id == models.List.id)
        .join(models.User, models.User.id == models.List.owner_id)
        .where(models.ListShare.user_id == user.id)
        .order_by(models.List.id)
    )

    rows = [(db_list, user.username, None) for db_list in owned.scalars().all()]
    rows += shared.all()
    counts = await _item_counts(db, [db_list.id for db_list, _, _ in rows])

    summaries = []
    for db_list, owner_username, permission in rows:
        total, unchecked = counts.get(db_list.id, (0, 0))
        summaries.append(
            schemas.ListSummary(
                id=db_list.id,
                name=db_list.name,
                owner_id=db_list.owner_id,
                created_at=db_list.created_at,
                updated_at=db_list.updated_at,
                is_owner=db_list.owner_id == user.id,
                owner_username=owner_username,
                permission=permission,
                total_count=total,
                unchecked_count=unchecked,
            )
        )
    return summaries


@router.post("", response_model=schemas.ListBase, status_code=status.HTTP_201_CREATED)
async def create_list(
    payload: schemas.ListCreate,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    name = payload.name.strip()
    if not name:
        raise ValidationError("Name is required")

    db_list = models.List(name=name, owner_id=user.id)
    db.add(db_list)
    await db.commit()
    await db.refresh(db_list)
    logger.info("User %s created list %s", user.id, db_list.id)
    return db_list


@router.get("/{list_id}", response_model=schemas.ListWithItems)
async def get_list(
    list_id: int,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    """Full snapshot of a list; clients refetch this after resubscribing."""
    db_list = await check_access(db, user.id, list_id)
    items = await materialize_list(db, list_id)

    return schemas.ListWithItems(
        id=db_list.id,
        name=db_list.name,
        owner_id=db_list.owner_id,
        created_at=db_list.created_at,
        updated_at=db_list.updated_at,
        is_owner=db_list.owner_id == user.id,
        items=items,
    )


@router.post(
    "/{list_id}/shares",
    response_model=schemas.ShareBase,
    status_code=status.HTTP_201_CREATED,
)
async def share_list(
    list_id: int,
    payload: schemas.ShareCreate,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await _owned_list(db, user.id, list_id, "share a list")

    stmt = select(models.User).where(models.User.username == payload.username)
    result = await db.execute(stmt)
    target = result.scalar_one_or_none()
    if target is None:
        raise NotFoundError("User not found")
    if target.id == user.id:
        raise ValidationError("Cannot share a list with its owner")

    share = await db.get(models.ListShare, (list_id, target.id))
    if share is not None:
        if share.permission == payload.permission:
            raise ConflictError("List already shared with this user")
        share.permission = payload.permission
    else:
        share = models.ListShare(
            list_id=list_id, user_id=target.id, permission=payload.permission
        )
        db.add(share)

    await db.commit()
    return share


@router.put("/{list_id}", response_model=schemas.ListBase)
async def rename_list(
    list_id: int,
    payload: schemas.ListCreate,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    db_list = await _owned_list(db, user.id, list_id, "rename a list")
    name = payload.name.strip()
    if not name:
        raise ValidationError("Name is required")

    db_list.name = name
    await db.commit()
    await db.refresh(db_list)
    return db_list


@router.delete("/{list_id}", response_model=schemas.SuccessResponse)
async def delete_list(
    list_id: int,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    """Delete a list; its items and shares go with it."""
    db_list = await _owned_list(db, user.id, list_id, "delete a list")

    await db.delete(db_list)
    await db.commit()
    manager.drop_room(list_id)
    logger.info("User %s deleted list %s", user.id, list_id)
    return {"success": True}


@router.get("/{list_id}/shares", response_model=list[schemas.ShareEntry])
async def read_shares(
    list_id: int,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await check_access(db, user.id, list_id)

    stmt = (
        select(models.ListShare, models.User.username)
        .join(models.User, models.User.id == models.ListShare.user_id)
        .where(models.ListShare.list_id == list_id)
        .order_by(models.User.username)
    )
    result = await db.execute(stmt)
    return [
        schemas.ShareEntry(
            list_id=share.list_id,
            user_id=share.user_id,
            permission=share.permission,
            username=username,
        )
        for share, username in result.all()
    ]


@router.delete(
    "/{list_id}/shares/{user_id}", response_model=schemas.SuccessResponse
)
async def revoke_share(
    list_id: int,
    user_id: int,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await _owned_list(db, user.id, list_id, "manage shares")

    share = await db.get(models.ListShare, (list_id, user_id))
    if share is None:
        raise NotFoundError("Share not found")

    await db.delete(share)
    await db.commit()
    # open sockets of the revoked user stop receiving this list's events
    evicted = manager.evict(list_id, user_id)
    logger.info(
        "Revoked share of list %s for user %s (%d connections evicted)",
        list_id,
        user_id,
        evicted,
    )
    return {"success": True}
