from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, mutations, schemas
from ..access import check_access
from ..auth_utils import get_current_user
from ..broadcaster import publish
from ..database import get_db_async

router = APIRouter(prefix="/lists", tags=["list-items"])


def schedule_publish(
    background_tasks: BackgroundTasks, list_id: int, result: mutations.MutationResult
):
    # runs after the response is sent; failures never reach the caller
    if result.events:
        background_tasks.add_task(publish, list_id, *result.events)


@router.post(
    "/{list_id}/items",
    response_model=schemas.EnrichedListItem,
    status_code=status.HTTP_201_CREATED,
)
async def add_list_item(
    list_id: int,
    payload: schemas.ListItemCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await check_access(db, user.id, list_id, require_edit=True)

    result = await mutations.add_item(db, list_id, user.id, payload)
    if not result.created:
        response.status_code = status.HTTP_200_OK

    schedule_publish(background_tasks, list_id, result)
    return result.item


@router.post(
    "/{list_id}/items/batch",
    response_model=list[schemas.EnrichedListItem],
    status_code=status.HTTP_201_CREATED,
)
async def add_list_items_batch(
    list_id: int,
    payload: schemas.BatchAddRequest,
    background_tasks: BackgroundTasks,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await check_access(db, user.id, list_id, require_edit=True)

    result = await mutations.add_items_batch(
        db, list_id, user.id, [ref.item_id for ref in payload.items]
    )

    schedule_publish(background_tasks, list_id, result)
    return result.items


@router.post(
    "/{list_id}/menus/{menu_id}/add",
    response_model=list[schemas.EnrichedListItem],
    status_code=status.HTTP_201_CREATED,
)
async def add_menu_to_list(
    list_id: int,
    menu_id: int,
    background_tasks: BackgroundTasks,
    payload: Optional[schemas.MenuApplyRequest] = None,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await check_access(db, user.id, list_id, require_edit=True)

    result = await mutations.add_menu_to_list(
        db, list_id, user.id, menu_id, payload.exclude_item_ids if payload else ()
    )

    schedule_publish(background_tasks, list_id, result)
    return result.items


@router.delete("/{list_id}/items/checked", response_model=schemas.ClearCheckedResponse)
async def clear_checked_items(
    list_id: int,
    background_tasks: BackgroundTasks,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await check_access(db, user.id, list_id, require_edit=True)

    result = await mutations.clear_checked(db, list_id)

    schedule_publish(background_tasks, list_id, result)
    return {"success": True, "removed": len(result.events)}


@router.patch(
    "/{list_id}/items/{list_item_id}", response_model=schemas.EnrichedListItem
)
async def update_list_item(
    list_id: int,
    list_item_id: int,
    payload: schemas.ListItemUpdate,
    background_tasks: BackgroundTasks,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await check_access(db, user.id, list_id, require_edit=True)

    result = await mutations.update_list_item(
        db, list_id, list_item_id, user.id, payload
    )

    schedule_publish(background_tasks, list_id, result)
    return result.item


@router.delete(
    "/{list_id}/items/{list_item_id}", response_model=schemas.SuccessResponse
)
async def remove_list_item(
    list_id: int,
    list_item_id: int,
    background_tasks: BackgroundTasks,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
):
    await check_access(db, user.id, list_id, require_edit=True)

    result = await mutations.remove_list_item(db, list_id, list_item_id)

    schedule_publish(background_tasks, list_id, result)
    return {"success": True}
