from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from .config import (
    ITEM_NAME_MAX_LENGTH,
    LIST_NAME_MAX_LENGTH,
    MENU_NAME_MAX_LENGTH,
    NOTES_MAX_LENGTH,
    QUANTITY_MAX_LENGTH,
)


class UserAuth(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=64)


class UserBase(BaseModel):
    id: int
    username: str

    class Config:
        from_attributes = True


# ----------------- Lists & shares -----------------


class ListCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=LIST_NAME_MAX_LENGTH)


class ListBase(BaseModel):
    id: int
    name: str
    owner_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ListSummary(ListBase):
    is_owner: bool
    owner_username: Optional[str] = None
    # null for the owner
    permission: Optional[Literal["view", "edit"]] = None
    total_count: int = 0
    unchecked_count: int = 0


class ShareCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    permission: Literal["view", "edit"] = "edit"


class ShareBase(BaseModel):
    list_id: int
    user_id: int
    permission: Literal["view", "edit"]

    class Config:
        from_attributes = True


class ShareEntry(ShareBase):
    username: str


# ----------------- Enriched list items -----------------


class ItemRef(BaseModel):
    id: int
    name: str
    category_id: int
    created_by: Optional[int] = None

    class Config:
        from_attributes = True


class CategoryRef(BaseModel):
    id: int
    name: str
    color: str
    is_default: bool
    user_id: Optional[int] = None

    class Config:
        from_attributes = True


class EnrichedListItem(BaseModel):
    """A list-item joined with its library item and category.

    Served by the REST endpoints and carried verbatim in live-update
    payloads, so clients can treat both as the same entity.
    """

    id: int
    list_id: int
    item_id: int
    quantity: str
    notes: str
    is_checked: bool
    sort_order: int
    added_at: datetime
    checked_at: Optional[datetime] = None
    item: ItemRef
    category: CategoryRef


class ListWithItems(ListBase):
    is_owner: bool
    items: list[EnrichedListItem]


class LibraryItem(ItemRef):
    category: CategoryRef


# ----------------- Mutation payloads -----------------


class ListItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=ITEM_NAME_MAX_LENGTH)
    category_id: int
    quantity: Optional[str] = Field(None, max_length=QUANTITY_MAX_LENGTH)
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)


class ListItemUpdate(BaseModel):
    quantity: Optional[str] = Field(None, max_length=QUANTITY_MAX_LENGTH)
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)
    is_checked: Optional[bool] = None
    category_id: Optional[int] = None


class BatchItemRef(BaseModel):
    item_id: int


class BatchAddRequest(BaseModel):
    items: list[BatchItemRef]


class MenuApplyRequest(BaseModel):
    exclude_item_ids: list[int] = Field(default_factory=list)


class SuccessResponse(BaseModel):
    success: bool = True


class ClearCheckedResponse(SuccessResponse):
    removed: int


# ----------------- Menus -----------------


class MenuCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=MENU_NAME_MAX_LENGTH)
    item_ids: list[int] = Field(..., min_length=1)


class MenuUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=MENU_NAME_MAX_LENGTH)
    item_ids: Optional[list[int]] = Field(None, min_length=1)


class MenuBase(BaseModel):
    id: int
    name: str
    created_by: int
    item_count: int


class MenuEntry(BaseModel):
    id: int
    menu_id: int
    item_id: int
    item: ItemRef
    category: CategoryRef


class MenuWithItems(MenuBase):
    items: list[MenuEntry]


# ----------------- Live-update events -----------------


class ItemAddedData(BaseModel):
    listId: int
    listItem: EnrichedListItem


class ItemCheckedData(BaseModel):
    listId: int
    listItemId: int
    is_checked: bool
    checked_at: Optional[datetime] = None


class ItemRemovedData(BaseModel):
    listId: int
    listItemId: int


class ItemUpdatedData(BaseModel):
    listId: int
    listItem: EnrichedListItem


class ItemsAddedData(BaseModel):
    listId: int
    listItems: list[EnrichedListItem]


class ItemAddedEvent(BaseModel):
    event: Literal["list:item-added"] = "list:item-added"
    data: ItemAddedData


class ItemCheckedEvent(BaseModel):
    event: Literal["list:item-checked"] = "list:item-checked"
    data: ItemCheckedData


class ItemRemovedEvent(BaseModel):
    event: Literal["list:item-removed"] = "list:item-removed"
    data: ItemRemovedData


class ItemUpdatedEvent(BaseModel):
    event: Literal["list:item-updated"] = "list:item-updated"
    data: ItemUpdatedData


class ItemsAddedEvent(BaseModel):
    event: Literal["list:items-added"] = "list:items-added"
    data: ItemsAddedData


ListEvent = Annotated[
    Union[
        ItemAddedEvent,
        ItemCheckedEvent,
        ItemRemovedEvent,
        ItemUpdatedEvent,
        ItemsAddedEvent,
    ],
    Field(discriminator="event"),
]


# Subscription control messages exchanged on the live-update socket.


class RoomMessage(BaseModel):
    event: Literal["list:join", "list:leave"]
    data: int


class RoomAckData(BaseModel):
    listId: int


class RoomErrorData(BaseModel):
    listId: Optional[int] = None
    message: str
