from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timestamp stored as naive UTC and loaded back as aware UTC.

    SQLite keeps no offset, so without this values come back naive.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    lists = relationship(
        "List", back_populates="owner", cascade="all, delete-orphan"
    )


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(7), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    # null for the global defaults
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )


class Item(Base):
    __tablename__ = "items"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    # null marks a system item: a template every user may clone
    created_by = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )

    category = relationship("Category")

    @property
    def is_system(self) -> bool:
        return self.created_by is None


Index(
    "uq_items_lower_name_created_by",
    func.lower(Item.name),
    Item.created_by,
    unique=True,
)


class List(Base):
    __tablename__ = "lists"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    owner_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="lists")
    shares = relationship(
        "ListShare",
        back_populates="list",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    items = relationship(
        "ListItem",
        back_populates="list",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ListShare(Base):
    __tablename__ = "list_shares"
    list_id = Column(
        Integer, ForeignKey("lists.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    permission = Column(String(10), nullable=False, default="edit")

    list = relationship("List", back_populates="shares")


class ListItem(Base):
    __tablename__ = "list_items"
    __table_args__ = (
        UniqueConstraint("list_id", "item_id", name="uq_list_items_list_item"),
    )

    id = Column(Integer, primary_key=True, index=True)
    list_id = Column(
        Integer, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity = Column(String(50), nullable=False, default="1")
    notes = Column(String(500), nullable=False, default="")
    is_checked = Column(Boolean, nullable=False, default=False)
    # only meaningful among unchecked rows
    sort_order = Column(Integer, nullable=False, default=0)
    added_at = Column(UTCDateTime, default=utcnow, nullable=False)
    checked_at = Column(UTCDateTime, nullable=True)

    list = relationship("List", back_populates="items")
    item = relationship("Item")


class Menu(Base):
    __tablename__ = "menus"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    created_by = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship(
        "MenuItem",
        back_populates="menu",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = (
        UniqueConstraint("menu_id", "item_id", name="uq_menu_items_menu_item"),
    )

    id = Column(Integer, primary_key=True, index=True)
    menu_id = Column(
        Integer, ForeignKey("menus.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id = Column(
        Integer, ForeignKey("items.id", ondelete="CASCADE"), nullable=False
    )

    menu = relationship("Menu", back_populates="items")
