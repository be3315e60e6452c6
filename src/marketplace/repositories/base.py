"""Repository interface shared by the SQL and in-memory stores.

Services only talk to this interface, so the order, reservation and payout
rules behave the same whichever store backs them.
"""
import abc
from typing import Any, Dict, Generic, List, NamedTuple, Optional, Tuple, TypeVar

from .. import models

T = TypeVar("T")


class UniqueKey(NamedTuple):
    """Fields unique together among the rows that match `where`.

    The SQL store leaves enforcement to the matching table constraint or
    partial index; the memory store checks it on every write.
    """

    fields: Tuple[str, ...]
    where: Optional[Dict[str, Any]] = None


def unique_key(key) -> UniqueKey:
    if isinstance(key, UniqueKey):
        return key
    if isinstance(key, str):
        return UniqueKey((key,))
    return UniqueKey(tuple(key))


class Repository(abc.ABC, Generic[T]):
    """Find/create/update capability set over one entity type.

    Filters passed to `find`, `first` and `count` are equality matches; a
    list, tuple or set value matches any of its members.
    """

    model: type

    @abc.abstractmethod
    def get(self, entity_id: int) -> Optional[T]:
        ...

    @abc.abstractmethod
    def find(self, **filters: Any) -> List[T]:
        ...

    def first(self, **filters: Any) -> Optional[T]:
        found = self.find(**filters)
        return found[0] if found else None

    def count(self, **filters: Any) -> int:
        return len(self.find(**filters))

    @abc.abstractmethod
    def add(self, entity: T) -> T:
        """Persist a new entity. Raises ConflictError on a unique key clash."""

    @abc.abstractmethod
    def update(self, entity_id: int, **changes: Any) -> Optional[T]:
        ...

    @abc.abstractmethod
    def update_if(self, entity_id: int, expected: Dict[str, Any], **changes: Any) -> Optional[T]:
        """Apply `changes` only while every field in `expected` still holds.

        Returns the updated entity, or None when the entity is missing or a
        concurrent writer changed one of the expected fields first.
        """

    @abc.abstractmethod
    def delete(self, entity_id: int) -> bool:
        ...


class Repositories:
    """One repository per entity, built by a store backend."""

    products: Repository[models.Product]
    orders: Repository[models.Order]
    stores: Repository[models.Store]
    users: Repository[models.User]
    disputes: Repository[models.Dispute]
    dispute_messages: Repository[models.DisputeMessage]
    price_alerts: Repository[models.PriceAlert]
    reviews: Repository[models.Review]
    payouts: Repository[models.StorePayout]
    webhook_events: Repository[models.WebhookEvent]

    def __init__(self, factory):
        self.products = factory(models.Product, unique=("sku",))
        self.orders = factory(models.Order, unique=("order_number",))
        self.stores = factory(models.Store, unique=("slug",))
        self.users = factory(models.User, unique=("email",))
        self.disputes = factory(models.Dispute, unique=("order_id",))
        self.dispute_messages = factory(models.DisputeMessage)
        # one active alert per user and product
        self.price_alerts = factory(
            models.PriceAlert, unique=(UniqueKey(("user_id", "product_id"), where={"is_active": True}),)
        )
        self.reviews = factory(models.Review, unique=("order_id",))
        self.payouts = factory(models.StorePayout)
        self.webhook_events = factory(models.WebhookEvent, unique=("event_id",))
