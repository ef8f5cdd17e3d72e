"""Knowledge store and caller identity lookups backed by SQLAlchemy."""

from __future__ import annotations

import asyncio
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from app.core.db import get_db
from app.core.logging import get_logger
from app.core.settings import get_settings
from app.models.knowledge import (
    CustomerRecord,
    OrderRecord,
    StockQuery,
    StockRecord,
    StoreRecord,
)
from app.models.schema import Customer, Order, StockItem, Store

logger = get_logger(__name__)

_STOCK_COLUMNS = {
    "record_title": StockItem.record_title,
    "artist": StockItem.artist,
    "genre": StockItem.genre,
}


class KnowledgeStore(Protocol):
    async def query_stock(self, query: StockQuery) -> list[StockRecord]: ...

    async def get_customer_orders(
        self, customer_id: int
    ) -> tuple[list[OrderRecord], list[StockRecord]]: ...

    async def list_stores(self) -> list[StoreRecord]: ...


class CallerIdentityLookup(Protocol):
    async def lookup_caller(self, phone_number: str) -> CustomerRecord | None: ...


class SqlKnowledgeStore:
    """Implements both lookups over the shop's relational tables.

    ORM work is synchronous, so every public method hops to a worker thread.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        *,
        max_stock_results: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        if max_stock_results is None:
            max_stock_results = get_settings().voice_max_stock_results
        self._max_stock_results = max(1, int(max_stock_results))

    async def query_stock(self, query: StockQuery) -> list[StockRecord]:
        """Return stock matching ANY populated field of ``query``.

        With no populated field the unfiltered listing is returned, bounded
        like every other result set.
        """

        return await asyncio.to_thread(self._query_stock, query)

    async def lookup_caller(self, phone_number: str) -> CustomerRecord | None:
        return await asyncio.to_thread(self._lookup_caller, phone_number)

    async def get_customer_orders(
        self, customer_id: int
    ) -> tuple[list[OrderRecord], list[StockRecord]]:
        return await asyncio.to_thread(self._get_customer_orders, customer_id)

    async def list_stores(self) -> list[StoreRecord]:
        return await asyncio.to_thread(self._list_stores)

    def _query_stock(self, query: StockQuery) -> list[StockRecord]:
        filters = query.populated_fields()
        statement = select(StockItem).order_by(StockItem.id).limit(self._max_stock_results)
        if filters:
            statement = statement.where(
                or_(*(_STOCK_COLUMNS[name] == value for name, value in filters.items()))
            )

        with get_db(self._session_factory) as db:
            rows = db.execute(statement).scalars().all()
            records = [StockRecord.model_validate(row) for row in rows]

        logger.info(
            "Stock query completed",
            extra={
                "component": "knowledge_store",
                "operation": "query_stock",
                "context_data": {"filters": filters, "results": len(records)},
            },
        )
        return records

    def _lookup_caller(self, phone_number: str) -> CustomerRecord | None:
        statement = select(Customer).where(Customer.phone_number == phone_number).limit(1)
        with get_db(self._session_factory) as db:
            row = db.execute(statement).scalars().first()
            return CustomerRecord.model_validate(row) if row is not None else None

    def _get_customer_orders(
        self, customer_id: int
    ) -> tuple[list[OrderRecord], list[StockRecord]]:
        with get_db(self._session_factory) as db:
            orders = _load_orders(db, customer_id)
            item_ids = sorted({order.stock_item_id for order in orders})
            stock_rows = (
                db.execute(select(StockItem).where(StockItem.id.in_(item_ids)).order_by(StockItem.id))
                .scalars()
                .all()
                if item_ids
                else []
            )
            stock = [StockRecord.model_validate(row) for row in stock_rows]
        return orders, stock

    def _list_stores(self) -> list[StoreRecord]:
        with get_db(self._session_factory) as db:
            rows = db.execute(select(Store).order_by(Store.id)).scalars().all()
            return [StoreRecord.model_validate(row) for row in rows]


def _load_orders(db: Session, customer_id: int) -> list[OrderRecord]:
    rows = (
        db.execute(select(Order).where(Order.customer_id == customer_id).order_by(Order.id))
        .scalars()
        .all()
    )
    return [OrderRecord.model_validate(row) for row in rows]
