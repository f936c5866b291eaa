import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from models.stats import (
    DailyStats,
    DeviceStats,
    SourceStats,
    AffiliateStats,
    LinkPerformance,
    MonthlyEarnings,
)
from utils import month_start

logger = logging.getLogger(__name__)

# Stores with INSERT ... ON CONFLICT DO UPDATE
UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

UNKNOWN_DEVICE = "unknown"
DIRECT_SOURCE = "direct"


class StatsAggregator:
    """Fans click and conversion events out into the denormalized counters.

    Every bucket is written in its own transaction. A failing bucket is
    logged and skipped so the others, and the caller's primary write, are
    unaffected. Both ``record_*`` methods return the names of the buckets
    that failed.
    """

    def __init__(self, session_factory, today=date.today):
        self._session_factory = session_factory
        self._today = today

    async def record_click(self, affiliate_id, link_id, device_type=None, source=None):
        day = self._today()
        writes = [
            ("daily stats", self._increment_row, DailyStats,
             {"affiliate_id": affiliate_id, "date": day}, {"clicks": 1}, None),
            ("device stats", self._merge_increment, DeviceStats,
             {"affiliate_id": affiliate_id, "date": day, "device": device_type or UNKNOWN_DEVICE},
             {"clicks": 1}, None),
            ("source stats", self._merge_increment, SourceStats,
             {"affiliate_id": affiliate_id, "date": day, "source": source or DIRECT_SOURCE},
             {"clicks": 1}, None),
            ("affiliate stats", self._merge_increment, AffiliateStats,
             {"user_id": affiliate_id, "date": day}, {"impressions": 1, "clicks": 1}, None),
            ("link performance", self._merge_increment, LinkPerformance,
             {"link_id": link_id, "date": day}, {"clicks": 1}, {"affiliate_id": affiliate_id}),
        ]
        return await self._apply(writes)

    async def record_conversion(self, affiliate_id, link_id, purchase_amount, commission_amount):
        day = self._today()
        logger.debug(
            "Recording conversion stats for affiliate %s link %s: purchase %s, commission %s",
            affiliate_id, link_id, purchase_amount, commission_amount,
        )
        writes = [
            ("daily stats", self._increment_row, DailyStats,
             {"affiliate_id": affiliate_id, "date": day},
             {"conversions": 1, "earnings": commission_amount}, None),
            ("monthly earnings", self._merge_increment, MonthlyEarnings,
             {"user_id": affiliate_id, "month": month_start(day)},
             {"amount": commission_amount, "count": 1}, None),
            ("affiliate stats", self._merge_increment, AffiliateStats,
             {"user_id": affiliate_id, "date": day},
             {"conversions": 1, "earnings": commission_amount}, None),
            ("link performance", self._merge_increment, LinkPerformance,
             {"link_id": link_id, "date": day},
             {"conversions": 1, "earnings": commission_amount}, {"affiliate_id": affiliate_id}),
        ]
        return await self._apply(writes)

    async def _apply(self, writes):
        failed = []
        for bucket, write, model, keys, increments, extra in writes:
            try:
                await write(model, keys, increments, extra)
            except Exception:
                logger.exception("Error updating %s for %s", bucket, keys)
                failed.append(bucket)
        return failed

    async def _increment_row(self, model, keys, increments, extra=None):
        """Read the bucket row inside a transaction, then create or increment it.

        The row is locked where the store supports SELECT ... FOR UPDATE.
        Two events racing to create the same bucket hit the unique key; the
        loser retries once and lands on the increment branch.
        """
        for attempt in range(2):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        query = select(model.id).filter_by(**keys).with_for_update()
                        row_id = (await db.execute(query)).scalar()
                        if row_id is None:
                            db.add(model(**keys, **(extra or {}), **increments))
                        else:
                            await db.execute(
                                update(model)
                                .where(model.id == row_id)
                                .values({col: getattr(model, col) + delta for col, delta in increments.items()})
                            )
                return
            except IntegrityError:
                if attempt:
                    raise
                logger.info("Lost the race creating %s %s, retrying as an increment", model.__tablename__, keys)

    async def _merge_increment(self, model, keys, increments, extra=None):
        """Create the row with the deltas, or add the deltas to the existing row."""
        async with self._session_factory() as db:
            insert = UPSERT_INSERTS.get(db.get_bind().dialect.name)
            if insert is not None:
                stmt = insert(model).values(**keys, **(extra or {}), **increments)
                stmt = stmt.on_conflict_do_update(
                    index_elements=list(keys),
                    set_={col: getattr(model, col) + getattr(stmt.excluded, col) for col in increments},
                )
                async with db.begin():
                    await db.execute(stmt)
                return

        await self._increment_row(model, keys, increments, extra)
