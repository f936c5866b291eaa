import logging
import uuid
from functools import partial

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from config.settings import COMMISSION_RATE, DEFAULT_CURRENCY
from errors import NotFound, DependencyUnavailable
from models.affiliateLinks import ReferralLinks
from models.affiliateClicks import Clicks
from models.affiliates import Affiliates
from models.conversions import Conversions, ConversionStatusEnum
from utils import calculate_commission, to_money, utc_now

logger = logging.getLogger(__name__)


class TrackingService:
    """Records clicks and conversions and fans them out to the counters.

    The click or conversion row is the primary write: when it fails the
    whole request fails. A conversion claims its originating click in the
    same transaction. Everything after it (link counters, balance,
    statistics, emails) runs as independent steps whose failures are
    logged and never undo the primary row.

    Conversions are not idempotent. The same purchase submitted twice is
    recorded and credited twice.
    """

    def __init__(self, session_factory, stats, ledger, notifier=None, commission_rate=COMMISSION_RATE):
        self._session_factory = session_factory
        self.stats = stats
        self.ledger = ledger
        self.notifier = notifier
        self.commission_rate = commission_rate

    def _session(self):
        if self._session_factory is None:
            raise DependencyUnavailable("Database not initialized")
        return self._session_factory()

    async def _find_link(self, db, ref_code):
        result = await db.execute(select(ReferralLinks).where(ReferralLinks.ref_code == ref_code))
        link = result.scalars().first()
        if not link:
            raise NotFound("Referral link not found")
        return link

    async def record_click(self, click) -> uuid.UUID:
        async with self._session() as db:
            async with db.begin():
                link = await self._find_link(db, click.ref_code)

                await db.execute(
                    update(ReferralLinks)
                    .where(ReferralLinks.id == link.id)
                    .values(clicks=ReferralLinks.clicks + 1)
                )

                new_click = Clicks(
                    affiliate_id=link.affiliate_id,
                    link_id=link.id,
                    ref_code=click.ref_code,
                    url=click.url,
                    path=click.path,
                    user_agent=click.user_agent,
                    device_type=click.device_type,
                    source=click.source,
                    converted=False,
                )
                db.add(new_click)

        failed = await self.stats.record_click(link.affiliate_id, link.id, click.device_type, click.source)
        if failed:
            logger.warning("Click %s recorded, but these counters lag behind: %s", new_click.id, ", ".join(failed))
        return new_click.id

    async def record_conversion(self, conversion) -> uuid.UUID:
        async with self._session() as db:
            async with db.begin():
                link = await self._find_link(db, conversion.affiliate_code)

                purchase_amount = to_money(conversion.purchase_amount)
                commission_amount = calculate_commission(conversion.purchase_amount, self.commission_rate)

                click_id = await self._claim_click(
                    db, conversion.click_id, link.affiliate_id, purchase_amount, commission_amount)

                record = Conversions(
                    affiliate_id=link.affiliate_id,
                    link_id=link.id,
                    ref_code=conversion.affiliate_code,
                    purchase_amount=purchase_amount,
                    commission_amount=commission_amount,
                    package_id=conversion.package_id or "",
                    package_name=conversion.package_name or "Unknown Package",
                    booking_id=conversion.booking_id or "",
                    session_id=conversion.session_id or "",
                    status=ConversionStatusEnum.pending,
                    currency=conversion.currency or DEFAULT_CURRENCY,
                    customer_email=conversion.customer_email or None,
                    customer_name=conversion.customer_name or "",
                    click_id=click_id,
                )
                db.add(record)

        steps = [
            ("link counters", partial(self._increment_link, link.id, commission_amount)),
            ("balance", partial(
                self.ledger.credit, link.affiliate_id, commission_amount,
                package_name=conversion.package_name, conversion_id=record.id)),
            ("statistics", partial(
                self._update_statistics, link.affiliate_id, link.id, purchase_amount, commission_amount)),
            ("notifications", partial(
                self._notify, record.id, link.affiliate_id, purchase_amount, commission_amount,
                conversion.package_name)),
        ]
        failed = await self._run_steps(record.id, steps)
        if failed:
            logger.warning("Conversion %s recorded, but these steps failed: %s", record.id, ", ".join(failed))
        return record.id

    async def _run_steps(self, conversion_id, steps):
        failed = []
        for name, step in steps:
            try:
                await step()
            except Exception:
                logger.exception("Conversion %s: %s step failed", conversion_id, name)
                failed.append(name)
        return failed

    async def _claim_click(self, db, click_id, affiliate_id, purchase_amount, commission_amount):
        """Mark the originating click converted inside the conversion's transaction.

        Returns the click id to store on the conversion, or None when the id
        is malformed, unknown, already converted or belongs to another
        affiliate. None of those fail the conversion.
        """
        if not click_id:
            return None
        try:
            click_uuid = uuid.UUID(str(click_id))
        except ValueError:
            logger.warning("Ignoring malformed click id %r", click_id)
            return None

        try:
            async with db.begin_nested():
                result = await db.execute(
                    update(Clicks)
                    .where(
                        Clicks.id == click_uuid,
                        Clicks.affiliate_id == affiliate_id,
                        Clicks.converted.is_(False),
                    )
                    .values(
                        converted=True,
                        conversion_timestamp=utc_now(),
                        purchase_amount=purchase_amount,
                        commission_amount=commission_amount,
                    )
                )
        except SQLAlchemyError:
            logger.exception("Could not mark click %s converted", click_id)
            return None

        if result.rowcount == 0:
            logger.warning("Click %s not found, already converted or not from affiliate %s", click_id, affiliate_id)
            return None
        return click_uuid

    async def _increment_link(self, link_id, commission_amount):
        async with self._session() as db:
            async with db.begin():
                await db.execute(
                    update(ReferralLinks)
                    .where(ReferralLinks.id == link_id)
                    .values(
                        conversions=ReferralLinks.conversions + 1,
                        earnings=ReferralLinks.earnings + commission_amount,
                    )
                )

    async def _update_statistics(self, affiliate_id, link_id, purchase_amount, commission_amount):
        failed = await self.stats.record_conversion(affiliate_id, link_id, purchase_amount, commission_amount)
        if failed:
            raise RuntimeError(f"counters not updated: {', '.join(failed)}")

    async def _notify(self, conversion_id, affiliate_id, purchase_amount, commission_amount, package_name):
        if self.notifier is None:
            return
        async with self._session() as db:
            affiliate = await db.get(Affiliates, affiliate_id)
        if not affiliate:
            logger.error("Affiliate %s not found for sending emails", affiliate_id)
            return
        await self.notifier.send_conversion_emails(
            conversion_id,
            {"name": affiliate.name, "email": affiliate.email},
            purchase_amount,
            commission_amount,
            package_name,
        )
