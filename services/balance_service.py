import logging
import secrets
from decimal import Decimal

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from models.balances import Balances
from models.affiliateEarnings import EarningsTransactions

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def generate_reference_id() -> str:
    return "COMM-" + secrets.token_hex(3).upper()


def open_account(db, user_id):
    """Add the zeroed balance row for a new affiliate to ``db``'s transaction."""
    balance = Balances(user_id=user_id, available=ZERO, pending=ZERO, paid=ZERO)
    db.add(balance)
    return balance


async def get_balance(db, user_id) -> dict:
    result = await db.execute(select(Balances).where(Balances.user_id == user_id))
    balance = result.scalars().first()
    if not balance:
        return {"available": ZERO, "pending": ZERO, "paid": ZERO, "updatedAt": None}
    return {
        "available": balance.available,
        "pending": balance.pending,
        "paid": balance.paid,
        "updatedAt": balance.updated_at,
    }


class BalanceLedger:
    """Credits commissions to the pending bucket and appends the earnings log.

    Only ever adds to ``pending``. Moving money to ``available`` or ``paid``
    belongs to the approval and payout workflow.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def credit(self, affiliate_id, amount, package_name=None, conversion_id=None):
        for attempt in range(2):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        await self._add_pending(db, affiliate_id, amount)
                        transaction = EarningsTransactions(
                            user_id=affiliate_id,
                            amount=amount,
                            status="pending",
                            source="Referral",
                            description="Commission on booking",
                            package_name=package_name or "Safari Package",
                            reference_id=generate_reference_id(),
                            conversion_id=conversion_id,
                        )
                        db.add(transaction)
                logger.info("Credited %s pending to affiliate %s (%s)", amount, affiliate_id, transaction.reference_id)
                return transaction
            except IntegrityError:
                # another credit created the balance row first
                if attempt:
                    raise
                logger.info("Balance row for %s appeared concurrently, retrying credit", affiliate_id)

    async def _add_pending(self, db, affiliate_id, amount):
        result = await db.execute(
            update(Balances)
            .where(Balances.user_id == affiliate_id)
            .values(pending=Balances.pending + amount, updated_at=func.now())
        )
        if result.rowcount == 0:
            db.add(Balances(user_id=affiliate_id, available=ZERO, pending=amount, paid=ZERO))
            await db.flush()
