import asyncio
import enum
import logging
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from models.emailOutbox import EmailOutbox, EmailStatusEnum
from utils import utc_now

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "emails"


class DeliveryStatus(str, enum.Enum):
    delivered = "delivered"
    queued = "queued"
    failed = "failed"


class NotificationDispatcher:
    """Three-tier email delivery.

    1. Channels in order (SMTP, then the HTTP relay), each retried
       ``attempts`` times with a linear back-off.
    2. When every channel fails, the message is stored in the outbox as
       pending for ``reprocess_pending``.
    3. When even that fails the message is reported as failed.

    Messages are deduplicated on ``(recipient, idempotency_key)``.
    """

    def __init__(self, session_factory, channels, attempts=3, retry_delay=2.0, max_queue_attempts=5):
        self._session_factory = session_factory
        self.channels = list(channels)
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.max_queue_attempts = max_queue_attempts

    @property
    def configured(self):
        return any(channel.configured for channel in self.channels)

    async def send(self, recipient, subject, body, idempotency_key) -> DeliveryStatus:
        existing = await self._find(recipient, idempotency_key)
        if existing is not None:
            if existing.status == EmailStatusEnum.sent:
                logger.info("Skipping duplicate email %s to %s", idempotency_key, recipient)
                return DeliveryStatus.delivered
            if existing.status == EmailStatusEnum.pending:
                return DeliveryStatus.queued

        error = await self._deliver(recipient, subject, body)
        if error is None:
            try:
                await self._record(existing, recipient, subject, body, idempotency_key, EmailStatusEnum.sent)
            except Exception:
                logger.exception("Email %s to %s was sent but could not be recorded", idempotency_key, recipient)
            return DeliveryStatus.delivered

        try:
            await self._record(existing, recipient, subject, body, idempotency_key, EmailStatusEnum.pending, error)
        except Exception:
            logger.exception("Could not queue email %s to %s", idempotency_key, recipient)
            return DeliveryStatus.failed
        logger.warning("Queued email %s to %s for retry: %s", idempotency_key, recipient, error)
        return DeliveryStatus.queued

    async def reprocess_pending(self, limit=50) -> dict:
        """Retry queued emails. Returns how many ended sent, pending and failed."""
        counts = {"sent": 0, "pending": 0, "failed": 0}
        if self._session_factory is None:
            return counts

        async with self._session_factory() as db:
            result = await db.execute(
                select(EmailOutbox)
                .where(EmailOutbox.status == EmailStatusEnum.pending)
                .order_by(EmailOutbox.created_at)
                .limit(limit)
            )
            queued = result.scalars().all()

        for message in queued:
            error = await self._deliver(message.recipient, message.subject, message.body)
            attempts = message.attempts + 1
            if error is None:
                status = EmailStatusEnum.sent
            elif attempts >= self.max_queue_attempts:
                status = EmailStatusEnum.failed
                logger.error("Giving up on email %s to %s after %s attempts: %s",
                             message.idempotency_key, message.recipient, attempts, error)
            else:
                status = EmailStatusEnum.pending

            async with self._session_factory() as db:
                async with db.begin():
                    await db.execute(
                        update(EmailOutbox)
                        .where(EmailOutbox.id == message.id)
                        .values(
                            status=status,
                            attempts=attempts,
                            last_error=error,
                            sent_at=utc_now() if error is None else None,
                        )
                    )
            counts[status.value] += 1
        return counts

    async def _deliver(self, recipient, subject, body):
        """Try every channel. Returns None on delivery, else the last error."""
        last_error = "No email channel configured"
        for channel in self.channels:
            if not channel.configured:
                continue
            for attempt in range(1, self.attempts + 1):
                try:
                    await channel.send(recipient, subject, body)
                    logger.info("Email sent to %s via %s", recipient, channel.name)
                    return None
                except Exception as e:
                    last_error = f"{channel.name}: {e}"
                    logger.warning("Attempt %s/%s via %s to %s failed: %s",
                                   attempt, self.attempts, channel.name, recipient, e)
                    if attempt < self.attempts and self.retry_delay:
                        await asyncio.sleep(self.retry_delay * attempt)
        return last_error

    async def _find(self, recipient, idempotency_key):
        if self._session_factory is None:
            return None
        async with self._session_factory() as db:
            result = await db.execute(
                select(EmailOutbox).where(
                    EmailOutbox.recipient == recipient,
                    EmailOutbox.idempotency_key == idempotency_key,
                )
            )
            return result.scalars().first()

    async def _record(self, existing, recipient, subject, body, idempotency_key, status, error=None):
        if self._session_factory is None:
            raise RuntimeError("No store configured for the email outbox")
        sent_at = utc_now() if status == EmailStatusEnum.sent else None
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    if existing is not None:
                        await db.execute(
                            update(EmailOutbox)
                            .where(EmailOutbox.id == existing.id)
                            .values(status=status, attempts=existing.attempts + 1, last_error=error, sent_at=sent_at)
                        )
                    else:
                        db.add(EmailOutbox(
                            recipient=recipient,
                            subject=subject,
                            body=body,
                            idempotency_key=idempotency_key,
                            status=status,
                            attempts=1,
                            last_error=error,
                            sent_at=sent_at,
                        ))
        except IntegrityError:
            logger.info("Email %s to %s was recorded concurrently", idempotency_key, recipient)


class ConversionNotifier:
    """Renders the affiliate and admin emails and hands them to the dispatcher."""

    def __init__(self, dispatcher, admin_emails, site_url, commission_rate, min_payout_amount,
                 templates_dir=TEMPLATES_DIR):
        self.dispatcher = dispatcher
        self.admin_emails = list(admin_emails)
        self.site_url = site_url.rstrip("/")
        self.commission_percent = int(commission_rate * 100)
        self.min_payout_amount = min_payout_amount
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html"]),
        )

    def render(self, template_name, **context):
        context.setdefault("site_url", self.site_url)
        context.setdefault("commission_percent", self.commission_percent)
        return self._env.get_template(template_name).render(**context)

    async def send_conversion_emails(self, conversion_id, affiliate, purchase_amount, commission_amount,
                                     package_name=None):
        package_name = package_name or "Safari Package"
        context = {
            "affiliate": affiliate,
            "package_name": package_name,
            "purchase": f"{purchase_amount:.2f}",
            "commission": f"{commission_amount:.2f}",
            "time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }
        results = {}
        if affiliate.get("email"):
            results[affiliate["email"]] = await self.dispatcher.send(
                affiliate["email"],
                "New Commission Earned - KenyaOnABudget Safaris",
                self.render("conversion_affiliate.html", **context),
                f"conversion:{conversion_id}:affiliate",
            )

        admin_html = self.render("conversion_admin.html", **context)
        for admin_email in self.admin_emails:
            results[admin_email] = await self.dispatcher.send(
                admin_email,
                "New Affiliate Conversion - KenyaOnABudget Safaris",
                admin_html,
                f"conversion:{conversion_id}:admin",
            )
        return results

    async def send_welcome_emails(self, user_id, affiliate, password=None):
        results = {}
        results[affiliate["email"]] = await self.dispatcher.send(
            affiliate["email"],
            "Welcome to KenyaOnABudget Affiliate Program!",
            self.render(
                "welcome_affiliate.html",
                affiliate=affiliate,
                password=password,
                min_payout_amount=self.min_payout_amount,
            ),
            f"welcome:{user_id}:affiliate",
        )

        admin_html = self.render(
            "welcome_admin.html",
            affiliate=affiliate,
            time=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
        for admin_email in self.admin_emails:
            results[admin_email] = await self.dispatcher.send(
                admin_email,
                "New Affiliate Registration - KenyaOnABudget Safaris",
                admin_html,
                f"welcome:{user_id}:admin",
            )
        return results
