from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

from conftest import RecordingChannel
from models.emailOutbox import EmailOutbox, EmailStatusEnum
from services.notification_service import ConversionNotifier, DeliveryStatus, NotificationDispatcher
from utils import utc_now


async def outbox_rows(session_factory):
    async with session_factory() as db:
        return (await db.execute(select(EmailOutbox))).scalars().all()


def make_dispatcher(session_factory, *channels, max_queue_attempts=5):
    return NotificationDispatcher(session_factory, channels, attempts=2, retry_delay=0,
                                  max_queue_attempts=max_queue_attempts)


async def test_primary_channel_delivers_and_records_the_message(session_factory):
    primary, secondary = RecordingChannel("smtp"), RecordingChannel("relay")
    dispatcher = make_dispatcher(session_factory, primary, secondary)

    status = await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "welcome:1:affiliate")

    assert status == DeliveryStatus.delivered
    assert primary.recipients() == ["jane@example.com"]
    assert secondary.calls == 0
    [row] = await outbox_rows(session_factory)
    assert row.status == EmailStatusEnum.sent
    assert row.sent_at is not None


async def test_falls_back_to_the_secondary_channel_after_retries(session_factory):
    primary, secondary = RecordingChannel("smtp", fail=True), RecordingChannel("relay")
    dispatcher = make_dispatcher(session_factory, primary, secondary)

    status = await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "k1")

    assert status == DeliveryStatus.delivered
    assert primary.calls == 2
    assert secondary.recipients() == ["jane@example.com"]


async def test_unconfigured_channels_are_skipped(session_factory):
    primary = RecordingChannel("smtp", configured=False)
    secondary = RecordingChannel("relay")
    dispatcher = make_dispatcher(session_factory, primary, secondary)

    assert await dispatcher.send("a@example.com", "s", "b", "k") == DeliveryStatus.delivered
    assert primary.calls == 0


async def test_queues_when_every_channel_fails(session_factory):
    dispatcher = make_dispatcher(session_factory, RecordingChannel("smtp", fail=True),
                                 RecordingChannel("relay", fail=True))

    status = await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "conversion:9:affiliate")

    assert status == DeliveryStatus.queued
    [row] = await outbox_rows(session_factory)
    assert row.status == EmailStatusEnum.pending
    assert row.attempts == 1
    assert "relay is down" in row.last_error


async def test_reports_failed_when_the_queue_is_unavailable():
    dispatcher = NotificationDispatcher(None, [RecordingChannel("smtp", fail=True)], attempts=1, retry_delay=0)

    assert await dispatcher.send("jane@example.com", "s", "b", "k") == DeliveryStatus.failed


async def test_duplicate_idempotency_key_is_not_sent_twice(session_factory):
    channel = RecordingChannel("smtp")
    dispatcher = make_dispatcher(session_factory, channel)

    first = await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "conversion:1:affiliate")
    second = await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "conversion:1:affiliate")
    other_recipient = await dispatcher.send("boss@example.com", "Hello", "<p>hi</p>", "conversion:1:affiliate")

    assert (first, second, other_recipient) == (DeliveryStatus.delivered,) * 3
    assert channel.recipients() == ["jane@example.com", "boss@example.com"]


async def test_queued_message_is_not_resent_inline(session_factory):
    channel = RecordingChannel("smtp", fail=True)
    dispatcher = make_dispatcher(session_factory, channel)
    await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "k")
    calls = channel.calls

    assert await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "k") == DeliveryStatus.queued
    assert channel.calls == calls


async def test_reprocess_sends_queued_messages(session_factory):
    channel = RecordingChannel("smtp", fail=True)
    dispatcher = make_dispatcher(session_factory, channel)
    await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "k")

    channel.fail = False
    counts = await dispatcher.reprocess_pending()

    assert counts == {"sent": 1, "pending": 0, "failed": 0}
    assert channel.recipients() == ["jane@example.com"]
    [row] = await outbox_rows(session_factory)
    assert row.status == EmailStatusEnum.sent
    assert row.attempts == 2


async def test_reprocess_gives_up_after_max_attempts(session_factory):
    channel = RecordingChannel("smtp", fail=True)
    dispatcher = make_dispatcher(session_factory, channel, max_queue_attempts=3)
    await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "k")

    assert await dispatcher.reprocess_pending() == {"sent": 0, "pending": 1, "failed": 0}
    assert await dispatcher.reprocess_pending() == {"sent": 0, "pending": 0, "failed": 1}
    assert await dispatcher.reprocess_pending() == {"sent": 0, "pending": 0, "failed": 0}
    [row] = await outbox_rows(session_factory)
    assert row.status == EmailStatusEnum.failed
    assert row.attempts == 3


async def test_conversion_emails_go_to_affiliate_and_every_admin(session_factory):
    channel = RecordingChannel("smtp")
    notifier = ConversionNotifier(make_dispatcher(session_factory, channel), ["a1@example.com", "a2@example.com"],
                                  "https://example.com/", Decimal("0.10"), Decimal("50"))

    results = await notifier.send_conversion_emails(
        "c-1", {"name": "Jane", "email": "jane@example.com"}, Decimal("200.00"), Decimal("20.00"), "Amboseli 2 Days")

    assert set(results) == {"jane@example.com", "a1@example.com", "a2@example.com"}
    assert set(results.values()) == {DeliveryStatus.delivered}
    affiliate_mail = channel.sent[0]
    assert affiliate_mail.subject == "New Commission Earned - KenyaOnABudget Safaris"
    assert "Amboseli 2 Days" in affiliate_mail.html
    assert "&pound;200.00" in affiliate_mail.html
    assert "Your Commission (10%):</strong> &pound;20.00" in affiliate_mail.html
    assert "https://example.com/affiliate-dashboard.html" in affiliate_mail.html
    admin_mail = channel.sent[1]
    assert admin_mail.subject == "New Affiliate Conversion - KenyaOnABudget Safaris"
    assert "Jane (jane@example.com)" in admin_mail.html


async def test_welcome_email_includes_login_details_only_with_a_password(session_factory):
    channel = RecordingChannel("smtp")
    notifier = ConversionNotifier(make_dispatcher(session_factory, channel), [], "https://example.com",
                                  Decimal("0.10"), Decimal("50"))
    affiliate = {"name": "Jane", "email": "jane@example.com", "phone": "", "website": ""}

    await notifier.send_welcome_emails("u1", affiliate, password="s3cret")
    await notifier.send_welcome_emails("u2", dict(affiliate, email="joe@example.com"))

    with_password, without_password = channel.sent
    assert "s3cret" in with_password.html
    assert "Your login details" not in without_password.html
    assert "&pound;50" in without_password.html


async def test_rendering_escapes_affiliate_supplied_text(session_factory):
    channel = RecordingChannel("smtp")
    notifier = ConversionNotifier(make_dispatcher(session_factory, channel), ["admin@example.com"],
                                  "https://example.com", Decimal("0.10"), Decimal("50"))

    await notifier.send_welcome_emails(
        "u1", {"name": "<script>x</script>", "email": "jane@example.com", "phone": "", "website": ""})

    assert all("<script>" not in message.html for message in channel.sent)
    assert "Not provided" in channel.sent[1].html


async def test_sent_at_uses_one_clock_for_inline_and_requeued_delivery(session_factory):
    channel = RecordingChannel("smtp")
    dispatcher = make_dispatcher(session_factory, channel)
    await dispatcher.send("jane@example.com", "Hello", "<p>hi</p>", "inline")
    channel.fail = True
    await dispatcher.send("joe@example.com", "Hello", "<p>hi</p>", "queued")
    channel.fail = False
    await dispatcher.reprocess_pending()

    now = utc_now()
    sent = {row.idempotency_key: row.sent_at for row in await outbox_rows(session_factory)}
    assert set(sent) == {"inline", "queued"}
    assert all(timedelta(0) <= now - sent_at < timedelta(minutes=1) for sent_at in sent.values())
    assert sent["inline"] <= sent["queued"]
