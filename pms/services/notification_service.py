"""Daily expiry digest for managers.

Delivery goes through a mailer object; the bundled `StubMailer` only records
messages, so the digest can be composed and "sent" without a mail server.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy import select
from sqlalchemy.orm import Session
from tenacity import RetryCallState, RetryError, Retrying, stop_after_attempt, wait_incrementing

from pms.config import settings
from pms.models import BatchStatus, Item, StockBatch, User
from pms.services.audit_service import log_audit
from pms.services.expiry_classifier import ALERT_HORIZON_DAYS, days_until_expiry, to_local_date, urgency_for
from pms.services.user_service import list_manager_recipients

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates'
DIGEST_STATUSES = (BatchStatus.ACTIVE, BatchStatus.EXPIRING_SOON, BatchStatus.EXPIRED)

_env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=select_autoescape(['html']))


@dataclass(frozen=True)
class DigestItem:
    sku: str
    name: str
    category: str | None
    quantity: int
    unit: str
    expiry_date: date
    days_until_expiry: int
    urgency: str
    urgency_label: str


@dataclass(frozen=True)
class DigestSummary:
    expired: int
    expiring_today: int
    expiring_soon: int
    total: int


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str
    sender: str


@dataclass
class DeliveryResult:
    success: bool
    attempts: int
    message_id: str | None = None
    error: str | None = None


@dataclass
class DigestRunResult:
    success: bool
    recipients: int = 0
    sent: int = 0
    failed: int = 0
    items: int = 0
    skipped_reason: str | None = None
    error: str | None = None
    deliveries: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> str: ...


class StubMailer:
    def __init__(self) -> None:
        self.outbox: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> str:
        self.outbox.append(message)
        message_id = f'stub-{uuid.uuid4().hex}'
        logger.info('Stub mail to %s: %s (%s)', message.to, message.subject, message_id)
        return message_id


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def collect_digest_items(db: Session, *, today: date) -> list[DigestItem]:
    horizon = today + timedelta(days=ALERT_HORIZON_DAYS)
    rows = db.execute(
        select(StockBatch, Item)
        .join(Item, Item.id == StockBatch.item_id)
        .where(
            StockBatch.quantity > 0,
            StockBatch.status.in_(DIGEST_STATUSES),
            StockBatch.expiry_date <= horizon,
        )
        .order_by(StockBatch.expiry_date.asc(), StockBatch.id.asc())
    ).all()

    items = []
    for batch, item in rows:
        days = days_until_expiry(today, batch.expiry_date)
        urgency, label = urgency_for(days)
        items.append(
            DigestItem(
                sku=item.sku,
                name=item.name,
                category=item.category,
                quantity=batch.quantity,
                unit=item.unit,
                expiry_date=batch.expiry_date,
                days_until_expiry=days,
                urgency=urgency,
                urgency_label=label,
            )
        )
    return items


def summarize(items: list[DigestItem]) -> DigestSummary:
    expired = sum(1 for item in items if item.urgency == 'expired')
    today = sum(1 for item in items if item.urgency == 'today')
    soon = sum(1 for item in items if item.urgency == 'soon')
    return DigestSummary(expired=expired, expiring_today=today, expiring_soon=soon, total=len(items))


def render_digest_html(*, manager_name: str, report_date: date, items: list[DigestItem], summary: DigestSummary) -> str:
    return _env.get_template('expiry_digest.html').render(
        manager_name=manager_name,
        report_date=report_date,
        items=items,
        summary=summary,
        dashboard_url=settings.dashboard_url,
    )


def render_digest_text(*, manager_name: str, report_date: date, items: list[DigestItem], summary: DigestSummary) -> str:
    lines = [
        f'Daily Expiry Alert - {report_date.isoformat()}',
        '',
        f'Hello {manager_name},',
        '',
        f'Expired: {summary.expired}  Expiring today: {summary.expiring_today}  Expiring soon: {summary.expiring_soon}',
        '',
    ]
    for item in items:
        lines.append(
            f'- [{item.urgency_label}] {item.name} ({item.sku}) - {item.quantity} {item.unit}, '
            f'expires {item.expiry_date.isoformat()}'
        )
    lines.extend(['', f'Dashboard: {settings.dashboard_url}'])
    return '\n'.join(lines)


def digest_subject(summary: DigestSummary, report_date: date) -> str:
    return f'[PMS] {summary.total} batches need attention - {report_date.strftime("%d %b %Y")}'


def send_with_retry(
    mailer: Mailer,
    message: EmailMessage,
    *,
    retries: int,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> DeliveryResult:
    def _log_failure(retry_state: RetryCallState) -> None:
        logger.warning(
            'Email to %s failed on attempt %d/%d: %s',
            message.to,
            retry_state.attempt_number,
            retries,
            retry_state.outcome.exception(),
        )

    retrying = Retrying(
        stop=stop_after_attempt(retries),
        wait=wait_incrementing(start=delay_seconds, increment=delay_seconds),
        sleep=sleep,
        before_sleep=_log_failure,
        reraise=False,
    )
    try:
        for attempt in retrying:
            with attempt:
                message_id = mailer.send(message)
    except RetryError as exc:
        last_attempt = exc.last_attempt
        logger.error('All %d attempts to email %s failed', last_attempt.attempt_number, message.to)
        return DeliveryResult(
            success=False,
            attempts=last_attempt.attempt_number,
            error=str(last_attempt.exception()),
        )
    return DeliveryResult(success=True, attempts=attempt.retry_state.attempt_number, message_id=message_id)


def send_expiry_digest(
    db: Session,
    *,
    mailer: Mailer,
    now: datetime | None = None,
    tz: tzinfo | None = None,
    recipients: list[User] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DigestRunResult:
    today = to_local_date(now or _now(), tz or settings.tz)
    try:
        managers = recipients if recipients is not None else list_manager_recipients(db)
        items = collect_digest_items(db, today=today)
    except Exception as exc:
        logger.exception('Expiry digest failed')
        db.rollback()
        return DigestRunResult(success=False, error=str(exc))

    result = DigestRunResult(success=True, recipients=len(managers), items=len(items))
    if not managers:
        result.skipped_reason = 'No manager recipients'
        logger.info('Expiry digest skipped: no manager recipients')
        return result
    if not items:
        result.skipped_reason = 'No expiring items'
        logger.info('Expiry digest skipped: no expiring items')
        return result

    summary = summarize(items)
    for manager in managers:
        message = EmailMessage(
            to=manager.email,
            subject=digest_subject(summary, today),
            html=render_digest_html(manager_name=manager.name, report_date=today, items=items, summary=summary),
            text=render_digest_text(manager_name=manager.name, report_date=today, items=items, summary=summary),
            sender=settings.email_from,
        )
        delivery = send_with_retry(
            mailer,
            message,
            retries=settings.email_max_retries,
            delay_seconds=settings.email_retry_delay_seconds,
            sleep=sleep,
        )
        if delivery.success:
            result.sent += 1
        else:
            result.failed += 1
        result.deliveries.append({'email': manager.email, **asdict(delivery)})
        log_audit(
            db,
            actor_user_id=None,
            action='EXPIRY_DIGEST_STUB_SENT' if delivery.success else 'EXPIRY_DIGEST_FAILED',
            entity_type='users',
            entity_id=manager.id,
            ip=None,
            new_values={
                'email': manager.email,
                'items': summary.total,
                'expired': summary.expired,
                'expiring_today': summary.expiring_today,
                'expiring_soon': summary.expiring_soon,
                'attempts': delivery.attempts,
            },
        )

    logger.info('Expiry digest finished: sent=%d failed=%d items=%d', result.sent, result.failed, result.items)
    return result
