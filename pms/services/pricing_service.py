from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from pms.config import settings
from pms.models import BatchStatus, DiscountSuggestion, Item, StockBatch, SuggestionStatus
from pms.services.discount_suggestion_service import has_pending_suggestion, transition_suggestion
from pms.services.expiry_classifier import (
    days_until_expiry,
    discount_tier_for,
    estimated_revenue,
    profit_margin,
    to_local_date,
)

logger = logging.getLogger(__name__)

ELIGIBLE_STATUSES = (BatchStatus.ACTIVE, BatchStatus.EXPIRING_SOON)


@dataclass
class PricingRunStats:
    total_batches_analyzed: int = 0
    suggestions_created: int = 0
    skipped_already_discounted: int = 0
    skipped_pending_suggestion: int = 0
    skipped_no_discount: int = 0
    skipped_expired: int = 0
    suggestions_expired: int = 0
    total_estimated_revenue: Decimal = Decimal('0.00')
    errors: int = 0


@dataclass(frozen=True)
class CreatedSuggestion:
    suggestion_id: int
    batch_id: int
    sku: str
    name: str
    quantity: int
    base_price: Decimal
    days_until_expiry: int
    suggested_discount: int
    estimated_revenue: Decimal
    profit_margin: Decimal


@dataclass
class PricingRunResult:
    success: bool
    stats: PricingRunStats
    suggestions: list[CreatedSuggestion] = field(default_factory=list)
    duration_seconds: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def expire_stale_suggestions(db: Session, *, today: date, now: datetime) -> int:
    rows = db.execute(
        select(DiscountSuggestion, StockBatch)
        .join(StockBatch, StockBatch.id == DiscountSuggestion.batch_id)
        .where(DiscountSuggestion.status == SuggestionStatus.PENDING)
    ).all()

    expired = 0
    for suggestion, batch in rows:
        stale = (
            batch.quantity <= 0
            or batch.status in (BatchStatus.EXPIRED, BatchStatus.DEPLETED)
            or days_until_expiry(today, batch.expiry_date) < 0
        )
        if stale:
            transition_suggestion(suggestion, SuggestionStatus.EXPIRED, now=now)
            expired += 1
    if expired:
        db.flush()
    return expired


def _suggest_for_batch(
    db: Session,
    batch: StockBatch,
    item: Item,
    *,
    today: date,
    now: datetime,
    stats: PricingRunStats,
) -> CreatedSuggestion | None:
    days = days_until_expiry(today, batch.expiry_date)
    if days < 0:
        stats.skipped_expired += 1
        return None

    discount = discount_tier_for(days)
    if discount == 0:
        stats.skipped_no_discount += 1
        return None

    if has_pending_suggestion(db, batch.id):
        stats.skipped_pending_suggestion += 1
        return None

    revenue = estimated_revenue(batch.quantity, item.base_price, discount)
    suggestion = DiscountSuggestion(
        batch_id=batch.id,
        suggested_discount_percentage=discount,
        estimated_revenue=revenue,
        status=SuggestionStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    db.add(suggestion)
    db.flush()

    return CreatedSuggestion(
        suggestion_id=suggestion.id,
        batch_id=batch.id,
        sku=item.sku,
        name=item.name,
        quantity=batch.quantity,
        base_price=Decimal(str(item.base_price)),
        days_until_expiry=days,
        suggested_discount=discount,
        estimated_revenue=revenue,
        profit_margin=profit_margin(item.base_price, discount),
    )


def _log_summary(result: PricingRunResult) -> None:
    stats = result.stats
    logger.info(
        'Pricing analysis finished in %.2fs: analyzed=%d created=%d skipped_no_discount=%d '
        'skipped_pending=%d skipped_discounted=%d skipped_expired=%d expired_suggestions=%d '
        'revenue=%s errors=%d',
        result.duration_seconds,
        stats.total_batches_analyzed,
        stats.suggestions_created,
        stats.skipped_no_discount,
        stats.skipped_pending_suggestion,
        stats.skipped_already_discounted,
        stats.skipped_expired,
        stats.suggestions_expired,
        stats.total_estimated_revenue,
        stats.errors,
    )
    for rank, suggestion in enumerate(result.suggestions[:5], start=1):
        logger.info(
            '  %d. %s (%s) qty=%d discount=%d%% revenue=%s',
            rank,
            suggestion.name,
            suggestion.sku,
            suggestion.quantity,
            suggestion.suggested_discount,
            suggestion.estimated_revenue,
        )


def analyze_pricing_and_suggest_discounts(
    db: Session,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> PricingRunResult:
    started = time.perf_counter()
    now = (now or _now()).astimezone(timezone.utc)
    today = to_local_date(now, tz or settings.tz)
    stats = PricingRunStats()
    created: list[CreatedSuggestion] = []
    logger.info('Pricing analysis started for %s', today.isoformat())

    try:
        stats.suggestions_expired = expire_stale_suggestions(db, today=today, now=now)
        rows = db.execute(
            select(StockBatch, Item)
            .join(Item, Item.id == StockBatch.item_id)
            .where(StockBatch.quantity > 0, StockBatch.status.in_(ELIGIBLE_STATUSES))
            .order_by(StockBatch.expiry_date.asc(), StockBatch.id.asc())
        ).all()
    except Exception as exc:
        logger.exception('Pricing analysis failed')
        db.rollback()
        return PricingRunResult(
            success=False,
            stats=stats,
            duration_seconds=round(time.perf_counter() - started, 3),
            error=str(exc),
        )

    for batch, item in rows:
        if batch.current_discount_percentage:
            stats.skipped_already_discounted += 1
            continue

        stats.total_batches_analyzed += 1
        batch_id = batch.id
        try:
            with db.begin_nested():
                suggestion = _suggest_for_batch(db, batch, item, today=today, now=now, stats=stats)
        except Exception:
            logger.exception('Error processing batch %s during pricing analysis', batch_id)
            stats.errors += 1
            continue

        if suggestion:
            created.append(suggestion)
            stats.suggestions_created += 1
            stats.total_estimated_revenue += suggestion.estimated_revenue
            logger.info(
                'Suggestion created for %s (%s): days=%d discount=%d%% revenue=%s',
                suggestion.name,
                suggestion.sku,
                suggestion.days_until_expiry,
                suggestion.suggested_discount,
                suggestion.estimated_revenue,
            )

    created.sort(key=lambda suggestion: suggestion.estimated_revenue, reverse=True)
    result = PricingRunResult(
        success=True,
        stats=stats,
        suggestions=created,
        duration_seconds=round(time.perf_counter() - started, 3),
    )
    _log_summary(result)
    return result
