"""
Reports service - read-only aggregates over sales.

daily_close() is the end-of-day cut for one franchise: completed sales,
refunds and cancellations of a calendar day (UTC) plus the day's best
sellers. close_day() stamps that day as closed; it is a record for the
back office and does not lock further sales or reversals.
"""
import logging
from datetime import datetime, time

from franchise_pos.models import SaleStatus, AuditAction
from franchise_pos.policy import Actor, authorize, resolve_franchise, VIEW_REPORTS, CLOSE_DAY, VIEW_GLOBAL_REPORTS
from franchise_pos.services.audit_service import log_action
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.params import parse_day, parse_datetime

logger = logging.getLogger(__name__)

TOP_PRODUCTS_LIMIT = 10


def daily_close(store, actor: Actor, franchise_id: str = None, day=None) -> dict:
    """
    End-of-day report for a franchise.

    Args:
        store: Store to read from
        actor: Acting identity
        franchise_id: Required for organization-wide roles
        day: 'YYYY-MM-DD' (defaults to today, UTC)

    Returns:
        dict with franchise_id, day, sales_completed, total_sold, items_qty,
        refunds_count, refunds_total, cancels_count, top_products and the
        close record (closed_by/closed_at, None while the day is open)

    Raises:
        ForbiddenError: If the actor may not read this franchise's reports
        ValidationError: If day is not a valid date
    """
    franchise_id = resolve_franchise(actor, franchise_id)
    authorize(actor, VIEW_REPORTS, franchise_id)

    day = parse_day(day) or utcnow().date()
    date_from, date_to = _day_bounds(day)

    def summarize(status):
        return store.summarize_sales(franchise_id, date_from=date_from, date_to=date_to, status=status)

    completed = summarize(SaleStatus.COMPLETED)
    refunded = summarize(SaleStatus.REFUNDED)
    canceled = summarize(SaleStatus.CANCELED)

    top_products = store.rank_products(
        franchise_id, date_from=date_from, date_to=date_to, status=SaleStatus.COMPLETED,
        order_by='qty', limit=TOP_PRODUCTS_LIMIT
    )
    record = store.get_daily_close(franchise_id, day)

    return {
        'franchise_id': franchise_id,
        'day': day,
        'sales_completed': completed['count'],
        'total_sold': completed['total_value'],
        'items_qty': completed['item_count'],
        'refunds_count': refunded['count'],
        'refunds_total': refunded['refund_value'],
        'cancels_count': canceled['count'],
        'top_products': top_products,
        'closed_by': record.closed_by if record else None,
        'closed_at': record.closed_at if record else None,
    }


def close_day(store, actor: Actor, franchise_id: str = None, day=None):
    """
    Mark a franchise's day as closed. Closing an already closed day
    refreshes who closed it and when.

    Raises:
        ForbiddenError: If the actor may not close days in this franchise
        ValidationError: If day is not a valid date
    """
    franchise_id = resolve_franchise(actor, franchise_id)
    authorize(actor, CLOSE_DAY, franchise_id)

    day = parse_day(day) or utcnow().date()

    with store.transaction():
        record = store.save_daily_close(franchise_id, day, actor.user_id, utcnow())

    logger.info(f"Day {day.isoformat()} closed for franchise {franchise_id} by {actor.user_id}")
    log_action(
        store, AuditAction.DAY_CLOSE, 'DailyClose', record.id,
        franchise_id=franchise_id,
        payload={'day': day},
        actor=actor
    )
    return record


def global_summary(store, actor: Actor, date_from=None, date_to=None) -> dict:
    """
    Organization-wide totals of COMPLETED sales: one row per franchise
    (highest total first) and the top products by revenue.

    Raises:
        ForbiddenError: Unless the actor is OWNER or PARTNER
        ValidationError: If a date bound is not ISO-8601
    """
    authorize(actor, VIEW_GLOBAL_REPORTS)

    date_from = parse_datetime(date_from, 'from')
    date_to = parse_datetime(date_to, 'to')

    return {
        'date_from': date_from,
        'date_to': date_to,
        'by_franchise': store.totals_by_franchise(
            date_from=date_from, date_to=date_to, status=SaleStatus.COMPLETED
        ),
        'top_products': store.rank_products(
            None, date_from=date_from, date_to=date_to, status=SaleStatus.COMPLETED,
            order_by='revenue', limit=TOP_PRODUCTS_LIMIT
        ),
    }


def _day_bounds(day):
    return datetime.combine(day, time.min), datetime.combine(day, time.max)
