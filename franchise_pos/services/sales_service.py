"""
Sales service with transactional logic - Multi-Franchise.
Handles sale creation against live inventory, reversal (cancel/refund) and
the scoped query surface.

A sale is created directly in COMPLETED and may leave it exactly once, to
CANCELED or REFUNDED. Both reversals restore inventory the same way; they
differ only in terminal status, refund_total and audit tag.
"""
import logging
import re
from collections import OrderedDict
from decimal import Decimal
from typing import List, Optional

from franchise_pos.models import Sale, SaleItem, SaleStatus, AuditAction
from franchise_pos.exceptions import ValidationError, NotFoundError
from franchise_pos.policy import Actor, authorize, resolve_franchise, CREATE_SALE, VIEW_SALES, REVERSE_SALE
from franchise_pos.services.audit_service import log_action
from franchise_pos.services.inventory_service import take_stock, return_stock
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import CENTS, card_last4, to_money
from franchise_pos.utils.params import parse_id, parse_positive_int, parse_datetime

logger = logging.getLogger(__name__)

CARD_NUMBER_PATTERN = re.compile(r'[0-9]{12,19}')
MAX_REASON_LENGTH = 255
# Sale.total is NUMERIC(12, 2)
MAX_SALE_TOTAL = Decimal('9999999999.99')


class SalesQuery:
    """Caller-supplied filters for list_sales() and sales_summary()."""

    def __init__(self, franchise_id: str = None, seller_id: str = None, date_from=None, date_to=None,
                 status: Optional[SaleStatus] = None):
        self.franchise_id = franchise_id or None
        self.seller_id = seller_id or None
        self.date_from = parse_datetime(date_from, 'from')
        self.date_to = parse_datetime(date_to, 'to')
        if status is not None and not isinstance(status, SaleStatus):
            try:
                status = SaleStatus(str(status).upper())
            except ValueError:
                raise ValidationError(f'status inválido: {status}')
        self.status = status

    @classmethod
    def from_args(cls, args) -> 'SalesQuery':
        """Build from query-string args (from, to, seller_id, franchise_id, status)."""
        return cls(
            franchise_id=args.get('franchise_id') or args.get('franchiseId'),
            seller_id=args.get('seller_id') or args.get('sellerId'),
            date_from=args.get('from'),
            date_to=args.get('to'),
            status=args.get('status') or None
        )


# =========================
# CREATE SALE
# =========================

def create_sale(store, franchise_id: str, seller_id: str, items: List[dict], card_number: str,
                actor: Optional[Actor] = None) -> Sale:
    """
    Create a COMPLETED sale, decrementing stock for every item atomically.

    Args:
        store: Store to run the transaction on
        franchise_id: Franchise the sale belongs to (already scope-resolved)
        seller_id: Acting seller
        items: List of {'product_id', 'qty'}; duplicates are merged
        card_number: Opaque 12-19 digit string
        actor: Acting identity; when given, create_sale permission is checked

    Returns:
        The persisted Sale with its items

    Raises:
        ValidationError: Bad input, or a product missing/foreign/inactive
        ForbiddenError: If actor may not sell in franchise_id
        InsufficientStockError: If any item lacks stock at write time (nothing is committed)
    """
    lines = _validate_sale_request(franchise_id, seller_id, items, card_number)
    if actor is not None:
        authorize(actor, CREATE_SALE, franchise_id)

    with store.transaction():
        # 1. Fetch products scoped to the franchise and validate in batch
        products = store.find_products(franchise_id, list(lines.keys()))
        products_dict = {p.id: p for p in products}

        missing_ids = [pid for pid in lines if pid not in products_dict]
        if missing_ids:
            raise ValidationError(
                'Producto(s) no existen en esta franquicia',
                payload={'product_ids': missing_ids}
            )
        for product in products:
            if not product.is_active:
                raise ValidationError(f'El producto "{product.name}" no está activo')

        # 2. Conditional decrements; the first failure aborts the whole sale
        sale_items = []
        for pid, qty in lines.items():
            product = products_dict[pid]
            take_stock(store, product, franchise_id, qty)

            # 3. Snapshot price
            price = to_money(product.price)
            sale_items.append(SaleItem(
                product=product,
                product_id=pid,
                qty=qty,
                price=price,
                subtotal=(price * qty).quantize(CENTS)
            ))

        total = sum((item.subtotal for item in sale_items), Decimal('0.00')).quantize(CENTS)
        if total > MAX_SALE_TOTAL:
            raise ValidationError(f'El total de la venta supera el máximo permitido ({MAX_SALE_TOTAL})')

        # 4. Persist sale + items as one write
        sale = store.add_sale(Sale(
            franchise_id=franchise_id,
            seller_id=seller_id,
            card_number=card_number,
            total=total,
            status=SaleStatus.COMPLETED,
            created_at=utcnow(),
            items=sale_items
        ))

    logger.info(f"Sale {sale.id} created in franchise {franchise_id} by {seller_id}: total {total}")

    # 5. Audit (best-effort, after commit)
    log_action(
        store, AuditAction.SALE_CREATE, 'Sale', sale.id,
        franchise_id=franchise_id,
        payload={
            'total': total,
            'items': [{'product_id': pid, 'qty': qty} for pid, qty in lines.items()],
            'card_last4': card_last4(card_number),
        },
        actor=actor,
        user_id=seller_id
    )
    return sale


# =========================
# REVERSALS
# =========================

def cancel_sale(store, sale_id, actor: Actor, reason: str = None) -> Sale:
    """Cancel a COMPLETED sale and restore its inventory."""
    return _reverse_sale(store, sale_id, actor, reason, SaleStatus.CANCELED)


def refund_sale(store, sale_id, actor: Actor, reason: str = None) -> Sale:
    """Refund a COMPLETED sale in full and restore its inventory."""
    return _reverse_sale(store, sale_id, actor, reason, SaleStatus.REFUNDED)


def _reverse_sale(store, sale_id, actor: Actor, reason: Optional[str], target: SaleStatus) -> Sale:
    """
    Move a sale out of COMPLETED and credit every item back.

    Raises:
        NotFoundError: If the sale does not exist
        ForbiddenError: If the actor may not reverse sales of its franchise
        ValidationError: If the sale is not COMPLETED (nothing changes)
    """
    sale_id = parse_id(sale_id, 'sale_id')
    reason = _clean_reason(reason)

    with store.transaction():
        sale = store.get_sale(sale_id)
        if not sale:
            raise NotFoundError('Venta no encontrada')

        authorize(actor, REVERSE_SALE, sale.franchise_id)

        if not sale.can_transition_to(target):
            raise ValidationError(
                f'Solo se pueden revertir ventas completadas. Estado actual: {sale.status.value}'
            )

        refund_total = sale.total if target == SaleStatus.REFUNDED else None

        # Guarded on status == COMPLETED at write time
        if not store.close_sale(sale.id, target, actor.user_id, reason, utcnow(), refund_total):
            raise ValidationError('La venta ya fue revertida')

        for item in sale.items:
            return_stock(store, item.product_id, item.qty)

        sale = store.get_sale(sale.id)

    logger.info(f"Sale {sale.id} moved to {target.value} by {actor.user_id}")

    action = AuditAction.SALE_REFUND if target == SaleStatus.REFUNDED else AuditAction.SALE_CANCEL
    payload = {
        'reason': reason,
        'total': sale.total,
        'items': [{'product_id': item.product_id, 'qty': item.qty} for item in sale.items],
    }
    if refund_total is not None:
        payload['refund_total'] = refund_total

    log_action(store, action, 'Sale', sale.id, franchise_id=sale.franchise_id, payload=payload, actor=actor)
    return sale


# =========================
# QUERIES
# =========================

def list_sales(store, query: SalesQuery, actor: Actor) -> List[Sale]:
    """Sales of the resolved franchise, newest first."""
    franchise_id = resolve_franchise(actor, query.franchise_id)
    authorize(actor, VIEW_SALES, franchise_id)

    return store.find_sales(
        franchise_id,
        seller_id=query.seller_id,
        date_from=query.date_from,
        date_to=query.date_to,
        status=query.status
    )


def get_sale(store, sale_id, actor: Actor) -> Sale:
    """
    Get a sale by id.

    Raises:
        NotFoundError: If the sale does not exist
        ForbiddenError: If it belongs to a franchise outside the actor's scope
    """
    sale = store.get_sale(parse_id(sale_id, 'sale_id'))
    if not sale:
        raise NotFoundError('Venta no encontrada')

    authorize(actor, VIEW_SALES, sale.franchise_id)
    return sale


def sales_summary(store, query: SalesQuery, actor: Actor) -> dict:
    """
    Aggregate COMPLETED sales over a scoped, optionally time/seller-filtered window.

    Returns:
        dict with franchise_id, date_from, date_to, seller_id, count,
        total_value and item_count
    """
    franchise_id = resolve_franchise(actor, query.franchise_id)
    authorize(actor, VIEW_SALES, franchise_id)

    totals = store.summarize_sales(
        franchise_id,
        seller_id=query.seller_id,
        date_from=query.date_from,
        date_to=query.date_to,
        status=SaleStatus.COMPLETED
    )

    return {
        'franchise_id': franchise_id,
        'date_from': query.date_from,
        'date_to': query.date_to,
        'seller_id': query.seller_id,
        'count': totals['count'],
        'total_value': totals['total_value'],
        'item_count': totals['item_count'],
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _validate_sale_request(franchise_id, seller_id, items, card_number) -> 'OrderedDict[int, int]':
    """Fail fast on malformed input; returns product_id -> merged qty."""
    if not franchise_id:
        raise ValidationError('franchiseId requerido')
    if not seller_id:
        raise ValidationError('sellerId requerido')
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError('items requerido')

    if not card_number:
        raise ValidationError('cardNumber requerido')
    if not isinstance(card_number, str) or not CARD_NUMBER_PATTERN.fullmatch(card_number):
        raise ValidationError('cardNumber inválido (12-19 dígitos)')

    lines = OrderedDict()
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError('item inválido')
        product_id = parse_id(item.get('product_id'), 'productId')
        qty = parse_positive_int(item.get('qty'), 'qty')
        lines[product_id] = parse_positive_int(lines.get(product_id, 0) + qty, 'qty')
    return lines


def _clean_reason(reason) -> Optional[str]:
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise ValidationError('reason inválido')
    reason = reason.strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f'reason no puede superar {MAX_REASON_LENGTH} caracteres')
    return reason or None
