"""
In-process Store used by tests and local tooling.

Holds model instances in dicts. Transactions are serialized with a re-entrant
lock and undone through a journal, so a failed multi-item sale leaves every
counter exactly as it found it.
"""
import itertools
import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Optional, Tuple

from franchise_pos.models import Product, Sale, SaleStatus, AuditLog, DailyClose
from franchise_pos.store.base import Store, PRODUCT_SORTS, DEFAULT_PRODUCT_SORT
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import to_money
from franchise_pos.utils.params import MAX_COUNTER


class MemoryStore(Store):
    """Store backed by plain dicts."""

    def __init__(self):
        self._lock = threading.RLock()
        self._journal = None
        self._products = {}
        self._sales = {}
        self._audit = []
        self._daily_closes = {}
        self._product_ids = itertools.count(1)
        self._sale_ids = itertools.count(1)
        self._sale_item_ids = itertools.count(1)
        self._audit_ids = itertools.count(1)
        self._daily_close_ids = itertools.count(1)

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._journal is not None:
                # Joins the enclosing transaction
                yield self
                return

            self._journal = []
            try:
                yield self
            except Exception:
                for undo in reversed(self._journal):
                    undo()
                raise
            finally:
                self._journal = None

    def _remember(self, undo):
        if self._journal is not None:
            self._journal.append(undo)

    def _restore(self, obj, **values):
        def undo():
            for key, value in values.items():
                setattr(obj, key, value)
        return undo

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def get_product(self, product_id) -> Optional[Product]:
        with self._lock:
            return self._products.get(product_id)

    def find_products(self, franchise_id: str, product_ids: List[int]) -> List[Product]:
        with self._lock:
            return [
                self._products[pid] for pid in dict.fromkeys(product_ids)
                if pid in self._products and self._products[pid].franchise_id == franchise_id
            ]

    def query_products(self, franchise_id: str, is_active: Optional[bool] = True, name: str = None,
                       sku: str = None, min_stock: int = None, has_missing: bool = False,
                       sort: str = DEFAULT_PRODUCT_SORT, limit: int = 20, offset: int = 0) -> Tuple[int, List[Product]]:
        with self._lock:
            items = [p for p in self._products.values() if p.franchise_id == franchise_id]

        if is_active is not None:
            items = [p for p in items if p.is_active == is_active]
        if name:
            items = [p for p in items if name.lower() in p.name.lower()]
        if sku:
            items = [p for p in items if p.sku and sku.lower() in p.sku.lower()]
        if min_stock is not None:
            items = [p for p in items if p.stock >= min_stock]
        if has_missing:
            items = [p for p in items if p.missing > 0]

        attribute, descending = PRODUCT_SORTS.get(sort, PRODUCT_SORTS[DEFAULT_PRODUCT_SORT])
        items.sort(key=lambda p: (getattr(p, attribute), p.id), reverse=descending)
        return len(items), items[offset:offset + limit]

    def find_product_by_sku(self, franchise_id: str, sku: str) -> Optional[Product]:
        with self._lock:
            return next(
                (p for p in self._products.values() if p.franchise_id == franchise_id and p.sku == sku),
                None
            )

    def add_product(self, product) -> Product:
        with self._lock:
            now = utcnow()
            product.id = next(self._product_ids)
            if product.stock is None:
                product.stock = 0
            if product.missing is None:
                product.missing = 0
            if product.is_active is None:
                product.is_active = True
            product.created_at = product.created_at or now
            product.updated_at = product.updated_at or now
            self._products[product.id] = product
            self._remember(lambda: self._products.pop(product.id, None))
            return product

    def decrement_stock(self, product_id, franchise_id: str, qty: int) -> bool:
        with self._lock:
            product = self._products.get(product_id)
            if product is None or product.franchise_id != franchise_id or product.stock < qty:
                return False
            self._remember(self._restore(product, stock=product.stock, missing=product.missing,
                                         updated_at=product.updated_at))
            product.stock -= qty
            product.missing += qty
            product.updated_at = utcnow()
            return True

    def reduce_stock(self, product_id, qty: int) -> bool:
        with self._lock:
            product = self._products.get(product_id)
            if product is None or product.stock < qty:
                return False
            self._remember(self._restore(product, stock=product.stock, updated_at=product.updated_at))
            product.stock -= qty
            product.updated_at = utcnow()
            return True

    def increment_stock(self, product_id, qty: int) -> bool:
        with self._lock:
            product = self._products.get(product_id)
            if product is None or product.stock > MAX_COUNTER - qty:
                return False
            self._remember(self._restore(product, stock=product.stock, missing=product.missing,
                                         updated_at=product.updated_at))
            product.stock += qty
            product.missing = max(0, product.missing - qty)
            product.updated_at = utcnow()
            return True

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def add_sale(self, sale) -> Sale:
        with self._lock:
            sale.id = next(self._sale_ids)
            sale.created_at = sale.created_at or utcnow()
            for item in sale.items:
                item.id = next(self._sale_item_ids)
                item.sale_id = sale.id
            self._sales[sale.id] = sale
            self._remember(lambda: self._sales.pop(sale.id, None))
            return sale

    def get_sale(self, sale_id) -> Optional[Sale]:
        with self._lock:
            return self._sales.get(sale_id)

    def _matching_sales(self, franchise_id, seller_id=None, date_from=None, date_to=None, status=None):
        with self._lock:
            sales = list(self._sales.values())
        if franchise_id is not None:
            sales = [s for s in sales if s.franchise_id == franchise_id]
        if seller_id:
            sales = [s for s in sales if s.seller_id == seller_id]
        if date_from is not None:
            sales = [s for s in sales if s.created_at >= date_from]
        if date_to is not None:
            sales = [s for s in sales if s.created_at <= date_to]
        if status is not None:
            sales = [s for s in sales if s.status == status]
        return sales

    def find_sales(self, franchise_id: str, seller_id: str = None, date_from=None, date_to=None,
                   status=None) -> List[Sale]:
        sales = self._matching_sales(franchise_id, seller_id, date_from, date_to, status)
        return sorted(sales, key=lambda s: (s.created_at, s.id), reverse=True)

    def summarize_sales(self, franchise_id: str, seller_id: str = None, date_from=None, date_to=None,
                        status=None) -> dict:
        sales = self._matching_sales(franchise_id, seller_id, date_from, date_to, status)
        return {
            'count': len(sales),
            'total_value': to_money(sum((s.total for s in sales), Decimal('0'))),
            'refund_value': to_money(sum((s.refund_total for s in sales if s.refund_total is not None), Decimal('0'))),
            'item_count': sum(s.item_count for s in sales),
        }

    def rank_products(self, franchise_id: Optional[str] = None, date_from=None, date_to=None, status=None,
                      order_by: str = 'qty', limit: int = 10) -> List[dict]:
        ranking = {}
        for sale in self._matching_sales(franchise_id, date_from=date_from, date_to=date_to, status=status):
            for item in sale.items:
                row = ranking.get(item.product_id)
                if row is None:
                    product = self.get_product(item.product_id)
                    row = ranking[item.product_id] = {
                        'product_id': item.product_id,
                        'name': product.name if product is not None else None,
                        'sku': product.sku if product is not None else None,
                        'qty': 0,
                        'revenue': Decimal('0'),
                    }
                row['qty'] += item.qty
                row['revenue'] += item.subtotal

        metric = 'qty' if order_by == 'qty' else 'revenue'
        rows = sorted(ranking.values(), key=lambda r: (-r[metric], r['product_id']))
        for row in rows:
            row['revenue'] = to_money(row['revenue'])
        return rows[:limit]

    def totals_by_franchise(self, date_from=None, date_to=None, status=None) -> List[dict]:
        totals = {}
        for sale in self._matching_sales(None, date_from=date_from, date_to=date_to, status=status):
            row = totals.setdefault(sale.franchise_id, {
                'franchise_id': sale.franchise_id, 'count': 0, 'total_value': Decimal('0')
            })
            row['count'] += 1
            row['total_value'] += sale.total

        rows = sorted(totals.values(), key=lambda r: (-r['total_value'], r['franchise_id']))
        for row in rows:
            row['total_value'] = to_money(row['total_value'])
        return rows

    def close_sale(self, sale_id, status, closed_by: str, reason: Optional[str], closed_at,
                   refund_total=None) -> bool:
        with self._lock:
            sale = self._sales.get(sale_id)
            if sale is None or sale.status != SaleStatus.COMPLETED:
                return False
            self._remember(self._restore(
                sale, status=sale.status, closed_by=sale.closed_by, close_reason=sale.close_reason,
                closed_at=sale.closed_at, refund_total=sale.refund_total
            ))
            sale.status = status
            sale.closed_by = closed_by
            sale.close_reason = reason
            sale.closed_at = closed_at
            if refund_total is not None:
                sale.refund_total = refund_total
            return True

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def add_audit_entry(self, entry) -> AuditLog:
        with self._lock:
            entry.id = next(self._audit_ids)
            entry.created_at = entry.created_at or utcnow()
            self._audit.append(entry)
            self._remember(lambda: self._audit.remove(entry))
            return entry

    def find_audit_entries(self, franchise_id: str = None, user_id: str = None, action=None, entity: str = None,
                           date_from=None, date_to=None, limit: int = 20, offset: int = 0) -> Tuple[int, List[AuditLog]]:
        with self._lock:
            entries = list(self._audit)

        if franchise_id:
            entries = [e for e in entries if e.franchise_id == franchise_id]
        if user_id:
            entries = [e for e in entries if e.user_id == user_id]
        if action is not None:
            entries = [e for e in entries if e.action == action]
        if entity:
            entries = [e for e in entries if e.entity == entity]
        if date_from is not None:
            entries = [e for e in entries if e.created_at >= date_from]
        if date_to is not None:
            entries = [e for e in entries if e.created_at <= date_to]

        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return len(entries), entries[offset:offset + limit]

    # ------------------------------------------------------------------
    # Daily close
    # ------------------------------------------------------------------

    def get_daily_close(self, franchise_id: str, day) -> Optional[DailyClose]:
        with self._lock:
            return self._daily_closes.get((franchise_id, day))

    def save_daily_close(self, franchise_id: str, day, closed_by: str, closed_at) -> DailyClose:
        with self._lock:
            record = self._daily_closes.get((franchise_id, day))
            if record is not None:
                self._remember(self._restore(record, closed_by=record.closed_by, closed_at=record.closed_at))
                record.closed_by = closed_by
                record.closed_at = closed_at
                return record

            record = DailyClose(
                id=next(self._daily_close_ids), franchise_id=franchise_id, day=day,
                closed_by=closed_by, closed_at=closed_at
            )
            self._daily_closes[(franchise_id, day)] = record
            self._remember(lambda: self._daily_closes.pop((franchise_id, day), None))
            return record
