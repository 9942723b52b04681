"""
Persistence interface consumed by the services.

Services never reach for a global session: they receive a Store and run their
writes inside store.transaction(). Stock counters are only ever changed
through the conditional/atomic write methods below, so every mutation path
shares the same race-safe discipline.
"""
import abc
from typing import List, Optional, Tuple

from franchise_pos.models import Product, Sale, AuditLog, DailyClose

# sort key -> (attribute, descending)
PRODUCT_SORTS = {
    'created_at_desc': ('created_at', True),
    'created_at_asc': ('created_at', False),
    'name_asc': ('name', False),
    'name_desc': ('name', True),
    'stock_asc': ('stock', False),
    'stock_desc': ('stock', True),
}
DEFAULT_PRODUCT_SORT = 'created_at_desc'


class Store(abc.ABC):
    """Unit of work over products, sales and the audit trail."""

    @abc.abstractmethod
    def transaction(self):
        """
        Context manager wrapping a multi-statement atomic unit.

        Commits when the block exits normally; rolls back every write made
        inside the block and re-raises when it exits with an exception.
        """

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_product(self, product_id) -> Optional[Product]:
        """Point read with current counters."""

    @abc.abstractmethod
    def find_products(self, franchise_id: str, product_ids: List[int]) -> List[Product]:
        """Products among `product_ids` that belong to `franchise_id`."""

    @abc.abstractmethod
    def query_products(self, franchise_id: str, is_active: Optional[bool] = True, name: str = None,
                       sku: str = None, min_stock: int = None, has_missing: bool = False,
                       sort: str = DEFAULT_PRODUCT_SORT, limit: int = 20, offset: int = 0) -> Tuple[int, List[Product]]:
        """Filtered, sorted page of a franchise's catalog: (total, items)."""

    @abc.abstractmethod
    def find_product_by_sku(self, franchise_id: str, sku: str) -> Optional[Product]:
        """Exact SKU match within a franchise."""

    @abc.abstractmethod
    def add_product(self, product) -> Product:
        """Insert a product and assign its id."""

    @abc.abstractmethod
    def decrement_stock(self, product_id, franchise_id: str, qty: int) -> bool:
        """
        Conditional sale decrement: stock -= qty, missing += qty.

        Applies only if the product belongs to `franchise_id` and stock >= qty
        at write time. Returns False (and writes nothing) otherwise.
        """

    @abc.abstractmethod
    def reduce_stock(self, product_id, qty: int) -> bool:
        """Conditional removal: stock -= qty only if stock >= qty; missing untouched."""

    @abc.abstractmethod
    def increment_stock(self, product_id, qty: int) -> bool:
        """
        Atomic credit: stock += qty, missing = max(0, missing - qty).

        Applies only if the result stays within MAX_COUNTER. Returns False
        (and writes nothing) if the product does not exist or would overflow.
        """

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def add_sale(self, sale) -> Sale:
        """Insert a sale together with its items and assign ids."""

    @abc.abstractmethod
    def get_sale(self, sale_id) -> Optional[Sale]:
        """Point read including items."""

    @abc.abstractmethod
    def find_sales(self, franchise_id: str, seller_id: str = None, date_from=None, date_to=None,
                   status=None) -> List[Sale]:
        """Sales of a franchise, newest first. Date bounds are inclusive."""

    @abc.abstractmethod
    def summarize_sales(self, franchise_id: str, seller_id: str = None, date_from=None, date_to=None,
                        status=None) -> dict:
        """
        Aggregate over the same filters as find_sales.

        Returns:
            {'count', 'total_value', 'refund_value', 'item_count'}
        """

    @abc.abstractmethod
    def rank_products(self, franchise_id: Optional[str] = None, date_from=None, date_to=None, status=None,
                      order_by: str = 'qty', limit: int = 10) -> List[dict]:
        """
        Products ranked by units sold (order_by='qty') or by revenue.

        franchise_id=None ranks across every franchise. Each row is
        {'product_id', 'name', 'sku', 'qty', 'revenue'}.
        """

    @abc.abstractmethod
    def totals_by_franchise(self, date_from=None, date_to=None, status=None) -> List[dict]:
        """Per-franchise {'franchise_id', 'count', 'total_value'}, highest total first."""

    @abc.abstractmethod
    def close_sale(self, sale_id, status, closed_by: str, reason: Optional[str], closed_at,
                   refund_total=None) -> bool:
        """
        Conditional transition out of COMPLETED.

        Applies only if the sale is still COMPLETED at write time; returns
        False otherwise so two concurrent reversals cannot both succeed.
        """

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def add_audit_entry(self, entry) -> AuditLog:
        """Append an audit entry."""

    @abc.abstractmethod
    def find_audit_entries(self, franchise_id: str = None, user_id: str = None, action=None, entity: str = None,
                           date_from=None, date_to=None, limit: int = 20, offset: int = 0) -> Tuple[int, List[AuditLog]]:
        """Filtered page of audit entries, newest first: (total, items)."""

    # ------------------------------------------------------------------
    # Daily close
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_daily_close(self, franchise_id: str, day) -> Optional[DailyClose]:
        """The close record of a franchise's day, if any."""

    @abc.abstractmethod
    def save_daily_close(self, franchise_id: str, day, closed_by: str, closed_at) -> DailyClose:
        """Insert the close record, or refresh closed_by/closed_at if the day was already closed."""
