"""SQLAlchemy implementation of the Store interface."""
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import update, case, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, selectinload

from franchise_pos.models import Product, Sale, SaleItem, SaleStatus, AuditLog, DailyClose
from franchise_pos.store.base import Store, PRODUCT_SORTS, DEFAULT_PRODUCT_SORT
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import to_money
from franchise_pos.utils.params import MAX_COUNTER


class SqlAlchemyStore(Store):
    """
    Store backed by a SQLAlchemy session.

    Counter mutations are single UPDATE statements whose WHERE clause carries
    the precondition; the database decides which concurrent writer wins and
    `rowcount` tells us whether ours did.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def get_product(self, product_id) -> Optional[Product]:
        # populate_existing: counters may have been changed by a Core UPDATE
        return self.session.get(Product, product_id, populate_existing=True)

    def find_products(self, franchise_id: str, product_ids: List[int]) -> List[Product]:
        if not product_ids:
            return []
        return self.session.query(Product).filter(
            Product.franchise_id == franchise_id,
            Product.id.in_(product_ids)
        ).all()

    def query_products(self, franchise_id: str, is_active: Optional[bool] = True, name: str = None,
                       sku: str = None, min_stock: int = None, has_missing: bool = False,
                       sort: str = DEFAULT_PRODUCT_SORT, limit: int = 20, offset: int = 0) -> Tuple[int, List[Product]]:
        query = self.session.query(Product).filter(Product.franchise_id == franchise_id)

        if is_active is not None:
            query = query.filter(Product.is_active == is_active)
        if name:
            query = query.filter(Product.name.ilike(f'%{name}%'))
        if sku:
            query = query.filter(Product.sku.isnot(None), Product.sku.ilike(f'%{sku}%'))
        if min_stock is not None:
            query = query.filter(Product.stock >= min_stock)
        if has_missing:
            query = query.filter(Product.missing > 0)

        total = query.count()

        attribute, descending = PRODUCT_SORTS.get(sort, PRODUCT_SORTS[DEFAULT_PRODUCT_SORT])
        column = getattr(Product, attribute)
        id_order = Product.id.desc() if descending else Product.id.asc()
        query = query.order_by(column.desc() if descending else column.asc(), id_order)

        return total, query.limit(limit).offset(offset).all()

    def find_product_by_sku(self, franchise_id: str, sku: str) -> Optional[Product]:
        return self.session.query(Product).filter(
            Product.franchise_id == franchise_id,
            Product.sku == sku
        ).first()

    def add_product(self, product) -> Product:
        self.session.add(product)
        self.session.flush()
        return product

    def decrement_stock(self, product_id, franchise_id: str, qty: int) -> bool:
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.franchise_id == franchise_id,
                Product.stock >= qty
            )
            .values(stock=Product.stock - qty, missing=Product.missing + qty, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def reduce_stock(self, product_id, qty: int) -> bool:
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= qty)
            .values(stock=Product.stock - qty, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def increment_stock(self, product_id, qty: int) -> bool:
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock <= MAX_COUNTER - qty)
            .values(
                stock=Product.stock + qty,
                missing=case((Product.missing > qty, Product.missing - qty), else_=0),
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def add_sale(self, sale) -> Sale:
        self.session.add(sale)
        self.session.flush()
        return sale

    def get_sale(self, sale_id) -> Optional[Sale]:
        return self.session.get(
            Sale, sale_id,
            options=[selectinload(Sale.items).selectinload(SaleItem.product)],
            populate_existing=True
        )

    def _sale_filters(self, franchise_id, seller_id=None, date_from=None, date_to=None, status=None):
        criteria = []
        if franchise_id is not None:
            criteria.append(Sale.franchise_id == franchise_id)
        if seller_id:
            criteria.append(Sale.seller_id == seller_id)
        if date_from is not None:
            criteria.append(Sale.created_at >= date_from)
        if date_to is not None:
            criteria.append(Sale.created_at <= date_to)
        if status is not None:
            criteria.append(Sale.status == status)
        return criteria

    def find_sales(self, franchise_id: str, seller_id: str = None, date_from=None, date_to=None,
                   status=None) -> List[Sale]:
        criteria = self._sale_filters(franchise_id, seller_id, date_from, date_to, status)
        return (self.session.query(Sale)
                .options(selectinload(Sale.items).selectinload(SaleItem.product))
                .filter(*criteria)
                .order_by(Sale.created_at.desc(), Sale.id.desc())
                .all())

    def summarize_sales(self, franchise_id: str, seller_id: str = None, date_from=None, date_to=None,
                        status=None) -> dict:
        criteria = self._sale_filters(franchise_id, seller_id, date_from, date_to, status)

        count, total_value, refund_value = self.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total), 0),
            func.coalesce(func.sum(Sale.refund_total), 0)
        ).filter(*criteria).one()

        item_count = (self.session.query(func.coalesce(func.sum(SaleItem.qty), 0))
                      .select_from(SaleItem)
                      .join(Sale, Sale.id == SaleItem.sale_id)
                      .filter(*criteria)
                      .scalar())

        return {
            'count': int(count or 0),
            'total_value': to_money(total_value or Decimal('0')),
            'refund_value': to_money(refund_value or Decimal('0')),
            'item_count': int(item_count or 0),
        }

    def rank_products(self, franchise_id: Optional[str] = None, date_from=None, date_to=None, status=None,
                      order_by: str = 'qty', limit: int = 10) -> List[dict]:
        criteria = self._sale_filters(franchise_id, date_from=date_from, date_to=date_to, status=status)
        qty = func.sum(SaleItem.qty)
        revenue = func.sum(SaleItem.subtotal)

        rows = (self.session.query(SaleItem.product_id, Product.name, Product.sku, qty, revenue)
                .join(Sale, Sale.id == SaleItem.sale_id)
                .join(Product, Product.id == SaleItem.product_id)
                .filter(*criteria)
                .group_by(SaleItem.product_id, Product.name, Product.sku)
                .order_by((qty if order_by == 'qty' else revenue).desc(), SaleItem.product_id.asc())
                .limit(limit)
                .all())

        return [
            {
                'product_id': product_id,
                'name': name,
                'sku': sku,
                'qty': int(units or 0),
                'revenue': to_money(amount or Decimal('0')),
            }
            for product_id, name, sku, units, amount in rows
        ]

    def totals_by_franchise(self, date_from=None, date_to=None, status=None) -> List[dict]:
        criteria = self._sale_filters(None, date_from=date_from, date_to=date_to, status=status)
        total = func.coalesce(func.sum(Sale.total), 0)

        rows = (self.session.query(Sale.franchise_id, func.count(Sale.id), total)
                .filter(*criteria)
                .group_by(Sale.franchise_id)
                .order_by(total.desc(), Sale.franchise_id.asc())
                .all())

        return [
            {'franchise_id': franchise_id, 'count': int(count), 'total_value': to_money(value or Decimal('0'))}
            for franchise_id, count, value in rows
        ]

    def close_sale(self, sale_id, status, closed_by: str, reason: Optional[str], closed_at,
                   refund_total=None) -> bool:
        values = {
            'status': status,
            'closed_by': closed_by,
            'close_reason': reason,
            'closed_at': closed_at,
        }
        if refund_total is not None:
            values['refund_total'] = refund_total

        stmt = (
            update(Sale)
            .where(Sale.id == sale_id, Sale.status == SaleStatus.COMPLETED)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def add_audit_entry(self, entry) -> AuditLog:
        self.session.add(entry)
        self.session.flush()
        return entry

    def find_audit_entries(self, franchise_id: str = None, user_id: str = None, action=None, entity: str = None,
                           date_from=None, date_to=None, limit: int = 20, offset: int = 0) -> Tuple[int, List[AuditLog]]:
        query = self.session.query(AuditLog)

        if franchise_id:
            query = query.filter(AuditLog.franchise_id == franchise_id)
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if action is not None:
            query = query.filter(AuditLog.action == action)
        if entity:
            query = query.filter(AuditLog.entity == entity)
        if date_from is not None:
            query = query.filter(AuditLog.created_at >= date_from)
        if date_to is not None:
            query = query.filter(AuditLog.created_at <= date_to)

        total = query.count()
        items = (query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                 .limit(limit).offset(offset).all())
        return total, items

    # ------------------------------------------------------------------
    # Daily close
    # ------------------------------------------------------------------

    def get_daily_close(self, franchise_id: str, day) -> Optional[DailyClose]:
        return (self.session.query(DailyClose)
                .filter(DailyClose.franchise_id == franchise_id, DailyClose.day == day)
                .populate_existing()
                .first())

    def save_daily_close(self, franchise_id: str, day, closed_by: str, closed_at) -> DailyClose:
        # Single-statement upsert so two closes of the same day cannot collide
        dialect = self.session.get_bind().dialect.name
        insert = postgresql.insert if dialect == 'postgresql' else sqlite.insert
        stmt = insert(DailyClose).values(
            franchise_id=franchise_id, day=day, closed_by=closed_by, closed_at=closed_at
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DailyClose.franchise_id, DailyClose.day],
            set_={'closed_by': closed_by, 'closed_at': closed_at}
        )
        self.session.execute(stmt)
        return self.get_daily_close(franchise_id, day)
