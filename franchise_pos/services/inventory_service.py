"""
Inventory service - franchise-scoped stock counters.

Every counter change goes through a single conditional or atomic write on the
store (no read-modify-write in Python):

    sale          stock -= qty (only if stock >= qty), missing += qty
    restock       stock += qty, missing -= min(missing, qty)
    adjust > 0    same as restock
    adjust < 0    stock -= |delta| (only if stock >= |delta|), missing unchanged
    reversal      stock += qty, missing = max(0, missing - qty)

The helpers take_stock() and return_stock() are meant to run inside a caller's
store.transaction() so multi-item sales commit or abort as a unit.
"""
import logging
from decimal import Decimal, InvalidOperation

from franchise_pos.models import Product, AuditAction
from franchise_pos.exceptions import ValidationError, NotFoundError, ConflictError, InsufficientStockError
from franchise_pos.policy import (
    Actor, authorize, resolve_franchise,
    CREATE_PRODUCT, VIEW_PRODUCTS, RESTOCK, ADJUST_STOCK,
)
from franchise_pos.services.audit_service import log_action
from franchise_pos.store.base import PRODUCT_SORTS, DEFAULT_PRODUCT_SORT
from franchise_pos.utils.formatters import to_money
from franchise_pos.utils.params import (
    is_strict_int, parse_id, parse_positive_int, parse_bool, parse_pagination, MAX_COUNTER,
)

logger = logging.getLogger(__name__)

# Column limits on Product
MAX_NAME_LENGTH = 200
MAX_SKU_LENGTH = 64
MAX_PRICE = Decimal('99999999.99')


# =====================================================
# LEDGER PRIMITIVES (run inside a caller's transaction)
# =====================================================

def take_stock(store, product: Product, franchise_id: str, qty: int) -> None:
    """
    Conditionally decrement a product for a sale.

    Raises:
        InsufficientStockError: If stock < qty at write time; nothing is written
    """
    if not store.decrement_stock(product.id, franchise_id, qty):
        raise InsufficientStockError(product.name, qty)


def return_stock(store, product_id, qty: int) -> None:
    """Credit units back from a reversed sale."""
    if not store.increment_stock(product_id, qty):
        # Products referenced by a sale are never deleted, so only the ceiling can refuse
        raise ValidationError(f"El stock del producto {product_id} superaría el máximo permitido")


# =====================================================
# PUBLIC OPERATIONS
# =====================================================

def restock(store, product_id, qty, actor: Actor) -> Product:
    """
    Replenish a product.

    stock += qty; the missing counter drops by up to qty and never below zero.

    Raises:
        ValidationError: If qty is not a positive integer or stock would pass MAX_COUNTER
        NotFoundError: If the product does not exist
        ForbiddenError: If the actor may not restock this franchise
    """
    product_id = parse_id(product_id, 'product_id')
    qty = parse_positive_int(qty, 'qty')

    with store.transaction():
        product = _get_product_or_error(store, product_id)
        authorize(actor, RESTOCK, product.franchise_id)

        before = product.counters()
        if not store.increment_stock(product.id, qty):
            raise ValidationError(f"El stock de \"{product.name}\" superaría el máximo permitido ({MAX_COUNTER})")
        product = store.get_product(product.id)
        after = product.counters()

    logger.info(f"Product {product.id} restocked +{qty}: {before} -> {after}")
    log_action(
        store, AuditAction.PRODUCT_RESTOCK, 'Product', product.id,
        franchise_id=product.franchise_id,
        payload={'qty_added': qty, 'before': before, 'after': after},
        actor=actor
    )
    return product


def adjust_stock(store, product_id, delta, actor: Actor, reason: str = None) -> Product:
    """
    Free-form stock correction.

    A positive delta behaves like restock(); a negative delta needs enough
    stock on hand and leaves the missing counter alone.

    Raises:
        ValidationError: If delta is not a non-zero integer
        NotFoundError: If the product does not exist
        ForbiddenError: If the actor may not adjust this franchise
        InsufficientStockError: If a decrease would take stock below zero
    """
    product_id = parse_id(product_id, 'product_id')
    if not is_strict_int(delta) or delta == 0:
        raise ValidationError('stockDelta debe ser entero y diferente de 0')
    if abs(delta) > MAX_COUNTER:
        raise ValidationError(f"stockDelta no puede superar {MAX_COUNTER} en valor absoluto")

    with store.transaction():
        product = _get_product_or_error(store, product_id)
        authorize(actor, ADJUST_STOCK, product.franchise_id)

        before = product.counters()
        if delta > 0:
            if not store.increment_stock(product.id, delta):
                raise ValidationError(f"El stock de \"{product.name}\" superaría el máximo permitido ({MAX_COUNTER})")
        elif not store.reduce_stock(product.id, -delta):
            raise InsufficientStockError(product.name, -delta, product.stock)
        product = store.get_product(product.id)
        after = product.counters()

    logger.info(f"Product {product.id} adjusted {delta:+d}: {before} -> {after}")
    log_action(
        store, AuditAction.PRODUCT_ADJUST, 'Product', product.id,
        franchise_id=product.franchise_id,
        payload={'stock_delta': delta, 'reason': reason, 'before': before, 'after': after},
        actor=actor
    )
    return product


def create_product(store, actor: Actor, data: dict) -> Product:
    """
    Create a product in the actor's (or an explicitly named) franchise.

    Args:
        data: name, price, and optional franchise_id, sku, stock, is_active

    Raises:
        ValidationError: If name/price/stock are invalid
        ConflictError: If the SKU already exists in that franchise
        ForbiddenError: If the actor may not create products there
    """
    franchise_id = resolve_franchise(actor, data.get('franchise_id'))
    authorize(actor, CREATE_PRODUCT, franchise_id)

    name = _clean_text(data.get('name'), 'name', MAX_NAME_LENGTH)
    if not name:
        raise ValidationError('El nombre del producto es requerido')

    try:
        price = to_money(data.get('price'))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError('price inválido')
    if not price.is_finite():
        raise ValidationError('price inválido')
    if price < 0:
        raise ValidationError('price no puede ser negativo')
    if price > MAX_PRICE:
        raise ValidationError(f'price no puede superar {MAX_PRICE}')

    stock = data.get('stock', 0)
    if not is_strict_int(stock) or stock < 0 or stock > MAX_COUNTER:
        raise ValidationError(f'stock inválido (entero entre 0 y {MAX_COUNTER})')

    sku = _clean_text(data.get('sku'), 'sku', MAX_SKU_LENGTH)

    with store.transaction():
        if sku and _sku_taken(store, franchise_id, sku):
            raise ConflictError(f"Ya existe un producto con SKU {sku} en la franquicia")
        product = store.add_product(Product(
            franchise_id=franchise_id,
            name=name,
            sku=sku,
            price=price,
            stock=stock,
            missing=0,
            is_active=parse_bool(data.get('is_active'), default=True)
        ))

    log_action(
        store, AuditAction.PRODUCT_CREATE, 'Product', product.id,
        franchise_id=product.franchise_id,
        payload={'name': product.name, 'price': product.price, 'stock': product.stock, 'sku': product.sku},
        actor=actor
    )
    return product


def get_product(store, actor: Actor, product_id) -> Product:
    """
    Get a product, enforcing franchise scope.

    Raises:
        NotFoundError: If the product does not exist
        ForbiddenError: If it belongs to another franchise
    """
    product = _get_product_or_error(store, parse_id(product_id, 'product_id'))
    authorize(actor, VIEW_PRODUCTS, product.franchise_id)
    return product


def list_products(store, actor: Actor, franchise_id: str = None, filters: dict = None) -> dict:
    """
    Page through a franchise's catalog.

    Filters: is_active (default: active only), q (name contains), sku,
    min_stock, has_missing, sort, page, page_size.
    """
    target_franchise_id = resolve_franchise(actor, franchise_id)
    authorize(actor, VIEW_PRODUCTS, target_franchise_id)
    filters = filters or {}

    min_stock = filters.get('min_stock')
    if min_stock not in (None, ''):
        try:
            min_stock = int(min_stock)
        except (TypeError, ValueError):
            raise ValidationError('minStock inválido')
        if abs(min_stock) > MAX_COUNTER:
            raise ValidationError('minStock fuera de rango')
    else:
        min_stock = None

    sort = filters.get('sort') or DEFAULT_PRODUCT_SORT
    if sort not in PRODUCT_SORTS:
        sort = DEFAULT_PRODUCT_SORT

    page, page_size, offset = parse_pagination(filters.get('page'), filters.get('page_size'))

    total, items = store.query_products(
        target_franchise_id,
        is_active=parse_bool(filters.get('is_active'), default=True),
        name=(filters.get('q') or '').strip()[:100] or None,
        sku=(filters.get('sku') or '').strip()[:64] or None,
        min_stock=min_stock,
        has_missing=bool(parse_bool(filters.get('has_missing'), default=False)),
        sort=sort,
        limit=page_size,
        offset=offset
    )

    return {
        'page': page,
        'page_size': page_size,
        'total': total,
        'items': items,
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _get_product_or_error(store, product_id) -> Product:
    product = store.get_product(product_id)
    if not product:
        raise NotFoundError('Producto no encontrado')
    return product


def _sku_taken(store, franchise_id: str, sku: str) -> bool:
    return store.find_product_by_sku(franchise_id, sku) is not None


def _clean_text(value, field: str, max_length: int):
    """Strip a free-text field; blank means None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} inválido', payload={'field': field})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f'{field} no puede superar {max_length} caracteres', payload={'field': field})
    return value or None
