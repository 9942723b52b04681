"""
Access scope resolution and role policy.

Every read/write path calls resolve_franchise() or authorize() before touching
inventory or sales. Nothing here mutates state.

Permission mapping by role:
- OWNER, PARTNER: all permissions, any franchise (organization-wide)
- FRANCHISE_OWNER: sales, reversals, stock management and day close in their franchise
- SELLER: sell, look up sales/products and read the daily report in their franchise
"""
import enum
from typing import Optional

from franchise_pos.exceptions import ForbiddenError


class Role(enum.Enum):
    """Actor roles issued by the identity service."""
    OWNER = 'OWNER'
    PARTNER = 'PARTNER'
    FRANCHISE_OWNER = 'FRANCHISE_OWNER'
    SELLER = 'SELLER'


ORGANIZATION_ROLES = frozenset({Role.OWNER, Role.PARTNER})

# Actions
CREATE_SALE = 'create_sale'
VIEW_SALES = 'view_sales'
REVERSE_SALE = 'reverse_sale'
VIEW_PRODUCTS = 'view_products'
CREATE_PRODUCT = 'create_product'
RESTOCK = 'restock'
ADJUST_STOCK = 'adjust_stock'
VIEW_AUDIT = 'view_audit'
VIEW_REPORTS = 'view_reports'
CLOSE_DAY = 'close_day'
VIEW_GLOBAL_REPORTS = 'view_global_reports'

PERMISSION_MAP = {
    Role.OWNER: 'all',
    Role.PARTNER: 'all',
    Role.FRANCHISE_OWNER: frozenset({
        CREATE_SALE, VIEW_SALES, REVERSE_SALE,
        VIEW_PRODUCTS, CREATE_PRODUCT, RESTOCK, ADJUST_STOCK,
        VIEW_REPORTS, CLOSE_DAY,
    }),
    Role.SELLER: frozenset({
        CREATE_SALE, VIEW_SALES, VIEW_PRODUCTS, VIEW_REPORTS,
    }),
}


class Actor:
    """Already-authenticated identity on whose behalf an operation runs."""

    def __init__(self, user_id, role, franchise_id=None):
        if not user_id:
            raise ForbiddenError('Token inválido: falta userId')
        if not isinstance(role, Role):
            try:
                role = Role(role)
            except ValueError:
                raise ForbiddenError(f'Rol desconocido: {role}')
        self.user_id = str(user_id)
        self.role = role
        self.franchise_id = str(franchise_id) if franchise_id else None

    def __repr__(self):
        return f"<Actor(user_id='{self.user_id}', role={self.role.value}, franchise_id={self.franchise_id!r})>"

    @property
    def is_organization_wide(self) -> bool:
        return self.role in ORGANIZATION_ROLES

    def has_permission(self, action: str) -> bool:
        permissions = PERMISSION_MAP.get(self.role, frozenset())
        if permissions == 'all':
            return True
        return action in permissions

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'role': self.role.value,
            'franchise_id': self.franchise_id,
        }


def resolve_franchise(actor: Actor, requested_franchise_id: Optional[str] = None) -> str:
    """
    Return the franchise the actor may operate on.

    Organization-wide roles must name the franchise explicitly; everyone else
    is pinned to their own franchise and may not ask for another one.

    Raises:
        ForbiddenError: If no scope can be resolved or another franchise is requested
    """
    requested = str(requested_franchise_id) if requested_franchise_id else None

    if actor.is_organization_wide:
        if not requested:
            raise ForbiddenError('Debes enviar franchiseId')
        return requested

    if not actor.franchise_id:
        raise ForbiddenError('Este usuario no tiene franquicia asignada')
    if requested and requested != actor.franchise_id:
        raise ForbiddenError('No puedes consultar otra franquicia')
    return actor.franchise_id


def is_allowed(actor: Actor, action: str, franchise_id: Optional[str] = None) -> bool:
    """Policy decision: may `actor` perform `action` on a resource of `franchise_id`?"""
    if not actor.has_permission(action):
        return False
    if franchise_id is None or actor.is_organization_wide:
        return True
    return actor.franchise_id is not None and actor.franchise_id == str(franchise_id)


def authorize(actor: Actor, action: str, franchise_id: Optional[str] = None) -> None:
    """
    Enforce the policy decision.

    Raises:
        ForbiddenError: If the role lacks the permission or the resource is in another franchise
    """
    if not actor.has_permission(action):
        raise ForbiddenError(f'No tienes permiso para: {action}', payload={'action': action})
    if not is_allowed(actor, action, franchise_id):
        raise ForbiddenError('No puedes acceder a recursos de otra franquicia', payload={'action': action})
