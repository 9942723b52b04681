"""
Audit logging service for tracking inventory and sale mutations.

Audit writes are advisory: they run in their own short transaction after the
business mutation has committed, and a failure here is logged, never raised.
The trail can therefore miss an entry for a committed mutation.
"""
import logging
from typing import Optional

from franchise_pos.models.audit_log import AuditLog, AuditAction
from franchise_pos.policy import Actor, VIEW_AUDIT, authorize
from franchise_pos.exceptions import ValidationError
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import json_safe
from franchise_pos.utils.params import parse_datetime, parse_pagination

logger = logging.getLogger(__name__)


def log_action(
    store,
    action: AuditAction,
    entity: str,
    entity_id=None,
    franchise_id: str = None,
    payload: dict = None,
    actor: Optional[Actor] = None,
    user_id: str = None
) -> Optional[AuditLog]:
    """
    Append an auditable action.

    Args:
        store: Store to write to
        action: AuditAction enum value
        entity: Type of entity affected (e.g., 'Product', 'Sale')
        entity_id: ID of the affected entity
        franchise_id: Franchise of the entity (defaults to the actor's)
        payload: Dict with before/after or delta details
        actor: Acting identity, when known
        user_id: Acting user id when there is no Actor (e.g., seller-only calls)

    Returns:
        The stored AuditLog, or None if the write failed
    """
    try:
        entry = AuditLog(
            action=action,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            franchise_id=franchise_id or (actor.franchise_id if actor else None),
            user_id=actor.user_id if actor else user_id,
            role=actor.role.value if actor else None,
            payload=json_safe(payload) if payload else None,
            created_at=utcnow()
        )

        with store.transaction():
            store.add_audit_entry(entry)

        logger.info(f"Audit log created: {action.value} by user {entry.user_id} on {entity} {entity_id}")
        return entry

    except Exception as e:
        logger.error(f"Failed to create audit log for {action.value} on {entity} {entity_id}: {e}")
        return None


def list_entries(store, actor: Actor, filters: dict = None) -> dict:
    """
    Page through the audit trail (organization-wide roles only).

    Args:
        store: Store to read from
        actor: Acting identity
        filters: Optional franchise_id, user_id, action, entity, date_from,
            date_to, page, page_size

    Returns:
        dict with page, page_size, total and items
    """
    authorize(actor, VIEW_AUDIT)
    filters = filters or {}

    action = filters.get('action') or None
    if action is not None and not isinstance(action, AuditAction):
        try:
            action = AuditAction(str(action))
        except ValueError:
            raise ValidationError(f'action inválida: {action}')

    page, page_size, offset = parse_pagination(filters.get('page'), filters.get('page_size'))

    total, items = store.find_audit_entries(
        franchise_id=filters.get('franchise_id') or None,
        user_id=filters.get('user_id') or None,
        action=action,
        entity=filters.get('entity') or None,
        date_from=parse_datetime(filters.get('date_from'), 'date_from'),
        date_to=parse_datetime(filters.get('date_to'), 'date_to'),
        limit=page_size,
        offset=offset
    )

    return {
        'page': page,
        'page_size': page_size,
        'total': total,
        'items': items,
    }
