"""Audit blueprint - read-only view of the audit trail (OWNER/PARTNER)."""
from flask import Blueprint, request, jsonify, g
from franchise_pos.middleware import require_actor
from franchise_pos.services import audit_service
from franchise_pos.store import get_store

audit_bp = Blueprint('audit', __name__, url_prefix='/audit')


@audit_bp.route('/', methods=['GET'])
@require_actor
def list_entries():
    args = request.args
    result = audit_service.list_entries(get_store(), g.actor, {
        'franchise_id': args.get('franchise_id'),
        'user_id': args.get('user_id'),
        'action': args.get('action'),
        'entity': args.get('entity'),
        'date_from': args.get('from'),
        'date_to': args.get('to'),
        'page': args.get('page'),
        'page_size': args.get('page_size'),
    })
    result['items'] = [entry.to_dict() for entry in result['items']]
    return jsonify(result)
