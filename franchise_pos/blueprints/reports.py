"""Reports blueprint - end-of-day cut per franchise and the organization-wide summary."""
from flask import Blueprint, request, jsonify, g
from franchise_pos.middleware import require_actor, json_body
from franchise_pos.services import reports_service
from franchise_pos.store import get_store
from franchise_pos.utils.formatters import json_safe

reports_bp = Blueprint('reports', __name__, url_prefix='/reports')


@reports_bp.route('/daily-close', methods=['GET'])
@require_actor
def daily_close():
    """Daily report; ?day=YYYY-MM-DD (default today) and ?franchise_id= for OWNER/PARTNER."""
    report = reports_service.daily_close(
        get_store(), g.actor, franchise_id=request.args.get('franchise_id'), day=request.args.get('day')
    )
    return jsonify(json_safe(report))


@reports_bp.route('/daily-close/close', methods=['POST'])
@require_actor
def close_day():
    """Body: {"day": "YYYY-MM-DD", "franchise_id": "..." (organization-wide roles only)}"""
    body = json_body()
    record = reports_service.close_day(
        get_store(), g.actor, franchise_id=body.get('franchise_id'), day=body.get('day')
    )
    return jsonify(record.to_dict())


@reports_bp.route('/global/summary', methods=['GET'])
@require_actor
def global_summary():
    summary = reports_service.global_summary(
        get_store(), g.actor, date_from=request.args.get('from'), date_to=request.args.get('to')
    )
    return jsonify({
        'from': json_safe(summary['date_from']),
        'to': json_safe(summary['date_to']),
        'by_franchise': json_safe(summary['by_franchise']),
        'top_products': json_safe(summary['top_products']),
    })
