"""Sales blueprint - JSON API over the sale transaction engine."""
from flask import Blueprint, request, jsonify, g
from flask_wtf.csrf import generate_csrf
from franchise_pos.exceptions import InsufficientStockError
from franchise_pos.middleware import require_actor, json_body
from franchise_pos.policy import resolve_franchise
from franchise_pos.services import sales_service
from franchise_pos.services.sales_service import SalesQuery
from franchise_pos.store import get_store
from franchise_pos.utils.formatters import money, iso
from franchise_pos.blueprints.metrics import sales_created_total, sales_reversed_total, stock_conflicts_total

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


@sales_bp.route('/ping')
def ping():
    """Health check; also hands out the CSRF token for subsequent POSTs."""
    return jsonify({'ok': True, 'message': 'sales ok', 'csrf_token': generate_csrf()})


# summary goes before /<id>
@sales_bp.route('/summary', methods=['GET'])
@require_actor
def summary():
    """Sales summary for the resolved franchise."""
    result = sales_service.sales_summary(get_store(), SalesQuery.from_args(request.args), g.actor)
    return jsonify({
        'franchise_id': result['franchise_id'],
        'from': iso(result['date_from']),
        'to': iso(result['date_to']),
        'seller_id': result['seller_id'],
        'sales_count': result['count'],
        'total_sold': money(result['total_value']),
        'items_qty': result['item_count'],
    })


@sales_bp.route('/', methods=['GET'])
@require_actor
def list_sales():
    """List sales, newest first."""
    sales = sales_service.list_sales(get_store(), SalesQuery.from_args(request.args), g.actor)
    return jsonify([sale.to_dict() for sale in sales])


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_actor
def get_sale(sale_id):
    sale = sales_service.get_sale(get_store(), sale_id, g.actor)
    return jsonify(sale.to_dict())


@sales_bp.route('/', methods=['POST'])
@require_actor
def create_sale():
    """
    Create a sale for the actor's franchise.

    Body: {"items": [{"product_id": 1, "qty": 2}], "card_number": "...",
           "franchise_id": "..." (organization-wide roles only)}
    """
    body = json_body()
    franchise_id = resolve_franchise(g.actor, body.get('franchise_id'))

    try:
        sale = sales_service.create_sale(
            get_store(),
            franchise_id=franchise_id,
            seller_id=g.actor.user_id,
            items=body.get('items'),
            card_number=body.get('card_number'),
            actor=g.actor
        )
    except InsufficientStockError:
        stock_conflicts_total.inc()
        raise

    sales_created_total.inc()
    return jsonify(sale.to_dict()), 201


@sales_bp.route('/<int:sale_id>/cancel', methods=['POST'])
@require_actor
def cancel_sale(sale_id):
    body = json_body()
    sale = sales_service.cancel_sale(get_store(), sale_id, g.actor, body.get('reason'))
    sales_reversed_total.labels(status=sale.status.value).inc()
    return jsonify(sale.to_dict())


@sales_bp.route('/<int:sale_id>/refund', methods=['POST'])
@require_actor
def refund_sale(sale_id):
    body = json_body()
    sale = sales_service.refund_sale(get_store(), sale_id, g.actor, body.get('reason'))
    sales_reversed_total.labels(status=sale.status.value).inc()
    return jsonify(sale.to_dict())
