"""Products blueprint - catalog lookups and stock mutations."""
from flask import Blueprint, request, jsonify, g
from franchise_pos.exceptions import InsufficientStockError
from franchise_pos.middleware import require_actor, json_body
from franchise_pos.services import inventory_service
from franchise_pos.store import get_store
from franchise_pos.blueprints.metrics import stock_conflicts_total

products_bp = Blueprint('products', __name__, url_prefix='/products')


@products_bp.route('/', methods=['GET'])
@require_actor
def list_products():
    """List products with filters and pagination (franchise-scoped)."""
    args = request.args
    result = inventory_service.list_products(
        get_store(),
        g.actor,
        franchise_id=args.get('franchise_id'),
        filters={
            'is_active': args.get('is_active'),
            'q': args.get('q'),
            'sku': args.get('sku'),
            'min_stock': args.get('min_stock'),
            'has_missing': args.get('has_missing'),
            'sort': args.get('sort'),
            'page': args.get('page'),
            'page_size': args.get('page_size'),
        }
    )
    result['items'] = [product.to_dict() for product in result['items']]
    return jsonify(result)


@products_bp.route('/', methods=['POST'])
@require_actor
def create_product():
    product = inventory_service.create_product(get_store(), g.actor, json_body())
    return jsonify(product.to_dict()), 201


@products_bp.route('/<int:product_id>', methods=['GET'])
@require_actor
def get_product(product_id):
    product = inventory_service.get_product(get_store(), g.actor, product_id)
    return jsonify(product.to_dict())


@products_bp.route('/<int:product_id>/restock', methods=['POST'])
@require_actor
def restock(product_id):
    """Body: {"qty": 5}"""
    body = json_body()
    product = inventory_service.restock(get_store(), product_id, body.get('qty'), g.actor)
    return jsonify(product.to_dict())


@products_bp.route('/<int:product_id>/adjust', methods=['POST'])
@require_actor
def adjust(product_id):
    """Body: {"stock_delta": -2, "reason": "..."}"""
    body = json_body()
    try:
        product = inventory_service.adjust_stock(
            get_store(), product_id, body.get('stock_delta'), g.actor, reason=body.get('reason')
        )
    except InsufficientStockError:
        stock_conflicts_total.inc()
        raise
    return jsonify(product.to_dict())
