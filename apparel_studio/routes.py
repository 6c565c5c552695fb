"""
Flask routes for the Apparel Studio service
Custom order intake, order detail, raster previews and staff updates
"""

from flask import Blueprint, Response, current_app, jsonify, request
from loguru import logger
from werkzeug.exceptions import HTTPException

from .errors import StudioError, ValidationError, error_response
from .orders import order_summary
from .preview import VARIANT_LAYOUTS
from .reconcile import resolve_design
from .status import STANDARD_ORDER_FLOW, is_delivered_status, status_label, status_tone


bp = Blueprint('main', __name__)

TRUE_VALUES = ('1', 'true', 'yes', 'on')


def services():
    return current_app.extensions['apparel_studio']


def acting_user() -> str:
    # Authentication lives in front of this service
    return request.headers.get('X-User', 'anonymous')


def json_body():
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError(
            "Request body must be valid JSON",
            suggestions=["Send the payload with Content-Type: application/json"]
        )
    return payload


@bp.errorhandler(StudioError)
def handle_studio_error(error: StudioError):
    if error.status_code >= 500:
        logger.error(f"{error.__class__.__name__} on {request.path}: {error}")
    else:
        logger.warning(f"{error.__class__.__name__} on {request.path}: {error}")
    return jsonify(error.to_dict()), error.status_code


@bp.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception(f"Unexpected error on {request.path}: {error}")
    return jsonify(error_response(error)), 500


@bp.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok'})


@bp.route('/custom-orders', methods=['POST'])
def create_custom_order():
    """Create a custom order from a builder or legacy payload"""
    order = services()['orders'].create(json_body(), created_by=acting_user())
    return jsonify({'success': True, **order_summary(order)}), 201


@bp.route('/custom-orders/<order_id>', methods=['GET'])
def get_custom_order(order_id):
    """Order detail with its resolved design, pricing and progress"""
    svc = services()
    order = svc['orders'].get(order_id)
    shape, placements = resolve_design(order)
    status = order.get('status')
    flow = svc['orders'].custom_flow

    panels = svc['composer'].compose(order, 'detail')

    return jsonify({
        'order': {
            'id': order['id'],
            'status': status,
            'statusLabel': status_label(status),
            'statusTone': status_tone(status),
            'delivered': is_delivered_status(status),
            'designShape': shape,
            'placements': [p.to_dict() for p in placements],
            'pricing': order.get('pricing'),
            'progress': [step.to_dict() for step in flow.classify(status)],
            'statusHistory': order.get('statusHistory', []),
            'previewImageUrl': order.get('previewImageUrl'),
            'previewPanels': [panel.to_dict() for panel in panels],
            'quantity': order.get('quantity') or (order.get('baseShirt') or {}).get('quantity') or 1,
            'notes': order.get('notes'),
        }
    })


@bp.route('/custom-orders/<order_id>/preview.png', methods=['GET'])
def custom_order_preview(order_id):
    """Raster preview of one side of an order"""
    svc = services()
    order = svc['orders'].get(order_id)

    variant = request.args.get('variant', 'detail')
    if variant not in VARIANT_LAYOUTS:
        raise ValidationError(
            f"Unknown preview variant: {variant}",
            details={'variant': variant},
            suggestions=[f"Use one of: {', '.join(VARIANT_LAYOUTS)}"]
        )

    composer = svc['composer']
    panel = composer.panel_for(
        order,
        side=request.args.get('side'),
        variant=variant,
        show_guides=request.args.get('guides', '').lower() in TRUE_VALUES,
        active_placement_id=request.args.get('active'),
    )
    png = composer.render_png(
        panel,
        pixel_ratio=current_app.config.get('EXPORT_PIXEL_RATIO', 2.0),
        timeout=current_app.config.get('IMAGE_LOAD_TIMEOUT'),
    )
    return Response(png, mimetype='image/png')


@bp.route('/custom-orders/<order_id>', methods=['PATCH'])
def update_custom_order(order_id):
    """Staff update: status, final total and admin notes"""
    order = services()['orders'].update(order_id, json_body(), changed_by=acting_user())
    return jsonify({
        'success': True,
        'order': {
            'id': order['id'],
            'status': order.get('status'),
            'pricing': order.get('pricing'),
            'statusHistory': order.get('statusHistory', []),
            'notes': order.get('notes'),
        }
    })


@bp.route('/orders/progress', methods=['GET'])
def standard_order_progress():
    """Progress steps of the standard order pipeline for a status"""
    status = request.args.get('status')
    return jsonify({
        'status': status,
        'normalized': STANDARD_ORDER_FLOW.normalize(status),
        'tone': status_tone(status),
        'delivered': is_delivered_status(status),
        'steps': [step.to_dict() for step in STANDARD_ORDER_FLOW.classify(status)],
    })
