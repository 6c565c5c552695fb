"""
Custom order service.

Turns validated intake payloads into stored custom orders (pricing snapshot,
initial status history, production preview URL) and applies staff updates.
Persistence and product prices are collaborators injected at construction.
"""

import copy
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from loguru import logger

from .errors import OrderNotFoundError, UnknownStatusError
from .models import PricingSnapshot, StatusHistoryEntry
from .pricing import PricingCalculator
from .production_preview import ProductionPreviewGenerator
from .reconcile import reconcile_placements
from .schemas import BuilderOrderRequest, LegacyOrderRequest, OrderRequest, parse_order_request, parse_staff_update
from .status import CUSTOM_ORDER_FLOW, StatusSequence
from .validation import enforce_design_policy


INITIAL_STATUS = 'PENDING_REVIEW'
BUILDER_PRODUCT_ID = 'base-shirt-simple'


class InMemoryOrderRepository:
    """Order persistence kept in process memory; stores deep copies."""

    def __init__(self):
        self._orders: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def add(self, order: Mapping[str, Any]) -> str:
        order_id = order.get('id') or uuid.uuid4().hex
        stored = copy.deepcopy(dict(order))
        stored['id'] = order_id
        with self._lock:
            self._orders[order_id] = stored
        return order_id

    def get(self, order_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            order = self._orders.get(order_id)
        return copy.deepcopy(order) if order is not None else None

    def save(self, order: Mapping[str, Any]) -> None:
        with self._lock:
            if order['id'] not in self._orders:
                raise OrderNotFoundError(order['id'])
            self._orders[order['id']] = copy.deepcopy(dict(order))

    def __len__(self) -> int:
        return len(self._orders)


def _builder_fields(request: BuilderOrderRequest) -> Dict[str, Any]:
    """Flattened builder fields plus the legacy label/asset lists they imply."""
    is_text = request.designType == 'text'
    assets = []
    if is_text and request.designText:
        assets.append({
            'placementKey': request.placement,
            'type': 'text',
            'sourceType': 'uploaded',
            'text': request.designText,
            'font': request.designFont,
            'color': request.designColor,
        })
    elif not is_text and request.designImageUrl:
        assets.append({
            'placementKey': request.placement,
            'type': 'image',
            'sourceType': 'uploaded',
            'imageUrl': request.designImageUrl,
        })

    return {
        'baseShirt': {
            'productId': BUILDER_PRODUCT_ID,
            'color': request.baseColor,
            'size': 'standard',
            'quantity': request.quantity,
        },
        'legacyPlacements': [{'placementKey': request.placement, 'label': request.placement.replace('_', ' ')}],
        'designAssets': assets,
        'notes': request.notes or '',
        'delivery': {
            'name': request.deliveryName,
            'address': request.deliveryAddress,
            'phone': request.phoneNumber,
        },
        'baseColor': request.baseColor,
        'placement': request.placement,
        'verticalPosition': request.verticalPosition,
        'designType': request.designType,
        'designText': request.designText or None if is_text else None,
        'designFont': request.designFont or None if is_text else None,
        'designColor': request.designColor or None if is_text else None,
        'designFontSize': request.fontSize if is_text else None,
        'textBoxWidth': request.textBoxWidth if is_text else None,
        'designImageUrl': None if is_text else request.designImageUrl or None,
        'quantity': request.quantity,
    }


def _legacy_fields(request: LegacyOrderRequest) -> Dict[str, Any]:
    return {
        'baseShirt': request.baseShirt.model_dump(),
        'legacyPlacements': [p.model_dump() for p in request.placements],
        'designAssets': [a.model_dump(exclude_none=True) for a in request.designAssets],
        'notes': request.notes,
        'delivery': request.delivery.model_dump(),
        'quantity': request.baseShirt.quantity,
    }


class CustomOrderService:
    """Creates custom orders and applies staff status and price updates."""

    def __init__(self,
                 repository,
                 pricing: PricingCalculator,
                 preview_generator: Optional[ProductionPreviewGenerator] = None,
                 custom_flow: StatusSequence = CUSTOM_ORDER_FLOW):
        self.repository = repository
        self.pricing = pricing
        self.preview_generator = preview_generator
        self.custom_flow = custom_flow

    def create(self, payload: Any, created_by: str) -> Dict[str, Any]:
        """
        Validate a builder or legacy payload and store the new order.

        Returns:
            The stored order document

        Raises:
            ValidationError: If the payload is malformed
            DesignPolicyError: If any design text violates the content policy
        """
        request: OrderRequest = parse_order_request(payload)

        if isinstance(request, BuilderOrderRequest):
            fields = _builder_fields(request)
            pricing = self.pricing.quote_builder(request.quantity)
        else:
            fields = _legacy_fields(request)
            pricing = self.pricing.quote(
                request.baseShirt.productId,
                len(request.placements),
                request.baseShirt.quantity,
            )

        enforce_design_policy(reconcile_placements(fields))

        now = datetime.utcnow()
        order = {
            **fields,
            'pricing': pricing.to_dict(),
            'status': INITIAL_STATUS,
            'statusHistory': [StatusHistoryEntry(INITIAL_STATUS, created_by, now).to_dict()],
            'createdBy': created_by,
            'createdAt': now.isoformat(),
            'previewImageUrl': None,
        }
        order_id = self.repository.add(order)
        order['id'] = order_id
        logger.info(f"Custom order {order_id} created by {created_by}: "
                    f"{len(order['legacyPlacements'])} placement(s), estimate {pricing.estimated_total}")

        preview_url = self._production_preview(order)
        if preview_url:
            order['previewImageUrl'] = preview_url
            self.repository.save(order)

        return order

    def get(self, order_id: str) -> Dict[str, Any]:
        order = self.repository.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def change_status(self, order_id: str, status: str, changed_by: str) -> Dict[str, Any]:
        """Set a new status; history is appended only when the status changes."""
        canonical = self.custom_flow.normalize(status)
        if canonical is None:
            raise UnknownStatusError(status, list(self.custom_flow.steps) + list(self.custom_flow.terminal))

        order = self.get(order_id)
        if order.get('status') == canonical:
            logger.debug(f"Custom order {order_id} already {canonical}, history unchanged")
            return order

        previous = order.get('status')
        order['status'] = canonical
        order.setdefault('statusHistory', []).append(StatusHistoryEntry(canonical, changed_by).to_dict())
        self.repository.save(order)
        logger.info(f"Custom order {order_id} status {previous} -> {canonical} by {changed_by}")
        return order

    def set_final_total(self, order_id: str, value: Optional[float]) -> Dict[str, Any]:
        """Overwrite the staff final total; the estimate is never changed."""
        order = self.get(order_id)
        snapshot = PricingSnapshot.from_dict(order['pricing']).with_final_total(value)
        order['pricing'] = snapshot.to_dict()
        self.repository.save(order)
        logger.info(f"Custom order {order_id} final total set to {value}")
        return order

    def append_admin_note(self, order_id: str, note: str) -> Dict[str, Any]:
        order = self.get(order_id)
        existing = order.get('notes')
        order['notes'] = f"{existing}\n\nAdmin Note: {note}" if existing else f"Admin Note: {note}"
        self.repository.save(order)
        return order

    def update(self, order_id: str, changes: Mapping[str, Any], changed_by: str) -> Dict[str, Any]:
        """Apply a staff update carrying any of ``status``, ``finalTotal`` and ``adminNote``."""
        changes = parse_staff_update(changes)
        order = self.get(order_id)
        if changes.get('status'):
            order = self.change_status(order_id, changes['status'], changed_by)
        if 'finalTotal' in changes:
            order = self.set_final_total(order_id, changes['finalTotal'])
        note = changes.get('adminNote') or changes.get('adminNotes')
        if note:
            order = self.append_admin_note(order_id, note)
        return order

    def _production_preview(self, order: Mapping[str, Any]) -> Optional[str]:
        if self.preview_generator is None:
            return None
        try:
            return self.preview_generator.generate(order)
        except Exception as e:
            logger.warning(f"Production preview failed for order {order.get('id')}: {e}")
            return None


def order_summary(order: Mapping[str, Any]) -> Dict[str, Any]:
    pricing = order.get('pricing') or {}
    return {
        'orderId': order['id'],
        'status': order.get('status'),
        'estimatedTotal': pricing.get('estimatedTotal'),
        'previewImageUrl': order.get('previewImageUrl'),
    }
