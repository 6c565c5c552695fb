"""
Core data types shared by the reconciler, renderers and order service
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional


AREAS = ('front', 'back', 'left_chest', 'right_chest')
VERTICAL_POSITIONS = ('upper', 'center', 'lower')
DESIGN_TYPES = ('text', 'image')
TEXT_BOX_WIDTHS = ('narrow', 'standard', 'wide')


@dataclass(frozen=True)
class ResolvedPlacement:
    """One print location in the canonical, shape-independent form"""
    id: str
    area: str
    vertical_position: str
    design_type: str
    design_text: Optional[str] = None
    design_font: Optional[str] = None
    design_color: Optional[str] = None
    design_image_url: Optional[str] = None
    font_size: Optional[float] = None
    text_box_width: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.design_type == 'text'

    @property
    def is_image(self) -> bool:
        return self.design_type == 'image'

    def has_content(self) -> bool:
        if self.is_text:
            return bool(self.design_text and self.design_text.strip())
        if self.is_image:
            return bool(self.design_image_url)
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'area': self.area,
            'verticalPosition': self.vertical_position,
            'designType': self.design_type,
            'designText': self.design_text,
            'designFont': self.design_font,
            'designColor': self.design_color,
            'designImageUrl': self.design_image_url,
            'fontSize': self.font_size,
            'textBoxWidth': self.text_box_width,
        }


@dataclass(frozen=True)
class PricingSnapshot:
    """Price computed at order creation; only final_total changes afterwards"""
    base_price: float
    placement_cost: float
    quantity_multiplier: int
    estimated_total: float
    final_total: Optional[float] = None

    @property
    def total(self) -> float:
        return self.final_total if self.final_total is not None else self.estimated_total

    def with_final_total(self, value: Optional[float]) -> 'PricingSnapshot':
        return replace(self, final_total=value)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'basePrice': self.base_price,
            'placementCost': self.placement_cost,
            'quantityMultiplier': self.quantity_multiplier,
            'estimatedTotal': self.estimated_total,
        }
        if self.final_total is not None:
            data['finalTotal'] = self.final_total
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PricingSnapshot':
        return cls(
            base_price=data['basePrice'],
            placement_cost=data['placementCost'],
            quantity_multiplier=data['quantityMultiplier'],
            estimated_total=data['estimatedTotal'],
            final_total=data.get('finalTotal'),
        )


@dataclass
class StatusHistoryEntry:
    status: str
    changed_by: str
    changed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'changedAt': self.changed_at.isoformat(),
            'changedBy': self.changed_by,
        }
