"""
Request payload models for custom order intake
"""

from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError


class BuilderOrderRequest(BaseModel):
    """Flattened single-design payload sent by the design builder"""
    baseColor: Literal['white', 'black']
    placement: Literal['front', 'back', 'chest_left', 'chest_right']
    verticalPosition: Literal['upper', 'center', 'lower']
    designType: Literal['text', 'image']
    designText: Optional[str] = None
    designFont: Optional[str] = None
    designColor: Optional[str] = None
    designImageUrl: Optional[str] = None
    fontSize: Optional[float] = Field(default=None, gt=0)
    textBoxWidth: Optional[Literal['narrow', 'standard', 'wide']] = None
    quantity: int = Field(default=1, ge=1, le=20)
    deliveryName: str = Field(min_length=1)
    deliveryAddress: str = Field(min_length=1)
    phoneNumber: str = Field(min_length=1)
    notes: Optional[str] = None


class BaseShirt(BaseModel):
    productId: str = Field(min_length=1)
    color: str = Field(min_length=1)
    size: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class LegacyPlacementLabel(BaseModel):
    placementKey: str = Field(min_length=1)
    label: str = Field(min_length=1)


class DesignAsset(BaseModel):
    placementKey: str = Field(min_length=1)
    type: Literal['image', 'text']
    sourceType: Literal['uploaded', 'template', 'ai_generated']
    imageUrl: Optional[str] = None
    text: Optional[str] = None
    font: Optional[str] = None
    color: Optional[str] = None
    aiPrompt: Optional[str] = None
    templateId: Optional[str] = None


class Delivery(BaseModel):
    address: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = Field(pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class LegacyOrderRequest(BaseModel):
    """Earlier multi-placement payload with a product reference"""
    baseShirt: BaseShirt
    placements: List[LegacyPlacementLabel] = Field(min_length=1)
    designAssets: List[DesignAsset] = Field(default_factory=list)
    notes: str = ""
    delivery: Delivery


OrderRequest = Union[BuilderOrderRequest, LegacyOrderRequest]


def _issues(error: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {'field': '.'.join(str(part) for part in issue['loc']), 'message': issue['msg']}
        for issue in error.errors()
    ]


def parse_order_request(payload: Any) -> OrderRequest:
    """
    Validate an order creation payload.

    A payload carrying ``baseShirt`` is the legacy shape; anything else is
    validated as a builder submission.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(
            "Order payload must be a JSON object",
            suggestions=["Send the order as a JSON object body"]
        )

    model = LegacyOrderRequest if 'baseShirt' in payload else BuilderOrderRequest
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid input",
            details={'shape': 'legacy' if model is LegacyOrderRequest else 'builder', 'issues': _issues(e)},
            suggestions=["Check the highlighted fields and submit again"]
        )


class StaffUpdateRequest(BaseModel):
    """Staff changes to an existing custom order"""
    status: Optional[str] = None
    finalTotal: Optional[float] = Field(default=None, ge=0)
    adminNote: Optional[str] = None
    adminNotes: Optional[str] = None


def parse_staff_update(payload: Any) -> Dict[str, Any]:
    """Validate a staff update; only the keys actually sent are returned."""
    if not isinstance(payload, Mapping):
        raise ValidationError("Update payload must be a JSON object")
    try:
        update = StaffUpdateRequest.model_validate(dict(payload))
    except PydanticValidationError as e:
        raise ValidationError("Invalid input", details={'issues': _issues(e)})
    return update.model_dump(exclude_unset=True)
