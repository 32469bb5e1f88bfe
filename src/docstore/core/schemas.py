"""
Per-collection document schemas, checked at the facade boundary.

Documents stay free-form (``extra="allow"``): a schema only pins down the
fields the storefront relies on. Collections without a registered schema
accept any JSON object.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Literal, Mapping, Optional, Type

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError

DocumentModel = Type[BaseModel]


class DocumentBase(BaseModel):
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    model_config = {"extra": "allow"}


class SchemaRegistry:
    """collection name → pydantic model."""

    def __init__(self, schemas: Optional[Mapping[str, DocumentModel]] = None):
        self._schemas: Dict[str, DocumentModel] = dict(schemas or {})

    def register(self, collection: str) -> Callable[[DocumentModel], DocumentModel]:
        def decorator(model: DocumentModel) -> DocumentModel:
            self._schemas[collection] = model
            return model

        return decorator

    def get(self, collection: str) -> Optional[DocumentModel]:
        return self._schemas.get(collection)

    def __contains__(self, collection: str) -> bool:
        return collection in self._schemas

    def collections(self) -> list[str]:
        return sorted(self._schemas)

    def validate(self, collection: str, data: Any) -> Dict[str, Any]:
        """Return the validated document (JSON-ready) or raise ValidationError."""
        if not isinstance(data, Mapping):
            raise ValidationError(
                f"Document for {collection} must be a JSON object",
                [{"field": "", "message": "must be a JSON object"}],
            )
        model = self._schemas.get(collection)
        if model is None:
            return dict(data)
        try:
            doc = model.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid {collection} document", _details(exc)
            ) from exc
        return doc.model_dump(mode="json", exclude_unset=True)


def _details(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


schemas = SchemaRegistry()


# ---- storefront collections -------------------------------------------------
@schemas.register("catalog")
class CatalogItem(DocumentBase):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    description: Optional[str] = None
    category: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    images: list[str] = Field(default_factory=list)


@schemas.register("categories")
class Category(DocumentBase):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class OrderLine(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    model_config = {"extra": "allow"}


@schemas.register("orders")
class Order(DocumentBase):
    items: list[OrderLine] = Field(min_length=1)
    total: float = Field(ge=0)
    status: Literal[
        "pending", "processing", "paid", "shipped", "delivered", "cancelled", "refunded"
    ] = "pending"
    customer: Optional[Dict[str, Any]] = None


@schemas.register("customers")
class Customer(DocumentBase):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: Optional[str] = None
    phone: Optional[str] = None


@schemas.register("coupons")
class Coupon(DocumentBase):
    code: str = Field(min_length=1)
    type: Literal["percentage", "fixed"] = "percentage"
    discount: float = Field(ge=0)
    active: bool = True


class PaymentMethods(BaseModel):
    cardPayments: Optional[bool] = None
    bankTransfer: Optional[bool] = None
    payOnDelivery: Optional[bool] = None
    model_config = {"extra": "allow"}


@schemas.register("store_settings")
class StoreSettings(DocumentBase):
    businessName: Optional[str] = None
    vatPercentage: Optional[float] = Field(default=None, ge=0, le=100)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    freeShippingThreshold: Optional[float] = Field(default=None, ge=0)
    paymentMethods: Optional[PaymentMethods] = None
