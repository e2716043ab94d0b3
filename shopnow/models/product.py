# shopnow/models/product.py
import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from pydantic import ConfigDict, ValidationError, field_validator
from sqlmodel import SQLModel, Field

logger = logging.getLogger(__name__)


class ProductBase(SQLModel):
    """
    Fields shared by catalog entries and cart lines.

    Documents in the remote store use the same snake_case keys, so
    a row/document can be validated straight into these models.
    Unknown columns (user_id, created_at, ...) are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, description="Server-assigned product id")
    name: str = ""
    price: float = Field(default=0.0, ge=0, description="Unit price")
    image_url: str = ""
    category: str | None = Field(
        default=None,
        description="Optional classification tag used for filtering",
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        # uuid / int primary keys are keyed by their string form
        if v is None:
            return v
        return str(v).strip()


class Product(ProductBase):
    """
    Catalog entry. Read-only from the app's point of view.
    """


class CartLine(ProductBase):
    """
    A product embedded in the shopper's cart.

    One user cannot have 2 lines for the same product id, and a line
    with quantity <= 0 never exists (it is removed instead).
    """

    quantity: int = Field(default=1, ge=1, description="Must be >= 1")

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_product(cls, product: ProductBase, quantity: int) -> "CartLine":
        """Snapshot the product's display fields into a new cart line."""
        return cls(
            id=product.id,
            name=product.name,
            price=product.price,
            image_url=product.image_url,
            category=product.category,
            quantity=quantity,
        )

    def with_quantity(self, quantity: int) -> "CartLine":
        return CartLine.from_product(self, quantity)

    def to_document(self) -> dict[str, Any]:
        """Full document written at users/{uid}/cart/{id}."""
        return self.model_dump()


ModelT = TypeVar("ModelT", bound=ProductBase)


def parse_documents(
    docs: Iterable[dict[str, Any]],
    model: type[ModelT],
) -> list[ModelT]:
    """
    Validate raw snapshot documents into models.

    Invalid documents (missing id, negative price, quantity <= 0, ...)
    are skipped and logged instead of failing the whole snapshot.
    When the same id appears twice, the last document wins.
    """
    parsed: dict[str, ModelT] = {}
    for doc in docs:
        try:
            item = model.model_validate(doc)
        except ValidationError as e:
            logger.warning(
                "Skipping invalid %s document %r: %s",
                model.__name__,
                doc.get("id") if isinstance(doc, dict) else doc,
                e.errors(include_url=False),
            )
            continue
        parsed[item.id] = item
    return list(parsed.values())
