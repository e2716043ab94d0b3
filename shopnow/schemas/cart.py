# shopnow/schemas/cart.py
from sqlmodel import SQLModel, Field

from shopnow.models.product import CartLine


class CartSummary(SQLModel):
    """
    Observable cart state with derived totals.

    total_quantity / total_price are always computed from `lines`
    via `from_lines`; nothing else sets them.
    """

    lines: list[CartLine] = Field(default_factory=list)
    total_quantity: int = 0
    total_price: float = 0.0

    @classmethod
    def from_lines(cls, lines: list[CartLine]) -> "CartSummary":
        total_qty = 0
        total_price = 0.0
        for line in lines:
            total_qty += line.quantity
            total_price += line.line_total

        return cls(
            lines=list(lines),
            total_quantity=total_qty,
            total_price=total_price,
        )

    @property
    def is_empty(self) -> bool:
        return not self.lines


class CheckoutReport(SQLModel):
    """
    Outcome of buy_cart().

    Checkout is not transactional: remote deletes run in the
    background. Once `settled` is True, `failed_ids` lists lines whose
    remote delete failed; those lines come back with the next
    cart snapshot.
    """

    purchased: list[CartLine] = Field(default_factory=list)
    total_quantity: int = 0
    total_price: float = 0.0
    failed_ids: list[str] = Field(default_factory=list)
    settled: bool = False

    @property
    def complete(self) -> bool:
        return self.settled and not self.failed_ids
