# shopnow/services/storefront.py
import logging

from shopnow.core.errors import ProductNotFoundError, ShopNowError
from shopnow.models.product import CartLine, Product
from shopnow.schemas.cart import CartSummary, CheckoutReport
from shopnow.services.auth_session import AuthOutcome, AuthSession
from shopnow.services.cart_sync import CartSynchronizer, SyncState
from shopnow.services.catalog_cache import CatalogCache

logger = logging.getLogger(__name__)


class Storefront:
    """
    Everything the UI binds to.

    Commands:
      - sign_in / sign_up / sign_out
      - add_to_cart(product_id, quantity) / update_quantity / remove_from_cart
      - buy_cart
      - search / filter_by_category

    Observables:
      - catalog, cart, item_count, total_price
      - user_id, is_loading, last_error
      - orphaned_lines (cart lines whose product left the catalog)
    """

    def __init__(self, auth: AuthSession, catalog: CatalogCache, cart: CartSynchronizer):
        self.auth = auth
        self.catalog = catalog
        self.cart = cart

    # ---- lifecycle ----

    async def start(self) -> None:
        await self.catalog.start()
        self.cart.start()

    async def stop(self) -> None:
        await self.cart.stop()
        await self.catalog.stop()

    # ---- session ----

    @property
    def user_id(self) -> str | None:
        return self.auth.current_user()

    async def sign_in(self, email: str, password: str) -> AuthOutcome:
        return await self.auth.sign_in(email, password)

    async def sign_up(self, email: str, password: str) -> AuthOutcome:
        return await self.auth.sign_up(email, password)

    async def sign_out(self) -> None:
        await self.auth.sign_out()

    # ---- catalog ----

    def products(self) -> list[Product]:
        return self.catalog.current_catalog()

    def search(self, query: str) -> list[Product]:
        return self.catalog.search(query)

    def filter_by_category(self, category: str | None) -> list[Product]:
        return self.catalog.filter_by_category(category)

    # ---- cart ----

    def add_to_cart(self, product_id: str, quantity: int = 1) -> CartSummary:
        """
        Add a catalog product by id.

        A product that left the catalog but is still in the cart can be
        re-added from its cached cart line.
        """
        product = self.catalog.get(product_id) or self._cart_line(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return self.cart.add_to_cart(product, quantity)

    def update_quantity(self, product_id: str, quantity: int) -> CartSummary:
        return self.cart.update_quantity(product_id, quantity)

    def remove_from_cart(self, product_id: str) -> CartSummary:
        return self.cart.remove_from_cart(product_id)

    def buy_cart(self) -> CheckoutReport:
        return self.cart.buy_cart()

    def current_cart(self) -> CartSummary:
        return self.cart.current_cart()

    @property
    def item_count(self) -> int:
        return self.cart.item_count()

    @property
    def total_price(self) -> float:
        return self.cart.total_price()

    @property
    def is_loading(self) -> bool:
        return self.cart.state is SyncState.LOADING

    @property
    def last_error(self) -> ShopNowError | None:
        return self.cart.last_error or self.catalog.last_error

    def orphaned_lines(self) -> list[CartLine]:
        """
        Cart lines whose product is no longer in the catalog.

        They stay in the cart with their cached name/price;
        how to show them is up to the UI.
        """
        known = {p.id for p in self.catalog.current_catalog()}
        return [line for line in self.cart.current_cart().lines if line.id not in known]

    def _cart_line(self, product_id: str) -> CartLine | None:
        for line in self.cart.current_cart().lines:
            if line.id == product_id:
                return line
        return None
