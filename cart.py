"""
Cart reconciler.

Keeps one cart document per user. Lines snapshot the product's name, price and
image when they are added; the product reference itself is re-resolved against
the catalog on every read, and lines whose reference is missing or dangling
are repaired when an unambiguous match exists.

The buy-now flow stages its single line in a separate ``checkoutselection``
document so the user's real cart is never overwritten.
"""
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

from catalog import CatalogStore, round_half_up
from database import ref_id, utcnow
from errors import InvalidInput, NotFound
from logger import get_logger
from schemas import CartLineView, CartView, ProductSnapshot, ResolvedRef, UnresolvedRef

logger = get_logger("cart")

CART = "cart"
SELECTION = "checkoutselection"


def _check_quantity(quantity: Any) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise InvalidInput("Quantity must be at least 1")
    return quantity


def merge_duplicate_lines(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Collapse lines pointing at the same product; the first line keeps its position."""
    merged: List[Dict[str, Any]] = []
    by_product: Dict[str, Dict[str, Any]] = {}
    for line in items:
        pid = ref_id(line.get("product"))
        if pid is not None and pid in by_product:
            by_product[pid]["quantity"] += line.get("quantity", 1)
            continue
        if pid is not None:
            by_product[pid] = line
        merged.append(line)
    return merged


def cart_total(items: List[Dict[str, Any]]) -> float:
    return round_half_up(sum(line.get("price", 0) * line.get("quantity", 1) for line in items), 2)


class CartReconciler:
    def __init__(self, db: Database, catalog: CatalogStore):
        self.db = db
        self.catalog = catalog

    # ---------------- Persistence ----------------
    def _load(self, user_id: str, collection: str = CART) -> Optional[Dict[str, Any]]:
        return self.db[collection].find_one({"user": user_id})

    def _save(self, user_id: str, items: List[Dict[str, Any]], collection: str = CART) -> Dict[str, Any]:
        now = utcnow()
        self.db[collection].update_one(
            {"user": user_id},
            {"$set": {"items": items, "updated_at": now}, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )
        return self._load(user_id, collection)

    def _require_cart(self, user_id: str) -> Dict[str, Any]:
        cart = self._load(user_id)
        if not cart:
            raise NotFound("Cart not found")
        return cart

    def _purchasable(self, product_id: str) -> Dict[str, Any]:
        if not product_id:
            raise InvalidInput("Product ID is required")
        product = self.catalog.get(product_id)
        if not product.get("is_active", True):
            raise NotFound("Product not found")
        return product

    @staticmethod
    def _new_line(product: Dict[str, Any], quantity: int) -> Dict[str, Any]:
        return {
            "_id": ObjectId(),
            "product": str(product["_id"]),
            "name": product["name"],
            "price": product["price"],
            "image": product.get("image"),
            "quantity": quantity,
        }

    # ---------------- Views ----------------
    def _line_view(self, line: Dict[str, Any], product: Optional[Dict[str, Any]]) -> CartLineView:
        if product is not None:
            ref = ResolvedRef(product=ProductSnapshot(
                id=str(product["_id"]),
                name=product["name"],
                price=product["price"],
                image=product.get("image"),
                count_in_stock=product.get("count_in_stock", 0),
                is_active=product.get("is_active", True),
                owner=ref_id(product.get("owner")),
            ))
        else:
            ref = UnresolvedRef(product_id=ref_id(line.get("product")))
        return CartLineView(
            id=str(line.get("_id")),
            ref=ref,
            name=line.get("name", ""),
            price=line.get("price", 0),
            image=line.get("image"),
            quantity=line.get("quantity", 1),
        )

    def _view(self, doc: Dict[str, Any]) -> CartView:
        items = doc.get("items") or []
        lines = [self._line_view(line, self.catalog.find(line.get("product"))) for line in items]
        unresolved = sum(1 for line in lines if not line.resolved)
        return CartView(
            id=str(doc["_id"]) if doc.get("_id") else None,
            user=doc["user"],
            items=lines,
            total=cart_total(items),
            is_checkout_ready=bool(lines) and unresolved == 0,
            unresolved_count=unresolved,
        )

    # ---------------- Reconciliation ----------------
    def _repair(self, line: Dict[str, Any]) -> Optional[str]:
        """Find the product a broken line meant. Returns the product id or None."""
        name, price = line.get("name"), line.get("price")
        logger.info("Attempting to repair cart line %s (%s @ %s)", line.get("_id"), name, price)
        if not name:
            return None
        product = self.catalog.find_by_name_and_price(name, price)
        if product:
            logger.info("Repaired cart line %s -> product %s", line.get("_id"), product["_id"])
            return str(product["_id"])
        by_name = self.catalog.find_by_name(name)
        if by_name:
            logger.warning(
                "Price mismatch for cart line %s: cart price %s vs product %s price %s; left unresolved",
                line.get("_id"), price, by_name["_id"], by_name.get("price"),
            )
        else:
            logger.warning("No product found for cart line %s (%s)", line.get("_id"), name)
        return None

    def _reconcile(self, cart: Dict[str, Any]) -> Dict[str, Any]:
        items = cart.get("items") or []
        changed = False
        for line in items:
            pid = ref_id(line.get("product"))
            if pid is not None and self.catalog.find(pid) is not None:
                if line.get("product") != pid:
                    line["product"] = pid
                    changed = True
                continue
            repaired = self._repair(line)
            if repaired:
                line["product"] = repaired
                changed = True
        merged = merge_duplicate_lines(items)
        if changed or len(merged) != len(items):
            logger.info("Cart for user %s updated after reconciliation", cart["user"])
            cart = self._save(cart["user"], merged)
        return cart

    # ---------------- Operations ----------------
    def get_cart(self, user_id: str) -> CartView:
        cart = self._load(user_id)
        if not cart:
            cart = self._save(user_id, [])
        elif cart.get("items"):
            cart = self._reconcile(cart)
        return self._view(cart)

    def add_item(self, user_id: str, product_id: str, quantity: int = 1) -> CartView:
        _check_quantity(quantity)
        product = self._purchasable(product_id)
        cart = self._load(user_id)
        items = list(cart.get("items") or []) if cart else []
        for line in items:
            if ref_id(line.get("product")) == str(product["_id"]):
                line["quantity"] = line.get("quantity", 0) + quantity
                break
        else:
            items.append(self._new_line(product, quantity))
            logger.info("Added product %s x%s to cart of user %s", product_id, quantity, user_id)
        return self._view(self._save(user_id, items))

    def update_quantity(self, user_id: str, product_id: str, quantity: int) -> CartView:
        _check_quantity(quantity)
        cart = self._require_cart(user_id)
        items = list(cart.get("items") or [])
        ref = ref_id(product_id) or product_id
        for line in items:
            if ref_id(line.get("product")) == ref:
                line["quantity"] = quantity
                break
        else:
            raise NotFound("Item not found in cart")
        return self._view(self._save(user_id, items))

    def remove_item(self, user_id: str, product_id: str) -> CartView:
        """Remove by product reference, falling back to the line id."""
        cart = self._require_cart(user_id)
        items = list(cart.get("items") or [])
        ref = ref_id(product_id) or product_id
        kept = [line for line in items if ref_id(line.get("product")) != ref]
        if len(kept) == len(items):
            logger.info("No cart line matched product %s, trying line id", product_id)
            kept = [line for line in items if str(line.get("_id")) != ref]
        logger.info("Removed %s line(s) from cart of user %s", len(items) - len(kept), user_id)
        return self._view(self._save(user_id, kept))

    def remove_item_by_id(self, user_id: str, cart_item_id: str) -> CartView:
        cart = self._require_cart(user_id)
        items = list(cart.get("items") or [])
        ref = ref_id(cart_item_id) or cart_item_id
        kept = [line for line in items if str(line.get("_id")) != ref]
        logger.info("Removed %s line(s) by id from cart of user %s", len(items) - len(kept), user_id)
        return self._view(self._save(user_id, kept))

    def clear(self, user_id: str) -> CartView:
        self._require_cart(user_id)
        return self._view(self._save(user_id, []))

    # ---------------- Buy now ----------------
    def set_buy_now(self, user_id: str, product_id: str, quantity: int = 1) -> CartView:
        _check_quantity(quantity)
        product = self._purchasable(product_id)
        selection = self._save(user_id, [self._new_line(product, quantity)], SELECTION)
        return self._view(selection)

    def get_buy_now(self, user_id: str) -> CartView:
        selection = self._load(user_id, SELECTION)
        if not selection:
            return CartView(user=user_id)
        return self._view(selection)

    def discard_buy_now(self, user_id: str) -> bool:
        return self.db[SELECTION].delete_one({"user": user_id}).deleted_count > 0

