"""
Order processor: turns a finalized item snapshot into an order, takes the
stock, and fans out notifications once the order is committed.
"""
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING
from pymongo.database import Database

from cart import CartReconciler
from catalog import CatalogStore
from config import Settings
from database import create_document, get_documents, oid, ref_id, serialize_doc, utcnow
from errors import Forbidden, InvalidInput, NotFound
from logger import get_logger
from notifications import NotificationFanout
from pricing import calculate_pricing, items_subtotal
from schemas import Order, OrderItem, OrderStatus, PaymentMethod, PaymentResult, ShippingAddress

logger = get_logger("orders")

ORDER = "order"


class OrderProcessor:
    def __init__(
        self,
        db: Database,
        catalog: CatalogStore,
        notifier: NotificationFanout,
        carts: CartReconciler,
        settings: Settings,
    ):
        self.db = db
        self.catalog = catalog
        self.notifier = notifier
        self.carts = carts
        self.settings = settings

    # ---------------- Creation ----------------
    def _reserve(self, items: List[OrderItem]) -> Tuple[List[OrderItem], "OrderedDict[str, int]"]:
        """Snapshot lines priced from the catalog, plus quantity per product checked against stock."""
        lines: List[OrderItem] = []
        needed: "OrderedDict[str, int]" = OrderedDict()
        for item in items:
            product = self.catalog.find(item.product)
            if product is None or not product.get("is_active", True):
                raise NotFound(f"Product not found: {item.name}")
            pid = str(product["_id"])
            needed[pid] = needed.get(pid, 0) + item.qty
            if not self.catalog.has_stock(product, needed[pid]):
                raise InvalidInput(f"Insufficient stock for {product['name']}")
            if item.price != product["price"]:
                logger.warning("Line %s submitted at %s, catalog price is %s", pid, item.price, product["price"])
            lines.append(OrderItem(
                product=pid,
                name=product["name"],
                qty=item.qty,
                image=product.get("image") or item.image,
                price=product["price"],
            ))
        return lines, needed

    def create_order(
        self,
        buyer: Dict[str, Any],
        items: List[OrderItem],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        pricing: Optional[Dict[str, float]] = None,
    ) -> Dict[str, Any]:
        if not items:
            raise InvalidInput("No order items")
        items, needed = self._reserve(items)

        computed = calculate_pricing(
            items_subtotal(items),
            tax_rate=self.settings.tax_rate,
            free_shipping_threshold=self.settings.free_shipping_threshold,
            shipping_fee=self.settings.shipping_fee,
        )
        if pricing:
            submitted = {k: v for k, v in pricing.items() if v is not None}
            expected = computed.as_dict()
            if any(abs(float(v) - expected[k]) > 0.01 for k, v in submitted.items() if k in expected):
                logger.warning("Client pricing %s differs from computed %s; using computed", submitted, expected)

        order = Order(
            user=str(buyer["_id"]),
            order_items=items,
            shipping_address=shipping_address,
            payment_method=payment_method,
            **computed.as_dict(),
        )
        order_id = create_document(self.db, ORDER, order)
        logger.info("Order %s created for user %s (total %s)", order_id, buyer["_id"], computed.total_price)

        for pid, qty in needed.items():
            if not self.catalog.decrement_stock(pid, qty):
                logger.warning("Stock for product %s changed before order %s could take %s", pid, order_id, qty)

        created = self.db[ORDER].find_one({"_id": oid(order_id)})

        tasks = self.notifier.order_tasks(buyer, created)
        tasks.add("discard_buy_now", lambda: self.carts.discard_buy_now(str(buyer["_id"])))
        outcome = tasks.run()
        failed = [name for name, ok in outcome.items() if not ok]
        if failed:
            logger.warning("Order %s committed; best-effort tasks failed: %s", order_id, failed)
        return created

    # ---------------- Reads ----------------
    def _load(self, order_id: str) -> Dict[str, Any]:
        order = self.db[ORDER].find_one({"_id": oid(order_id)})
        if not order:
            raise NotFound("Order not found")
        return order

    def seller_ids(self, order: Dict[str, Any]) -> set:
        sellers = set()
        for item in order.get("order_items") or []:
            product = self.catalog.find(item.get("product"))
            owner = ref_id(product.get("owner")) if product else None
            if owner:
                sellers.add(owner)
        return sellers

    def is_buyer(self, order: Dict[str, Any], user_id: str) -> bool:
        return ref_id(order.get("user")) == user_id

    def is_participant(self, order: Dict[str, Any], user_id: str) -> bool:
        return self.is_buyer(order, user_id) or user_id in self.seller_ids(order)

    def to_view(self, order: Dict[str, Any]) -> Dict[str, Any]:
        out = serialize_doc(order)
        buyer = self.db["user"].find_one({"_id": oid(order["user"])}) if ref_id(order.get("user")) else None
        out["buyer"] = {"id": str(buyer["_id"]), "name": buyer.get("name"), "email": buyer.get("email")} if buyer else None
        return out

    def get_order(self, order_id: str, requester_id: str) -> Dict[str, Any]:
        order = self._load(order_id)
        if not self.is_participant(order, requester_id):
            raise Forbidden("Not authorized to view this order")
        return order

    def list_for_buyer(self, user_id: str) -> List[Dict[str, Any]]:
        return get_documents(self.db, ORDER, {"user": user_id}, sort=[("created_at", DESCENDING)])

    # ---------------- Transitions ----------------
    def mark_paid(self, order_id: str, requester_id: str, payment_result: PaymentResult) -> Dict[str, Any]:
        order = self._load(order_id)
        if not self.is_buyer(order, requester_id):
            raise Forbidden("Only the buyer can pay for this order")
        if order.get("is_paid"):
            raise InvalidInput("Order is already paid")
        changes = {
            "is_paid": True,
            "paid_at": utcnow(),
            "payment_result": payment_result.model_dump(),
            "updated_at": utcnow(),
        }
        if order.get("status") != OrderStatus.DELIVERED.value:
            changes["status"] = OrderStatus.PAID.value
        self.db[ORDER].update_one({"_id": order["_id"]}, {"$set": changes})
        logger.info("Order %s marked paid (%s)", order_id, payment_result.id)
        return self._load(order_id)

    def mark_delivered(self, order_id: str, requester_id: str) -> Dict[str, Any]:
        order = self._load(order_id)
        if requester_id not in self.seller_ids(order):
            raise Forbidden("Only a seller on this order can mark it delivered")
        if order.get("is_delivered"):
            raise InvalidInput("Order is already delivered")
        now = utcnow()
        self.db[ORDER].update_one(
            {"_id": order["_id"]},
            {"$set": {"is_delivered": True, "delivered_at": now, "status": OrderStatus.DELIVERED.value, "updated_at": now}},
        )
        logger.info("Order %s marked delivered by %s", order_id, requester_id)
        return self._load(order_id)
