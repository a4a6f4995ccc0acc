"""
Order messaging between a buyer and the sellers of the products they ordered.
"""
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import create_document, oid, ref_id, serialize_doc
from errors import Forbidden, InvalidInput, NotFound
from logger import get_logger
from orders import OrderProcessor
from schemas import Message, MessageType

logger = get_logger("messages")

MESSAGE = "message"


class MessageService:
    def __init__(self, db: Database, orders: OrderProcessor):
        self.db = db
        self.orders = orders

    def _order(self, order_id: str) -> Dict[str, Any]:
        order = self.db["order"].find_one({"_id": oid(order_id)})
        if not order:
            raise NotFound("Order not found")
        return order

    def _owner_for(self, order: Dict[str, Any], product_id: Optional[str]) -> str:
        items = order.get("order_items") or []
        if product_id:
            items = [i for i in items if ref_id(i.get("product")) == product_id]
        if not items:
            raise NotFound("Product not found in order")
        product = self.orders.catalog.find(items[0].get("product"))
        owner = ref_id(product.get("owner")) if product else None
        if not owner:
            raise NotFound("Product not found")
        return owner

    def send(
        self,
        sender_id: str,
        order_id: str,
        text: str,
        message_type: MessageType = MessageType.BUYER_TO_OWNER,
        product_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        text = (text or "").strip()
        if not text:
            raise InvalidInput("Message is required")
        order = self._order(order_id)

        if message_type == MessageType.BUYER_TO_OWNER:
            if not self.orders.is_buyer(order, sender_id):
                raise Forbidden("Only the buyer can message the seller")
            recipient = self._owner_for(order, product_id)
        elif message_type == MessageType.OWNER_TO_BUYER:
            if sender_id not in self.orders.seller_ids(order):
                raise Forbidden("Only a seller on this order can message the buyer")
            recipient = ref_id(order.get("user"))
        else:
            raise InvalidInput("System messages cannot be sent directly")

        message_id = create_document(
            self.db,
            MESSAGE,
            Message(order=str(order["_id"]), sender=sender_id, recipient=recipient, message=text, message_type=message_type),
        )
        logger.info("Message %s (%s) sent on order %s", message_id, message_type.value, order_id)
        return self.to_view(self.db[MESSAGE].find_one({"_id": oid(message_id)}))

    def thread(self, order_id: str, requester_id: str) -> List[Dict[str, Any]]:
        order = self._order(order_id)
        if not self.orders.is_participant(order, requester_id):
            raise Forbidden("Not authorized to view these messages")
        cursor = self.db[MESSAGE].find({"order": str(order["_id"])}).sort("created_at", ASCENDING)
        return [self.to_view(m) for m in cursor]

    def inbox(self, user_id: str) -> List[Dict[str, Any]]:
        cursor = self.db[MESSAGE].find({"$or": [{"sender": user_id}, {"recipient": user_id}]}).sort("created_at", DESCENDING)
        return [self.to_view(m) for m in cursor]

    def mark_read(self, message_id: str, requester_id: str) -> Dict[str, Any]:
        message = self.db[MESSAGE].find_one({"_id": oid(message_id)})
        if not message:
            raise NotFound("Message not found")
        if ref_id(message.get("recipient")) != requester_id:
            raise Forbidden("Not authorized to mark this message as read")
        self.db[MESSAGE].update_one({"_id": message["_id"]}, {"$set": {"is_read": True}})
        message["is_read"] = True
        return self.to_view(message)

    def _party(self, user_id: Any) -> Optional[Dict[str, Any]]:
        uid = ref_id(user_id)
        user = self.db["user"].find_one({"_id": oid(uid)}) if uid else None
        return {"id": uid, "name": user.get("name"), "email": user.get("email")} if user else None

    def to_view(self, message: Dict[str, Any]) -> Dict[str, Any]:
        out = serialize_doc(message)
        out["sender_info"] = self._party(message.get("sender"))
        out["recipient_info"] = self._party(message.get("recipient"))
        return out
