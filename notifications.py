"""
Post-order notification fan-out.

Channels:
  email     : buyer confirmation and per-item seller alert (Gmail SMTP)
  in-app    : a ``system`` Message from buyer to each item's seller
  sms       : Twilio SMS/WhatsApp; dormant unless SMS_NOTIFICATIONS_ENABLED

Every send is best effort: failures are logged and dropped, never retried,
and never change the outcome of the request that triggered them.
"""
import re
import smtplib
from email.message import EmailMessage
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from pymongo.database import Database
from twilio.rest import Client as TwilioClient

from catalog import CatalogStore
from config import Settings
from database import create_document
from logger import get_logger
from schemas import Message, MessageType

logger = get_logger("notifications")


class BestEffortTasks:
    """Named side effects run after the authoritative write has committed."""

    def __init__(self):
        self._tasks: List[Tuple[str, Callable[[], Any]]] = []

    def add(self, name: str, fn: Callable[[], Any]) -> None:
        self._tasks.append((name, fn))

    def __len__(self) -> int:
        return len(self._tasks)

    def run(self) -> Dict[str, bool]:
        outcome: Dict[str, bool] = {}
        for name, fn in self._tasks:
            try:
                fn()
                outcome[name] = True
            except Exception as e:
                logger.error("Best-effort task %s failed: %s", name, e)
                outcome[name] = False
        return outcome


# ---------------- Email ----------------
class Mailer(Protocol):
    enabled: bool

    def send(self, to: str, subject: str, html: str) -> bool: ...


class SmtpMailer:
    def __init__(self, settings: Settings):
        self.sender = settings.email_user
        self.password = settings.email_pass
        self.host = settings.smtp_host
        self.port = settings.smtp_port

    @property
    def enabled(self) -> bool:
        return bool(self.sender and self.password)

    def send(self, to: str, subject: str, html: str) -> bool:
        if not self.enabled:
            logger.warning("EMAIL_USER/EMAIL_PASS not set, email to %s skipped", to)
            return False
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")
        with smtplib.SMTP_SSL(self.host, self.port, timeout=30) as smtp:
            smtp.login(self.sender, self.password)
            smtp.send_message(msg)
        logger.info("Email sent to %s: %s", to, subject)
        return True


def _date(value: Any) -> str:
    return value.strftime("%d/%m/%Y") if hasattr(value, "strftime") else str(value or "")


def order_confirmation_email(user_name: str, order: Dict[str, Any]) -> Tuple[str, str]:
    address = order.get("shipping_address") or {}
    html = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Order Confirmation</h2>
  <p>Dear {user_name},</p>
  <p>Thank you for your order! Your order has been successfully placed.</p>
  <h3>Order Details:</h3>
  <p><strong>Order ID:</strong> {order.get("_id")}</p>
  <p><strong>Order Date:</strong> {_date(order.get("created_at"))}</p>
  <p><strong>Total Amount:</strong> &#8377;{order.get("total_price")}</p>
  <p><strong>Payment Method:</strong> {order.get("payment_method")}</p>
  <h3>Shipping Address:</h3>
  <p>{address.get("address", "")}</p>
  <p>{address.get("city", "")}, {address.get("postal_code", "")}</p>
  <p>{address.get("country", "")}</p>
  <p>We'll send you updates on your order status.</p>
</div>
"""
    return "Order Confirmation - Multi Vendor Shop", html


def owner_order_email(owner_name: str, order: Dict[str, Any], customer_name: str, item: Dict[str, Any]) -> Tuple[str, str]:
    address = order.get("shipping_address") or {}
    html = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>New Order Received!</h2>
  <p>Dear {owner_name},</p>
  <p>You have received a new order for your product.</p>
  <h3>Order Details:</h3>
  <p><strong>Product:</strong> {item.get("name")}</p>
  <p><strong>Quantity:</strong> {item.get("qty")}</p>
  <p><strong>Price:</strong> &#8377;{item.get("price")}</p>
  <p><strong>Order ID:</strong> {order.get("_id")}</p>
  <p><strong>Order Date:</strong> {_date(order.get("created_at"))}</p>
  <h3>Customer Information:</h3>
  <p><strong>Customer Name:</strong> {customer_name}</p>
  <p><strong>Customer Phone:</strong> {address.get("phone_number", "")}</p>
  <p>Please process this order as soon as possible.</p>
</div>
"""
    return "New Order Received - Multi Vendor Shop", html


# ---------------- SMS / WhatsApp ----------------
class SmsNotifier:
    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.enabled = settings.sms_notifications_enabled
        self.from_number = settings.twilio_phone_number
        self.country_code = settings.default_country_code
        self._client = client
        if client is None and self.enabled and settings.twilio_account_sid:
            self._client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)

    def format_recipient(self, phone: str) -> str:
        digits = re.sub(r"\D", "", str(phone or ""))
        if not digits.startswith(self.country_code):
            digits = self.country_code + digits
        if self.from_number.startswith("whatsapp:"):
            return f"whatsapp:+{digits}"
        return f"+{digits}"

    def send(self, phone: str, body: str) -> bool:
        if not self.enabled or self._client is None:
            logger.debug("SMS notifications disabled, message to %s dropped", phone)
            return False
        result = self._client.messages.create(body=body, from_=self.from_number, to=self.format_recipient(phone))
        logger.info("SMS notification sent: %s", getattr(result, "sid", result))
        return True

    def order_confirmation(self, phone: str, user_name: str, order: Dict[str, Any]) -> bool:
        body = (
            f"Order Confirmation!\n\nHi {user_name}, your order has been successfully placed!\n\n"
            f"Order ID: {order.get('_id')}\nTotal Amount: {order.get('total_price')}\n"
            f"Payment Method: {order.get('payment_method')}\nOrder Date: {_date(order.get('created_at'))}"
        )
        return self.send(phone, body)

    def owner_alert(self, phone: str, owner_name: str, order: Dict[str, Any], customer_name: str, item: Dict[str, Any]) -> bool:
        body = (
            f"New Order Received!\n\nHi {owner_name}, you have received a new order!\n\n"
            f"Product: {item.get('name')}\nQuantity: {item.get('qty')}\nPrice: {item.get('price')}\n"
            f"Order ID: {order.get('_id')}\nCustomer: {customer_name}"
        )
        return self.send(phone, body)


# ---------------- Fan-out ----------------
class NotificationFanout:
    def __init__(self, db: Database, catalog: CatalogStore, mailer: Mailer, sms: SmsNotifier):
        self.db = db
        self.catalog = catalog
        self.mailer = mailer
        self.sms = sms

    def notify_buyer(self, buyer: Dict[str, Any], order: Dict[str, Any]) -> None:
        subject, html = order_confirmation_email(buyer.get("name", ""), order)
        self.mailer.send(buyer["email"], subject, html)

    def notify_buyer_sms(self, buyer: Dict[str, Any], order: Dict[str, Any]) -> None:
        phone = (order.get("shipping_address") or {}).get("phone_number") or buyer.get("phone")
        self.sms.order_confirmation(phone, buyer.get("name", ""), order)

    def notify_owner(self, buyer: Dict[str, Any], order: Dict[str, Any], item: Dict[str, Any]) -> None:
        """System message plus email to the seller of one ordered item."""
        product = self.catalog.find(item.get("product"))
        owner = self.catalog.owner_of(product) if product else None
        if not owner:
            logger.warning("Product or owner not found for order %s item %s", order.get("_id"), item.get("name"))
            return

        system_message = Message(
            order=str(order["_id"]),
            sender=str(buyer["_id"]),
            recipient=str(owner["_id"]),
            message=f"New order received for {item.get('name')} (Qty: {item.get('qty')}). Order ID: {order['_id']}",
            message_type=MessageType.SYSTEM,
        )
        create_document(self.db, "message", system_message)
        logger.info("System message created for owner %s on order %s", owner["_id"], order["_id"])

        try:
            subject, html = owner_order_email(owner.get("name", ""), order, buyer.get("name", ""), item)
            self.mailer.send(owner["email"], subject, html)
        except Exception as e:
            logger.error("Owner notification email to %s failed: %s", owner.get("email"), e)

        if self.sms.enabled and owner.get("phone"):
            self.sms.owner_alert(owner["phone"], owner.get("name", ""), order, buyer.get("name", ""), item)

    def order_tasks(self, buyer: Dict[str, Any], order: Dict[str, Any]) -> BestEffortTasks:
        tasks = BestEffortTasks()
        tasks.add("buyer_email", lambda: self.notify_buyer(buyer, order))
        if self.sms.enabled:
            tasks.add("buyer_sms", lambda: self.notify_buyer_sms(buyer, order))
        for index, item in enumerate(order.get("order_items") or []):
            tasks.add(f"owner_notification:{index}", lambda item=item: self.notify_owner(buyer, order, item))
        return tasks
