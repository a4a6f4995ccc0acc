"""
Database Schemas for the multi-vendor shop

Define MongoDB collection schemas using Pydantic models.
Each model class name maps to a collection name in lowercase.

- User -> "user"
- Product -> "product"
- Cart -> "cart"
- Checkoutselection -> "checkoutselection"
- Order -> "order"
- Message -> "message"
- Review -> "review"
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field


class PaymentMethod(str, Enum):
    COD = "COD"
    STRIPE = "Stripe"


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    DELIVERED = "Delivered"


class MessageType(str, Enum):
    BUYER_TO_OWNER = "buyer_to_owner"
    OWNER_TO_BUYER = "owner_to_buyer"
    SYSTEM = "system"


class User(BaseModel):
    """Users collection schema"""
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="Salted PBKDF2 hash")
    phone: Optional[str] = Field(None, description="Contact phone, used by SMS notifications")
    token: Optional[str] = Field(None, description="Current bearer token")


class Product(BaseModel):
    """Products collection schema"""
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: float = Field(0, ge=0, le=100, description="Percent off")
    image: str = Field(..., min_length=1, description="Primary image URL")
    images: List[str] = Field(default_factory=list)
    category: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1)
    rating: float = Field(0, ge=0, le=5, description="Derived from reviews")
    num_reviews: int = Field(0, ge=0, description="Derived from reviews")
    count_in_stock: int = Field(0, ge=0)
    delivery_time: str = "3-5 days"
    warranty: str = "1 year"
    features: List[str] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict)
    is_active: bool = True
    owner: str = Field(..., description="Owner user id")
    tags: List[str] = Field(default_factory=list)


class CartItem(BaseModel):
    """Stored cart line. ``product`` may be missing on lines from older writes."""
    product: Optional[str] = None
    name: str
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    user: str = Field(..., description="Owner user id, unique")
    items: List[CartItem] = Field(default_factory=list)


class Checkoutselection(BaseModel):
    """Single-line staging area for the buy-now flow; never touches the cart."""
    user: str
    items: List[CartItem] = Field(default_factory=list, max_length=1)


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1, alias="postalCode")
    country: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1, alias="phoneNumber")

    model_config = ConfigDict(populate_by_name=True)


class OrderItem(BaseModel):
    product: str
    name: str
    qty: int = Field(..., ge=1)
    image: Optional[str] = None
    price: float = Field(..., ge=0)


class PaymentResult(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class Order(BaseModel):
    user: str
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    items_price: float = Field(..., ge=0)
    tax_price: float = Field(..., ge=0)
    shipping_price: float = Field(..., ge=0)
    total_price: float = Field(..., ge=0)
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    payment_result: Optional[PaymentResult] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    status: OrderStatus = OrderStatus.PENDING

    model_config = ConfigDict(use_enum_values=True)


class Message(BaseModel):
    order: str
    sender: str
    recipient: str
    message: str = Field(..., min_length=1)
    is_read: bool = False
    message_type: MessageType = MessageType.BUYER_TO_OWNER

    model_config = ConfigDict(use_enum_values=True)


class Review(BaseModel):
    user: str
    product: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


# Cart lines as returned to clients: a product reference is either resolved
# against the catalog or left unresolved for visibility.
class ProductSnapshot(BaseModel):
    id: str
    name: str
    price: float
    image: Optional[str] = None
    count_in_stock: int = 0
    is_active: bool = True
    owner: Optional[str] = None


class ResolvedRef(BaseModel):
    kind: Literal["resolved"] = "resolved"
    product: ProductSnapshot


class UnresolvedRef(BaseModel):
    kind: Literal["unresolved"] = "unresolved"
    product_id: Optional[str] = None


class CartLineView(BaseModel):
    id: str
    ref: Union[ResolvedRef, UnresolvedRef] = Field(..., discriminator="kind")
    name: str
    price: float
    image: Optional[str] = None
    quantity: int

    @computed_field
    @property
    def resolved(self) -> bool:
        return isinstance(self.ref, ResolvedRef)

    @computed_field
    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class CartView(BaseModel):
    id: Optional[str] = None
    user: str
    items: List[CartLineView] = Field(default_factory=list)
    total: float = 0
    is_checkout_ready: bool = False
    unresolved_count: int = 0
