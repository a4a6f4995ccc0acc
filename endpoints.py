"""
HTTP routes for the shop API.

Handlers stay thin: they validate the request body, resolve the caller and
delegate to a service. Service errors (``errors.ShopError``) are rendered by
the handlers installed in ``main.create_app``.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth import AuthService, public_user
from cart import CartReconciler
from catalog import CatalogStore
from database import serialize_doc
from deps import (
    Services,
    current_user,
    current_user_id,
    get_auth,
    get_carts,
    get_catalog,
    get_messages,
    get_orders,
    get_reviews,
    get_services,
)
from messages import MessageService
from orders import OrderProcessor
from reviews import ReviewAggregator
from schemas import CartView, MessageType, OrderItem, PaymentMethod, PaymentResult, ShippingAddress

router = APIRouter(prefix="/api")


# ---------------- Auth ----------------
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, auth: AuthService = Depends(get_auth)):
    return auth.register(payload.name, payload.email, payload.password, payload.phone)


@router.post("/auth/login")
def login(payload: LoginRequest, auth: AuthService = Depends(get_auth)):
    session = auth.login(payload.email, payload.password)
    if not session:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return session


@router.get("/auth/me")
def me(user: Dict[str, Any] = Depends(current_user)):
    return public_user(user)


# ---------------- Products ----------------
class ProductCreate(BaseModel):
    name: str
    description: str
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: float = Field(0, ge=0, le=100)
    image: str = Field(..., min_length=1, description="Hosted image URL")
    images: Optional[List[str]] = None
    category: str
    brand: str
    count_in_stock: int = Field(0, ge=0)
    delivery_time: Optional[str] = None
    warranty: Optional[str] = None
    features: Optional[List[str]] = None
    specifications: Optional[Dict[str, str]] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    image: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    count_in_stock: Optional[int] = Field(None, ge=0)
    delivery_time: Optional[str] = None
    warranty: Optional[str] = None
    features: Optional[List[str]] = None
    specifications: Optional[Dict[str, str]] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


@router.get("/products")
def list_products(catalog: CatalogStore = Depends(get_catalog)):
    return catalog.list_active()


@router.get("/products/{product_id}")
def get_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)):
    return catalog.get_active(product_id)


@router.get("/admin/products")
def list_all_products(_: str = Depends(current_user_id), catalog: CatalogStore = Depends(get_catalog)):
    return catalog.list_all()


@router.get("/admin/myproducts")
def list_my_products(user_id: str = Depends(current_user_id), catalog: CatalogStore = Depends(get_catalog)):
    return catalog.list_owned(user_id)


@router.post("/admin/products", status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, user_id: str = Depends(current_user_id), catalog: CatalogStore = Depends(get_catalog)):
    return catalog.create(user_id, payload.model_dump())


@router.get("/admin/products/{product_id}")
def get_my_product(product_id: str, user_id: str = Depends(current_user_id), catalog: CatalogStore = Depends(get_catalog)):
    return catalog.get_owned(product_id, user_id)


@router.put("/admin/products/{product_id}")
def update_product(
    product_id: str,
    payload: ProductUpdate,
    user_id: str = Depends(current_user_id),
    catalog: CatalogStore = Depends(get_catalog),
):
    return catalog.update(product_id, user_id, payload.model_dump())


@router.delete("/admin/products/{product_id}")
def delete_product(product_id: str, user_id: str = Depends(current_user_id), catalog: CatalogStore = Depends(get_catalog)):
    catalog.delete(product_id, user_id)
    return {"message": "Product removed"}


# ---------------- Cart ----------------
class CartItemRequest(BaseModel):
    product_id: str = Field(..., alias="productId")
    quantity: int = 1

    model_config = ConfigDict(populate_by_name=True)


class QuantityRequest(BaseModel):
    quantity: int


@router.get("/cart", response_model=CartView)
def get_cart(user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return carts.get_cart(user_id)


@router.post("/cart/items", response_model=CartView)
def add_cart_item(payload: CartItemRequest, user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return carts.add_item(user_id, payload.product_id, payload.quantity)


@router.put("/cart/items/{product_id}", response_model=CartView)
def update_cart_item(
    product_id: str,
    payload: QuantityRequest,
    user_id: str = Depends(current_user_id),
    carts: CartReconciler = Depends(get_carts),
):
    return carts.update_quantity(user_id, product_id, payload.quantity)


@router.delete("/cart/items/{product_id}", response_model=CartView)
def remove_cart_item(product_id: str, user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return carts.remove_item(user_id, product_id)


@router.delete("/cart/item/{cart_item_id}", response_model=CartView)
def remove_cart_line(cart_item_id: str, user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return carts.remove_item_by_id(user_id, cart_item_id)


@router.delete("/cart", response_model=CartView)
def clear_cart(user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return carts.clear(user_id)


@router.post("/cart/buy-now", response_model=CartView)
def buy_now(payload: CartItemRequest, user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return carts.set_buy_now(user_id, payload.product_id, payload.quantity)


@router.get("/cart/buy-now", response_model=CartView)
def get_buy_now(user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return carts.get_buy_now(user_id)


@router.delete("/cart/buy-now")
def discard_buy_now(user_id: str = Depends(current_user_id), carts: CartReconciler = Depends(get_carts)):
    return {"discarded": carts.discard_buy_now(user_id)}


# ---------------- Orders ----------------
class PricingRequest(BaseModel):
    items_price: Optional[float] = Field(None, alias="itemsPrice")
    tax_price: Optional[float] = Field(None, alias="taxPrice")
    shipping_price: Optional[float] = Field(None, alias="shippingPrice")
    total_price: Optional[float] = Field(None, alias="totalPrice")

    model_config = ConfigDict(populate_by_name=True)


class OrderCreate(BaseModel):
    order_items: List[OrderItem] = Field(..., alias="orderItems")
    shipping_address: ShippingAddress = Field(..., alias="shippingAddress")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    pricing: Optional[PricingRequest] = None

    model_config = ConfigDict(populate_by_name=True)


@router.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderCreate, user: Dict[str, Any] = Depends(current_user), orders: OrderProcessor = Depends(get_orders)):
    pricing = payload.pricing.model_dump() if payload.pricing else None
    order = orders.create_order(user, payload.order_items, payload.shipping_address, payload.payment_method, pricing)
    return serialize_doc(order)


# Registered before /orders/{order_id} so "myorders" is not taken as an id.
@router.get("/orders/myorders")
def my_orders(user_id: str = Depends(current_user_id), orders: OrderProcessor = Depends(get_orders)):
    return serialize_doc(orders.list_for_buyer(user_id))


@router.get("/orders/{order_id}")
def get_order(order_id: str, user_id: str = Depends(current_user_id), orders: OrderProcessor = Depends(get_orders)):
    return orders.to_view(orders.get_order(order_id, user_id))


@router.put("/orders/{order_id}/pay")
def pay_order(
    order_id: str,
    payload: PaymentResult,
    user_id: str = Depends(current_user_id),
    orders: OrderProcessor = Depends(get_orders),
):
    return serialize_doc(orders.mark_paid(order_id, user_id, payload))


@router.put("/orders/{order_id}/deliver")
def deliver_order(order_id: str, user_id: str = Depends(current_user_id), orders: OrderProcessor = Depends(get_orders)):
    return serialize_doc(orders.mark_delivered(order_id, user_id))


# ---------------- Messages ----------------
class MessageCreate(BaseModel):
    order_id: str = Field(..., alias="orderId")
    message: str
    message_type: MessageType = Field(MessageType.BUYER_TO_OWNER, alias="messageType")
    product_id: Optional[str] = Field(None, alias="productId")

    model_config = ConfigDict(populate_by_name=True)


@router.post("/messages", status_code=status.HTTP_201_CREATED)
def send_message(payload: MessageCreate, user_id: str = Depends(current_user_id), messages: MessageService = Depends(get_messages)):
    return messages.send(user_id, payload.order_id, payload.message, payload.message_type, payload.product_id)


@router.get("/messages")
def list_messages(user_id: str = Depends(current_user_id), messages: MessageService = Depends(get_messages)):
    return messages.inbox(user_id)


@router.get("/messages/order/{order_id}")
def order_thread(order_id: str, user_id: str = Depends(current_user_id), messages: MessageService = Depends(get_messages)):
    return messages.thread(order_id, user_id)


@router.put("/messages/{message_id}/read")
def mark_message_read(message_id: str, user_id: str = Depends(current_user_id), messages: MessageService = Depends(get_messages)):
    return messages.mark_read(message_id, user_id)


# ---------------- Reviews ----------------
class ReviewCreate(BaseModel):
    product_id: Optional[str] = Field(None, alias="productId")
    rating: Optional[int] = None
    comment: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


@router.post("/reviews")
def upsert_review(payload: ReviewCreate, user_id: str = Depends(current_user_id), reviews: ReviewAggregator = Depends(get_reviews)):
    return reviews.upsert_review(user_id, payload.product_id, payload.rating, payload.comment)


@router.get("/reviews/product/{product_id}")
def product_reviews(product_id: str, reviews: ReviewAggregator = Depends(get_reviews)):
    return reviews.list_for_product(product_id)


@router.get("/reviews/product/{product_id}/user")
def my_product_review(product_id: str, user_id: str = Depends(current_user_id), reviews: ReviewAggregator = Depends(get_reviews)):
    return reviews.get_user_review(user_id, product_id)


@router.delete("/reviews/{review_id}")
def delete_review(review_id: str, user_id: str = Depends(current_user_id), reviews: ReviewAggregator = Depends(get_reviews)):
    return reviews.delete_review(review_id, user_id)


# ---------------- Payment ----------------
class IntentRequest(BaseModel):
    amount: float
    currency: str = "usd"


class SessionRequest(BaseModel):
    amount: float
    currency: str = "inr"


@router.post("/payment/create-stripe-intent")
def create_stripe_intent(payload: IntentRequest, _: str = Depends(current_user_id), services: Services = Depends(get_services)):
    return services.payments.create_intent(payload.amount, payload.currency)


@router.post("/payment/create-stripe-session")
def create_stripe_session(payload: SessionRequest, user: Dict[str, Any] = Depends(current_user), services: Services = Depends(get_services)):
    return services.payments.create_session(payload.amount, payload.currency, user.get("email"))


@router.get("/payment/methods")
def payment_methods(services: Services = Depends(get_services)):
    return {"methods": services.payments.methods()}
