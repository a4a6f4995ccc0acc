"""
Service handles and FastAPI dependencies.

Long-lived clients (Mongo, SMTP settings, Twilio, Cloudinary, Stripe) are
built once at startup and stored on ``app.state.services``; per-request
services are thin wrappers constructed from them.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from auth import AuthService
from cart import CartReconciler
from catalog import CatalogStore
from config import Settings
from database import connect
from images import CloudinaryImageStore, ImageStore
from logger import get_logger
from messages import MessageService
from notifications import Mailer, NotificationFanout, SmsNotifier, SmtpMailer
from orders import OrderProcessor
from payments import StripeGateway
from reviews import ReviewAggregator

logger = get_logger("deps")


@dataclass
class Services:
    settings: Settings
    db: Database
    mailer: Mailer
    sms: SmsNotifier
    images: ImageStore
    payments: StripeGateway
    client: Optional[MongoClient] = None

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB client closed")


def ensure_indexes(db: Database) -> None:
    db["cart"].create_index([("user", ASCENDING)], unique=True)
    db["checkoutselection"].create_index([("user", ASCENDING)], unique=True)
    db["review"].create_index([("user", ASCENDING), ("product", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["user"].create_index([("token", ASCENDING)])
    db["message"].create_index([("order", ASCENDING)])


def build_services(settings: Settings) -> Services:
    client, db = connect(settings.database_url, settings.database_name)
    try:
        ensure_indexes(db)
    except Exception as e:
        logger.warning("Could not create indexes: %s", e)
    return Services(
        settings=settings,
        db=db,
        mailer=SmtpMailer(settings),
        sms=SmsNotifier(settings),
        images=CloudinaryImageStore(settings.cloudinary_url),
        payments=StripeGateway(settings),
        client=client,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_catalog(services: Services = Depends(get_services)) -> CatalogStore:
    return CatalogStore(services.db, services.images)


def get_carts(services: Services = Depends(get_services), catalog: CatalogStore = Depends(get_catalog)) -> CartReconciler:
    return CartReconciler(services.db, catalog)


def get_orders(
    services: Services = Depends(get_services),
    catalog: CatalogStore = Depends(get_catalog),
    carts: CartReconciler = Depends(get_carts),
) -> OrderProcessor:
    notifier = NotificationFanout(services.db, catalog, services.mailer, services.sms)
    return OrderProcessor(services.db, catalog, notifier, carts, services.settings)


def get_messages(services: Services = Depends(get_services), orders: OrderProcessor = Depends(get_orders)) -> MessageService:
    return MessageService(services.db, orders)


def get_reviews(services: Services = Depends(get_services), catalog: CatalogStore = Depends(get_catalog)) -> ReviewAggregator:
    return ReviewAggregator(services.db, catalog)


def get_auth(services: Services = Depends(get_services)) -> AuthService:
    return AuthService(services.db, services.settings.auth_salt)


def current_user(request: Request, auth: AuthService = Depends(get_auth)) -> Dict[str, Any]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    user = auth.user_for_token(token.strip())
    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return user


def current_user_id(user: Dict[str, Any] = Depends(current_user)) -> str:
    return str(user["_id"])
