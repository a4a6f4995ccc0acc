"""
Catalog store: product persistence, ownership checks and derived fields.
"""
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, oid, ref_id, serialize_doc, utcnow
from errors import Forbidden, InvalidInput, NotFound, validation_message
from images import CloudinaryImageStore, ImageStore
from logger import get_logger
from schemas import Product

logger = get_logger("catalog")

PRODUCT = "product"
REVIEW = "review"
USER = "user"

# Fields the owner may never set directly.
_DERIVED_FIELDS = {"rating", "num_reviews", "owner"}


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def discounted_price(product: Dict[str, Any]) -> float:
    discount = product.get("discount") or 0
    price = product.get("price", 0)
    if discount > 0:
        return float(round_half_up(price * (1 - discount / 100), 0))
    return price


class CatalogStore:
    def __init__(self, db: Database, images: Optional[ImageStore] = None):
        self.db = db
        self.images = images or CloudinaryImageStore()

    # ---------------- Lookups ----------------
    def find(self, product_id: Any) -> Optional[Dict[str, Any]]:
        pid = ref_id(product_id)
        if pid is None:
            return None
        return self.db[PRODUCT].find_one({"_id": oid(pid)})

    def get(self, product_id: str) -> Dict[str, Any]:
        product = self.db[PRODUCT].find_one({"_id": oid(product_id)})
        if not product:
            raise NotFound("Product not found")
        return product

    def find_by_name_and_price(self, name: str, price: float) -> Optional[Dict[str, Any]]:
        return self.db[PRODUCT].find_one({"name": name, "price": price})

    def find_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive exact name match."""
        pattern = f"^{re.escape(name)}$"
        return self.db[PRODUCT].find_one({"name": {"$regex": pattern, "$options": "i"}})

    def owner_of(self, product: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        owner_id = ref_id(product.get("owner"))
        if owner_id is None:
            return None
        return self.db[USER].find_one({"_id": oid(owner_id)})

    # ---------------- Public views ----------------
    def to_public(self, product: Dict[str, Any], with_owner: bool = False) -> Dict[str, Any]:
        out = serialize_doc(product)
        out["discounted_price"] = discounted_price(product)
        if with_owner:
            owner = self.owner_of(product)
            out["seller"] = {"id": str(owner["_id"]), "name": owner.get("name"), "email": owner.get("email")} if owner else None
        return out

    def list_active(self) -> List[Dict[str, Any]]:
        cursor = self.db[PRODUCT].find({"is_active": True}).sort("created_at", DESCENDING)
        return [self.to_public(p, with_owner=True) for p in cursor]

    def get_active(self, product_id: str) -> Dict[str, Any]:
        product = self.db[PRODUCT].find_one({"_id": oid(product_id), "is_active": True})
        if not product:
            raise NotFound("Product not found")
        return self.to_public(product, with_owner=True)

    # ---------------- Management ----------------
    def list_all(self) -> List[Dict[str, Any]]:
        cursor = self.db[PRODUCT].find({}).sort("created_at", DESCENDING)
        return [self.to_public(p) for p in cursor]

    def list_owned(self, owner_id: str) -> List[Dict[str, Any]]:
        cursor = self.db[PRODUCT].find({"owner": owner_id}).sort("created_at", DESCENDING)
        products = [self.to_public(p) for p in cursor]
        logger.info("User %s has %s products", owner_id, len(products))
        return products

    def _owned(self, product_id: str, requester_id: str, action: str) -> Dict[str, Any]:
        product = self.get(product_id)
        if ref_id(product.get("owner")) != requester_id:
            raise Forbidden(f"You can only {action} your own products")
        return product

    def get_owned(self, product_id: str, requester_id: str) -> Dict[str, Any]:
        return self.to_public(self._owned(product_id, requester_id, "view"))

    def create(self, owner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        fields = {k: v for k, v in data.items() if k not in _DERIVED_FIELDS and v is not None}
        if fields.get("image") and not fields.get("images"):
            fields["images"] = [fields["image"]]
        try:
            product = Product(owner=owner_id, **fields)
        except ValidationError as e:
            raise InvalidInput(validation_message(e.errors()))
        product_id = create_document(self.db, PRODUCT, product)
        logger.info("Product %s created by owner %s: %s", product_id, owner_id, product.name)
        return self.to_public(self.get(product_id))

    def update(self, product_id: str, requester_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        product = self._owned(product_id, requester_id, "edit")
        changes = {k: v for k, v in changes.items() if k not in _DERIVED_FIELDS and v is not None}

        new_image = changes.get("image")
        old_image = product.get("image")
        images = list(product.get("images") or [])
        if new_image and new_image != old_image:
            if old_image:
                self.images.delete(old_image)
                images = [i for i in images if i != old_image]
            if new_image not in images:
                images.append(new_image)
            changes["images"] = images

        merged = {k: v for k, v in product.items() if k not in ("_id", "created_at", "updated_at")}
        merged.update(changes)
        try:
            Product(**merged)
        except ValidationError as e:
            raise InvalidInput(validation_message(e.errors()))

        changes["updated_at"] = utcnow()
        self.db[PRODUCT].update_one({"_id": product["_id"]}, {"$set": changes})
        return self.to_public(self.get(product_id))

    def delete(self, product_id: str, requester_id: str) -> None:
        product = self._owned(product_id, requester_id, "delete")
        urls = list(product.get("images") or [])
        if product.get("image") and product["image"] not in urls:
            urls.append(product["image"])
        if urls and not self.images.delete_many(urls):
            logger.warning("Some images of product %s could not be deleted", product_id)
        self.db[PRODUCT].delete_one({"_id": product["_id"]})
        logger.info("Product %s removed by owner %s", product_id, requester_id)

    # ---------------- Derived state ----------------
    def has_stock(self, product: Dict[str, Any], quantity: int) -> bool:
        return int(product.get("count_in_stock", 0)) >= quantity

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Atomically take ``quantity`` units; False when stock would go negative."""
        result = self.db[PRODUCT].update_one(
            {"_id": oid(product_id), "count_in_stock": {"$gte": quantity}},
            {"$inc": {"count_in_stock": -quantity}},
        )
        return result.modified_count == 1

    def recompute_rating(self, product_id: str) -> Tuple[float, int]:
        ratings = [int(r.get("rating", 0)) for r in self.db[REVIEW].find({"product": product_id})]
        if ratings:
            rating = round_half_up(sum(ratings) / len(ratings), 1)
        else:
            rating = 0
        self.db[PRODUCT].update_one(
            {"_id": oid(product_id)},
            {"$set": {"rating": rating, "num_reviews": len(ratings), "updated_at": utcnow()}},
        )
        return rating, len(ratings)
