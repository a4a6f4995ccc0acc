"""
Review aggregator: one review per (user, product), with the product's
rating and review count recomputed after every change.
"""
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from catalog import CatalogStore
from database import create_document, oid, ref_id, serialize_doc, utcnow
from errors import Forbidden, InvalidInput, NotFound
from logger import get_logger
from schemas import Review

logger = get_logger("reviews")

REVIEW = "review"


class ReviewAggregator:
    def __init__(self, db: Database, catalog: CatalogStore):
        self.db = db
        self.catalog = catalog

    def upsert_review(self, user_id: str, product_id: str, rating: Any, comment: Optional[str]) -> Dict[str, Any]:
        if not product_id or rating is None or not comment:
            raise InvalidInput("Please provide productId, rating, and comment")
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise InvalidInput("Rating must be between 1 and 5")
        product = self.catalog.get(product_id)
        pid = str(product["_id"])

        existing = self.db[REVIEW].find_one({"user": user_id, "product": pid})
        if existing:
            self.db[REVIEW].update_one(
                {"_id": existing["_id"]},
                {"$set": {"rating": rating, "comment": comment, "created_at": utcnow(), "updated_at": utcnow()}},
            )
            review_id = str(existing["_id"])
            created = False
        else:
            review_id = create_document(self.db, REVIEW, Review(user=user_id, product=pid, rating=rating, comment=comment))
            created = True

        product_rating, num_reviews = self.catalog.recompute_rating(pid)
        logger.info(
            "Review %s %s for product %s; rating now %s over %s review(s)",
            review_id, "created" if created else "updated", pid, product_rating, num_reviews,
        )
        return {
            "message": "Review created successfully" if created else "Review updated successfully",
            "review": self._with_author(self.db[REVIEW].find_one({"_id": oid(review_id)})),
            "product_rating": product_rating,
            "num_reviews": num_reviews,
        }

    def delete_review(self, review_id: str, requester_id: str) -> Dict[str, Any]:
        review = self.db[REVIEW].find_one({"_id": oid(review_id)})
        if not review:
            raise NotFound("Review not found")
        if ref_id(review.get("user")) != requester_id:
            raise Forbidden("You can only delete your own reviews")
        self.db[REVIEW].delete_one({"_id": review["_id"]})
        product_rating, num_reviews = self.catalog.recompute_rating(review["product"])
        logger.info("Review %s deleted; product %s rating now %s/%s", review_id, review["product"], product_rating, num_reviews)
        return {"message": "Review deleted successfully", "product_rating": product_rating, "num_reviews": num_reviews}

    def list_for_product(self, product_id: str) -> List[Dict[str, Any]]:
        cursor = self.db[REVIEW].find({"product": product_id}).sort("created_at", DESCENDING)
        return [self._with_author(r) for r in cursor]

    def get_user_review(self, user_id: str, product_id: str) -> Optional[Dict[str, Any]]:
        review = self.db[REVIEW].find_one({"user": user_id, "product": product_id})
        return serialize_doc(review) if review else None

    def _with_author(self, review: Dict[str, Any]) -> Dict[str, Any]:
        out = serialize_doc(review)
        author = self.db["user"].find_one({"_id": oid(review["user"])}) if ref_id(review.get("user")) else None
        out["user_name"] = author.get("name") if author else None
        return out
