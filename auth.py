"""
Minimal email + password accounts issuing opaque bearer tokens.

Other modules only rely on ``deps.current_user`` resolving a bearer token
to a user document.
"""
import hashlib
import hmac
import secrets
from typing import Any, Dict, Optional

from pymongo.database import Database

from database import create_document, oid, serialize_doc
from errors import InvalidInput
from logger import get_logger
from schemas import User

logger = get_logger("auth")

USER = "user"
_ITERATIONS = 100_000


def hash_password(password: str, salt: Optional[str] = None, pepper: str = "") -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", (password + pepper).encode(), salt.encode(), _ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, stored: str, pepper: str = "") -> bool:
    salt, _, _ = stored.partition("$")
    return hmac.compare_digest(hash_password(password, salt, pepper), stored)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(user)
    out.pop("password_hash", None)
    out.pop("token", None)
    return out


class AuthService:
    def __init__(self, db: Database, pepper: str = ""):
        self.db = db
        self.pepper = pepper

    def _issue_token(self, user_id: Any) -> str:
        token = secrets.token_urlsafe(32)
        self.db[USER].update_one({"_id": oid(user_id)}, {"$set": {"token": token}})
        return token

    def register(self, name: str, email: str, password: str, phone: Optional[str] = None) -> Dict[str, Any]:
        email = email.lower()
        if self.db[USER].find_one({"email": email}):
            raise InvalidInput("Email already registered")
        if len(password) < 6:
            raise InvalidInput("Password must be at least 6 characters")
        user = User(name=name, email=email, password_hash=hash_password(password, pepper=self.pepper), phone=phone)
        user_id = create_document(self.db, USER, user)
        logger.info("User %s registered", user_id)
        return self._session(user_id)

    def login(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        user = self.db[USER].find_one({"email": email.lower()})
        if not user or not verify_password(password, user.get("password_hash", ""), self.pepper):
            return None
        return self._session(user["_id"])

    def _session(self, user_id: Any) -> Dict[str, Any]:
        token = self._issue_token(user_id)
        user = self.db[USER].find_one({"_id": oid(user_id)})
        return {"token": token, "user": public_user(user)}

    def user_for_token(self, token: str) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        return self.db[USER].find_one({"token": token})
