import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from bson.objectid import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from ..agents.config import USERS_COLLECTION, get_db_client
from ..agents.errors import UserExistsError
from .schemas import AuthUser

logger = logging.getLogger(__name__)


def to_auth_user(doc: dict) -> AuthUser:
    return AuthUser(
        id=str(doc["_id"]),
        email=doc["email"],
        name=doc["name"],
        avatar=doc.get("avatar"),
        provider=doc.get("provider", "email"),
    )


class UserStore:
    """
    MongoDB-backed registry of application users.

    Each document holds the profile fields exposed as AuthUser plus the
    bcrypt `password` hash (email users) and `google_id` (Google users).
    The collection is resolved from the shared client on first use unless
    one is passed in; a resolved collection gets its unique indexes right
    away, so duplicate emails are rejected even if the setup script never ran.
    """

    def __init__(self, collection: Optional[Collection] = None):
        self._collection = collection
        self._lock = threading.Lock()

    @property
    def collection(self) -> Collection:
        if self._collection is None:
            with self._lock:
                if self._collection is None:
                    collection = get_db_client()[USERS_COLLECTION]
                    UserStore(collection).ensure_indexes()
                    self._collection = collection
        return self._collection

    def ensure_indexes(self) -> None:
        self.collection.create_index([("email", ASCENDING)], unique=True)
        self.collection.create_index([("google_id", ASCENDING)], unique=True, sparse=True)
        logger.info("Users collection indexes ensured")

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email})

    def find_by_google_id(self, google_id: str) -> Optional[dict]:
        return self.collection.find_one({"google_id": google_id})

    def find_by_id(self, user_id: str) -> Optional[dict]:
        try:
            oid = ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        return self.collection.find_one({"_id": oid})

    def create_user(
        self,
        email: str,
        name: str,
        password_hash: Optional[str] = None,
        google_id: Optional[str] = None,
        avatar: Optional[str] = None,
        provider: str = "email",
    ) -> dict:
        doc = {
            "email": email,
            "name": name,
            "avatar": avatar,
            "provider": provider,
            # Google verifies the address for us.
            "email_verified": provider == "google",
            "created_at": datetime.now(timezone.utc),
        }
        if password_hash:
            doc["password"] = password_hash
        if google_id:
            doc["google_id"] = google_id

        try:
            result = self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            raise UserExistsError("User already exists with this email") from e
        doc["_id"] = result.inserted_id
        return doc

    def link_google_account(self, doc: dict, google_id: str, avatar: Optional[str]) -> dict:
        update = {
            "google_id": google_id,
            "avatar": avatar or doc.get("avatar"),
            "email_verified": True,
        }
        self.collection.update_one({"_id": doc["_id"]}, {"$set": update})
        return {**doc, **update}
