"""
User service — account registration, login and profile lookup.

Accounts live in a ``KeyValueStore`` under two keys::

    user:{id}          -> JSON account record (including the bcrypt hash)
    user:email:{email} -> id

Registration and login publish ``user:created`` / ``user:logged_in``
events on the same store; the logging service consumes them.  Publishing
does not wait for subscribers.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone

from newsblog.config import Settings
from newsblog.errors import ConflictError, UnauthorizedError
from newsblog.kvstore import KeyValueStore
from newsblog.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

USER_CREATED = "user:created"
USER_LOGGED_IN = "user:logged_in"

_INVALID_CREDENTIALS = "Invalid email or password"


def _user_key(user_id: str) -> str:
    return f"user:{user_id}"


def _email_key(email: str) -> str:
    return f"user:email:{email}"


def _public_profile(record: dict) -> dict:
    """Strip the password hash (and internal flags) from an account record."""
    return {
        "id": record["id"],
        "email": record["email"],
        "created_at": record["created_at"],
    }


class UserService:
    def __init__(self, store: KeyValueStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    async def _load(self, user_id: str) -> dict | None:
        raw = await self.store.get(_user_key(user_id))
        return json.loads(raw) if raw else None

    async def _publish(self, channel: str, action: str, record: dict) -> None:
        event = {
            "action": action,
            "level": "info",
            "userId": record["id"],
            "email": record["email"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.store.publish(channel, json.dumps(event))

    def _issue_token(self, record: dict) -> str:
        return create_access_token(record["id"], record["email"], self.settings)

    async def create_user(self, email: str, password: str) -> dict:
        """
        Register a new account and return ``{"token", "user"}``.

        The duplicate check runs before hashing, so a known duplicate never
        pays for bcrypt.  The email key is then claimed with ``add``; of two
        concurrent registrations for one email only the first claim wins.
        """
        if await self.store.get(_email_key(email)):
            raise ConflictError("User with this email already exists")

        password_hash = await asyncio.to_thread(hash_password, password, self.settings.BCRYPT_ROUNDS)
        record = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password_hash": password_hash,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "deleted": False,
        }
        if not await self.store.add(_email_key(email), record["id"]):
            raise ConflictError("User with this email already exists")
        await self.store.set(_user_key(record["id"]), json.dumps(record))
        logger.info("User %s registered", record["id"])

        await self._publish(USER_CREATED, "user_created", record)
        return {"token": self._issue_token(record), "user": _public_profile(record)}

    async def login_user(self, email: str, password: str) -> dict:
        user_id = await self.store.get(_email_key(email))
        record = await self._load(user_id) if user_id else None
        if record is None or record.get("deleted"):
            raise UnauthorizedError(_INVALID_CREDENTIALS)

        if not await asyncio.to_thread(verify_password, password, record["password_hash"]):
            logger.info("Failed login for user %s", record["id"])
            raise UnauthorizedError(_INVALID_CREDENTIALS)

        token = self._issue_token(record)
        await self._publish(USER_LOGGED_IN, "user_logged_in", record)
        return {"token": token, "user": _public_profile(record)}

    async def get_user_by_id(self, user_id: str) -> dict | None:
        record = await self._load(user_id)
        if record is None:
            return None
        return _public_profile(record)
