import logging
from typing import Optional

from database import serialize, to_object_id
from errors import AuthorizationError, InvalidRequestError, NotFoundError
from schemas import DeliveryInformation, User

logger = logging.getLogger(__name__)

COLLECTION = "user"


def require_role(db, user_id: Optional[str], role: str = "admin", session=None) -> dict:
    """Return the acting user, or raise before anything has been written."""
    if not user_id:
        raise AuthorizationError("Unauthorized: please sign in.")
    try:
        oid = to_object_id(user_id, "user id")
    except InvalidRequestError:
        raise AuthorizationError("Unauthorized: invalid session.")
    user = db[COLLECTION].find_one({"_id": oid}, session=session)
    if not user or user.get("role") != role:
        logger.warning("User %s lacks %s privileges", user_id, role)
        raise AuthorizationError(f"Unauthorized: {role} privileges required.")
    return user


def require_user(db, user_id: Optional[str], session=None) -> dict:
    if not user_id:
        raise AuthorizationError("Unauthorized: please sign in.")
    user = db[COLLECTION].find_one({"_id": to_object_id(user_id, "user id")}, session=session)
    if not user:
        raise NotFoundError("User not found.")
    return user


def resolve_order_user(db, user_id: Optional[str], delivery: DeliveryInformation, session=None):
    """The user an order is placed for.

    Signed-in shoppers order as themselves. Guests are matched on their
    delivery email: an existing guest record is reused, a full customer
    account must sign in, otherwise a guest record is created.
    """
    if user_id:
        return require_user(db, user_id, session=session)["_id"]

    email = str(delivery.email).lower()
    user = db[COLLECTION].find_one({"email": email}, session=session)
    if user:
        if user.get("role") != "guest":
            raise InvalidRequestError(
                "An account with this email already exists. Please log in to place your order."
            )
        return user["_id"]

    guest = User(name=delivery.full_name, email=email, role="guest").model_dump()
    result = db[COLLECTION].insert_one(guest, session=session)
    logger.info("Guest user %s created for checkout", result.inserted_id)
    return result.inserted_id


def get_profile(db, user_id: Optional[str]) -> dict:
    user = require_user(db, user_id)
    return serialize({
        "_id": user["_id"],
        "name": user.get("name"),
        "email": user.get("email"),
        "image": user.get("image"),
        "role": user.get("role"),
        "orders": user.get("orders", []),
        "wishlist": user.get("wishlist", []),
        "cart": user.get("cart"),
    })
