from bson import ObjectId
from bson.errors import InvalidId

from config.constants import ROLE_ADMIN
from utils.errors import ValidationError, Forbidden

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value, name: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {name}", {"field": name})


# -------------------------------
# Role Guards
# -------------------------------

def is_admin(actor: dict | None) -> bool:
    return bool(actor) and actor.get("role") == ROLE_ADMIN


def ensure_admin(actor: dict | None) -> dict:
    if not is_admin(actor):
        raise Forbidden("Admin role required")
    return actor


def same_id(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)
