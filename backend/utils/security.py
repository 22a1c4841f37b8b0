from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime
from bson import ObjectId
from bson.errors import InvalidId
from jose import JWTError

from utils.jwt import decode_token
from utils.errors import Unauthorized, Forbidden
from utils.store import guarded
from database import get_db

security = HTTPBearer(auto_error=False)


async def authenticate(db, token: str) -> dict:
    """
    Resolve a bearer token to the stored user record.
    The stored role is authoritative; nothing client supplied is trusted.
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise Unauthorized("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token payload")

    try:
        user_oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        raise Unauthorized("Invalid token payload")

    user = await guarded(db.users.find_one({"_id": user_oid}), "authenticate")
    if not user:
        raise Unauthorized("User not found")

    # accounts without the flag predate deactivation and count as active
    if user.get("is_active") is False:
        raise Unauthorized("Account is deactivated")

    # Update last activity
    await guarded(
        db.users.update_one(
            {"_id": user["_id"]},
            {"$set": {"last_active_at": datetime.utcnow()}},
        ),
        "touch last activity",
    )

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db=Depends(get_db),
):
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No authorization token provided")

    return await authenticate(db, credentials.credentials)


def require_role(*roles: str):
    async def checker(user=Depends(get_current_user)):
        if user.get("role") not in roles:
            raise Forbidden("Insufficient permissions")
        return user

    return checker
