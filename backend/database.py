from motor.motor_asyncio import AsyncIOMotorClient

from config.env import MONGO_URI, MONGO_DB_NAME, STORE_TIMEOUT_MS

_client = None
_db = None


def get_db():
    global _client, _db

    if _db is None:
        if not MONGO_URI:
            raise RuntimeError("MONGODB_URI not set")

        _client = AsyncIOMotorClient(
            MONGO_URI,
            serverSelectionTimeoutMS=STORE_TIMEOUT_MS,
            connectTimeoutMS=STORE_TIMEOUT_MS,
            socketTimeoutMS=STORE_TIMEOUT_MS,
        )
        _db = _client[MONGO_DB_NAME]

    return _db
