import asyncio

from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, ExecutionTimeout, WTimeoutError

from config.env import STORE_TIMEOUT_MS
from utils.errors import Unavailable

STORE_TIMEOUT_SECONDS = STORE_TIMEOUT_MS / 1000

# ConnectionFailure covers AutoReconnect, NetworkTimeout and ServerSelectionTimeoutError
TRANSIENT_STORE_ERRORS = (ConnectionFailure, ExecutionTimeout, WTimeoutError)


async def guarded(awaitable, operation: str = "store call"):
    """
    Await a single store call with a bounded timeout.
    Transient driver failures surface as Unavailable; nothing is retried here.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=STORE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        raise Unavailable(f"Store timed out during {operation}")
    except TRANSIENT_STORE_ERRORS as e:
        raise Unavailable(f"Store unavailable during {operation}") from e


async def update_if(
    collection,
    entity_id,
    predicate: dict,
    patch: dict,
    *,
    unset: dict | None = None,
    operation: str = "conditional update",
):
    """
    Atomic conditional update: applies ``patch`` only while ``predicate`` still
    holds for the document. Returns the updated document, or None on conflict.
    """
    update = {"$set": patch}
    if unset:
        update["$unset"] = unset

    return await guarded(
        collection.find_one_and_update(
            {"_id": entity_id, **predicate},
            update,
            return_document=ReturnDocument.AFTER,
        ),
        operation,
    )
