"""Collection assignment for a captured item."""

import asyncio
import logging

from ..client import TroveClient
from ..errors import SaveExecutionError
from ..items import Item
from .models import CaptureContext

logger = logging.getLogger(__name__)


class CollectionAssigner:
    """Assigns an already-persisted item to every selected collection.

    Assignments run concurrently and independently. If any fails the whole
    save fails, but successful assignments are left in place: the API
    upserts on (collection, item), so a retry is safe.
    """

    def __init__(self, client: TroveClient):
        self.client = client

    async def assign(self, item: Item, context: CaptureContext) -> list[str]:
        """Assign ``item`` with the context notes.

        Returns the assigned collection ids.

        Raises:
            SaveExecutionError: If at least one assignment failed.
        """
        collection_ids = sorted(context.selected_collection_ids)
        if not collection_ids:
            logger.info(f"[SAVE] Item {item.id} saved without collections")
            return []

        notes = context.notes.strip() or None
        logger.info(f"[SAVE] Assigning item {item.id} to {len(collection_ids)} collection(s)")

        results = await asyncio.gather(
            *(self.client.add_to_collection(cid, item.id, notes) for cid in collection_ids),
            return_exceptions=True,
        )

        succeeded: list[str] = []
        failed: dict[str, str] = {}
        for collection_id, result in zip(collection_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"[SAVE] Assignment to {collection_id} failed: {result}")
                failed[collection_id] = str(result) or type(result).__name__
            elif isinstance(result, BaseException):
                raise result
            else:
                succeeded.append(collection_id)

        if failed:
            if len(failed) == 1:
                message = next(iter(failed.values()))
            else:
                message = f"Failed to add to {len(failed)} collections: " + "; ".join(
                    f"{cid}: {msg}" for cid, msg in failed.items()
                )
            raise SaveExecutionError(message, failed=failed, succeeded=succeeded)

        logger.info(f"[SAVE] Item {item.id} assigned to {', '.join(succeeded)}")
        return succeeded
