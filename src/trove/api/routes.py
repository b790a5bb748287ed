"""Trove API routes.

Every response body is ``{"success": bool, ...}``; failures carry an
``error`` string.
"""

import logging
import time

import aiosqlite
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..extraction import InvalidURLError, validate_url
from . import db as db_ops
from .models import AddCollectionItemIn, CreateCollectionIn, CreateItemIn

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def create_router() -> APIRouter:
    """Create the API router."""
    router = APIRouter()

    async def _get_db(request: Request) -> aiosqlite.Connection:
        """Get DB connection from app state."""
        return request.app.state.db

    @router.get("/health")
    async def health():
        """Health check."""
        return {"status": "ok", "service": "trove"}

    @router.post("/items")
    async def create_item(request: Request, body: CreateItemIn):
        """Extract a product URL and persist it, reusing recent extractions."""
        if not body.url:
            return error_response(400, "URL is required")
        try:
            validate_url(body.url)
        except InvalidURLError as e:
            return error_response(400, str(e))

        db = await _get_db(request)
        settings = request.app.state.settings

        existing = await db_ops.find_item_by_url(db, body.url)
        if existing and existing["last_extracted_at"]:
            age = time.time() - existing["last_extracted_at"]
            if age < settings.dedup_window_seconds:
                logger.info(f"[API] Reusing item {existing['id']} extracted {age:.0f}s ago")
                return {
                    "success": True,
                    "duplicate": True,
                    "data": existing,
                    "message": f"Item extracted recently (within {settings.dedup_window_hours} hours)",
                }

        try:
            extracted = await request.app.state.extractor.extract(body.url)
        except ValueError as e:
            logger.warning(f"[API] Extraction failed for {body.url}: {e}")
            return error_response(422, f"Extraction failed: {e}")
        except Exception as e:
            logger.exception(f"[API] Extraction error for {body.url}")
            return error_response(502, f"Extraction failed: {type(e).__name__}")

        if existing:
            item = await db_ops.refresh_item(db, existing["id"], extracted)
        else:
            item = await db_ops.create_item(db, extracted)

        added: list[str] = []
        for assignment in body.collections:
            if not await db_ops.get_collection(db, assignment.id):
                return error_response(
                    404,
                    f"Item saved but failed to add to collections: collection {assignment.id} not found",
                )
            await db_ops.upsert_collection_item(
                db, assignment.id, item["id"], assignment.notes, assignment.position
            )
            added.append(assignment.id)

        logger.info(f"[API] Saved item {item['id']} ({item['title']}) to {len(added)} collection(s)")
        return {"success": True, "data": {"item": item, "collections": added}}

    @router.get("/items/{item_id}")
    async def get_item(request: Request, item_id: str):
        db = await _get_db(request)
        item = await db_ops.get_item(db, item_id)
        if not item:
            return error_response(404, "Item not found")
        return {"success": True, "data": item}

    @router.get("/items/{item_id}/snapshots")
    async def get_snapshots(request: Request, item_id: str):
        """Price/metadata history for an item, newest first."""
        db = await _get_db(request)
        if not await db_ops.get_item(db, item_id):
            return error_response(404, "Item not found")
        return {"success": True, "data": await db_ops.list_snapshots(db, item_id)}

    @router.get("/collections")
    async def list_collections(request: Request):
        db = await _get_db(request)
        return {"success": True, "data": await db_ops.list_collections(db)}

    @router.post("/collections", status_code=201)
    async def create_collection(request: Request, body: CreateCollectionIn):
        db = await _get_db(request)
        try:
            collection = await db_ops.create_collection(db, body.name, body.description)
        except aiosqlite.IntegrityError:
            return error_response(409, f"Collection '{body.name}' already exists")
        return {"success": True, "data": collection}

    @router.get("/collections/{collection_id}/items")
    async def list_collection_items(request: Request, collection_id: str):
        db = await _get_db(request)
        if not await db_ops.get_collection(db, collection_id):
            return error_response(404, "Collection not found")
        return {"success": True, "data": await db_ops.list_collection_items(db, collection_id)}

    @router.post("/collections/{collection_id}/items")
    async def add_collection_item(request: Request, collection_id: str, body: AddCollectionItemIn):
        """Add an existing item to a collection. Existing assignments are updated."""
        db = await _get_db(request)
        if not await db_ops.get_collection(db, collection_id):
            return error_response(404, "Collection not found")
        if not await db_ops.get_item(db, body.item_id):
            return error_response(404, "Item not found")

        row = await db_ops.upsert_collection_item(
            db, collection_id, body.item_id, body.notes, body.position
        )
        logger.info(f"[API] Item {body.item_id} assigned to collection {collection_id}")
        return {"success": True, "data": row}

    @router.delete("/collections/{collection_id}/items/{item_id}")
    async def remove_collection_item(request: Request, collection_id: str, item_id: str):
        db = await _get_db(request)
        if not await db_ops.remove_collection_item(db, collection_id, item_id):
            return error_response(404, "Item is not in this collection")
        logger.info(f"[API] Item {item_id} removed from collection {collection_id}")
        return {"success": True}

    return router
