"""Inventory item endpoints.

Creating an item only records it as ``pending``; analysis is started with a
separate call and runs asynchronously. Temporal mode (use_temporal=True)
starts an ``ItemAnalysisWorkflow``; otherwise the pipeline runs as an
in-process asyncio task. Either way callers poll ``GET /items/{id}``.
"""

import asyncio
import uuid

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from reweave.config import settings
from reweave.models.contracts import (
    AnalysisStartedResponse,
    CreateItemRequest,
    CreateItemResponse,
    ErrorResponse,
    InventoryItem,
    ItemInput,
)
from reweave.pipeline.errors import InputValidationError, ItemNotFoundError, TransientServiceError
from reweave.pipeline.factory import build_orchestrator, get_store

logger = structlog.get_logger()

router = APIRouter(tags=["items"])

# In-process runs (use_temporal=False), keyed by item id.
_running: dict[str, asyncio.Task] = {}


def _error(status: int, code: str, message: str, *, retryable: bool = False) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=retryable).model_dump(),
    )


def _not_found(item_id: str) -> JSONResponse:
    return _error(404, "item_not_found", f"Item {item_id} not found")


def _store_unavailable(exc: TransientServiceError) -> JSONResponse:
    logger.warning("item_store_unavailable", error=str(exc))
    return _error(503, "store_unavailable", "Item store is temporarily unavailable", retryable=True)


async def _run_in_process(item_id: str) -> None:
    try:
        await build_orchestrator(settings).run(item_id)
    except Exception:
        # Nothing awaits this task; the item stays at its last committed status.
        logger.exception("background_analysis_failed", item_id=item_id)
    finally:
        _running.pop(item_id, None)


async def _start_workflow(request: Request, item_id: str) -> str:
    from temporalio.exceptions import WorkflowAlreadyStartedError

    from reweave.workflows.item_analysis import ItemAnalysisWorkflow, workflow_id_for

    workflow_id = workflow_id_for(item_id)
    client = request.app.state.temporal_client
    try:
        await client.start_workflow(
            ItemAnalysisWorkflow.run,
            item_id,
            id=workflow_id,
            task_queue=settings.temporal_task_queue,
        )
    except WorkflowAlreadyStartedError:
        logger.info("analysis_already_running", item_id=item_id, workflow_id=workflow_id)
    return workflow_id


@router.post("/items", status_code=201, response_model=CreateItemResponse)
async def create_item(body: CreateItemRequest):
    """Register an item whose photo is already in object storage."""
    try:
        item_input = ItemInput.model_validate(body.model_dump())
    except ValidationError as exc:
        fields = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
        raise InputValidationError(fields, stage="ingestion") from exc
    item = InventoryItem(id=uuid.uuid4().hex, input=item_input)
    try:
        await get_store(settings).create(item)
    except TransientServiceError as exc:
        return _store_unavailable(exc)
    logger.info("item_registered", item_id=item.id, category=item.input.category, quantity=item.input.quantity)
    return CreateItemResponse(item_id=item.id, status=item.status)


@router.post(
    "/items/{item_id}/analysis",
    status_code=202,
    response_model=AnalysisStartedResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def start_analysis(item_id: str, request: Request):
    """Start (or resume) analysis. Returns immediately; poll the item for progress."""
    try:
        item = await get_store(settings).get(item_id)
    except ItemNotFoundError:
        return _not_found(item_id)
    except TransientServiceError as exc:
        return _store_unavailable(exc)

    if item.is_terminal:
        return _error(409, "analysis_finished", f"Item {item_id} is already {item.status}")

    workflow_id = None
    if settings.use_temporal:
        workflow_id = await _start_workflow(request, item_id)
    elif item_id not in _running:
        _running[item_id] = asyncio.create_task(_run_in_process(item_id))

    logger.info("analysis_started", item_id=item_id, status=item.status, workflow_id=workflow_id)
    return AnalysisStartedResponse(item_id=item_id, status=item.status, workflow_id=workflow_id)


@router.get(
    "/items/{item_id}",
    response_model=InventoryItem,
    responses={404: {"model": ErrorResponse}},
)
async def get_item(item_id: str):
    """Current persisted record. Clients poll this until status is terminal."""
    try:
        return await get_store(settings).get(item_id)
    except ItemNotFoundError:
        return _not_found(item_id)
    except TransientServiceError as exc:
        return _store_unavailable(exc)
