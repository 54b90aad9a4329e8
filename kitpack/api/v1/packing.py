"""
Packing API endpoints.

This module implements the FastAPI router for the packing workflow: reading
reconstructed progress, beginning a unit, committing a packed unit, undoing
the last commit and checking stock for the rest of an order. Service result
values are mapped onto HTTP status codes here.
"""

from fastapi import APIRouter, HTTPException, status

from kitpack.api.deps import PackingServiceDep
from kitpack.core.logging import get_logger, set_packer
from kitpack.schemas.packing import (
    CommitUnitRequest,
    CommitUnitResponse,
    OrderProgressResponse,
    PackingSessionResponse,
    RejectionResponse,
    StockCheckResponse,
    UndoResponse,
)
from kitpack.services.packing.enums import RejectionReason, UndoStatus
from kitpack.services.packing.service import LineItemCompleteError, LineItemNotFoundError
from kitpack.services.packing.store import OrderNotFoundError

logger = get_logger(__name__)

router = APIRouter(prefix="/packing", tags=["packing"])

REJECTION_STATUS_CODES = {
    RejectionReason.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.LINE_INDEX_OUT_OF_RANGE: status.HTTP_404_NOT_FOUND,
    RejectionReason.LINE_ITEM_COMPLETE: status.HTTP_409_CONFLICT,
    RejectionReason.INSUFFICIENT_STOCK: status.HTTP_409_CONFLICT,
    RejectionReason.CHECKLIST_INCOMPLETE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RejectionReason.PERSISTENCE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.get(
    "/orders/{order_id}/progress",
    response_model=OrderProgressResponse,
    summary="Get packing progress",
    description="Reconstruct per line item progress from the usage ledger",
)
async def get_progress(order_id: int, service: PackingServiceDep) -> OrderProgressResponse:
    """
    Get reconstructed packing progress of an order.

    Raises:
        HTTPException: 404 if order not found
    """
    try:
        progress = await service.get_progress(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return OrderProgressResponse.model_validate(progress)


@router.post(
    "/orders/{order_id}/lines/{line_index}/begin",
    response_model=PackingSessionResponse,
    summary="Begin packing a unit",
    description="Return the checklist for the next unit of a line item",
)
async def begin_unit(
    order_id: int,
    line_index: int,
    service: PackingServiceDep,
) -> PackingSessionResponse:
    """
    Begin packing the next unit of a line item.

    Raises:
        HTTPException: 404 if order or line item not found, 409 if the line
                       item is already packed
    """
    try:
        session = await service.begin_unit(order_id, line_index)
    except (OrderNotFoundError, LineItemNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except LineItemCompleteError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return PackingSessionResponse.from_session(session)


@router.post(
    "/orders/{order_id}/lines/{line_index}/commit",
    response_model=CommitUnitResponse,
    summary="Commit a packed unit",
    description="Deduct stock and record usage for one packed unit atomically",
)
async def commit_unit(
    order_id: int,
    line_index: int,
    request: CommitUnitRequest,
    service: PackingServiceDep,
) -> CommitUnitResponse:
    """
    Commit one packed unit.

    Args:
        order_id: Order being packed
        line_index: Line item the unit belongs to
        request: Checklist state and packer

    Returns:
        CommitUnitResponse: Next target and updated progress

    Raises:
        HTTPException: 404 unknown order or line item, 409 line item complete
                       or insufficient stock, 422 checklist incomplete,
                       503 retryable persistence failure
    """
    set_packer(request.packed_by)

    result = await service.commit_unit(
        order_id,
        line_index,
        request.checked,
        packed_by=request.packed_by,
    )

    if not result.committed:
        rejection = result.rejection
        raise HTTPException(
            status_code=REJECTION_STATUS_CODES[rejection.reason],
            detail=RejectionResponse.model_validate(rejection).model_dump(mode="json"),
        )

    response = CommitUnitResponse.model_validate(result)
    response.undo_window_seconds = service.undo_manager.seconds_remaining()
    return response


@router.post(
    "/undo",
    response_model=UndoResponse,
    summary="Undo the last packed unit",
    description="Reverse the most recent commit while its undo window is open",
)
async def invoke_undo(service: PackingServiceDep) -> UndoResponse:
    """
    Undo the most recently committed unit.

    Raises:
        HTTPException: 410 if nothing is pending or the window elapsed,
                       503 if the reversal could not be saved
    """
    result = await service.invoke_undo()

    if result.status == UndoStatus.EXPIRED_OR_ABSENT:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail={"status": result.status.value, "message": result.message},
        )
    if result.status == UndoStatus.FAILED:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": result.status.value, "message": result.message},
        )

    return UndoResponse.model_validate(result)


@router.get(
    "/orders/{order_id}/stock-check",
    response_model=StockCheckResponse,
    summary="Check stock for remaining units",
    description="Compare component stock with what the unpacked units still need",
)
async def check_stock(order_id: int, service: PackingServiceDep) -> StockCheckResponse:
    try:
        stock_check = await service.check_stock_availability(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return StockCheckResponse.model_validate(stock_check)
