"""Trade record endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tracker.api.serialize import read_body, to_jsonable
from tracker.portfolio.transactions import TransactionService

router = APIRouter(prefix="/transactions", tags=["transactions"])


def _service(request: Request) -> TransactionService:
    return request.app.state.transaction_service


@router.get("")
async def list_transactions(request: Request, asset_id: int | None = None) -> JSONResponse:
    transactions = await _service(request).list_transactions(asset_id)
    return JSONResponse(content=to_jsonable(transactions))


@router.get("/{transaction_id}")
async def get_transaction(transaction_id: int, request: Request) -> JSONResponse:
    transaction = await _service(request).get_transaction(transaction_id)
    return JSONResponse(content=to_jsonable(transaction))


@router.post("")
async def open_transaction(request: Request) -> JSONResponse:
    body = await read_body(request)
    transaction = await _service(request).open_transaction(
        asset_id=body.get("asset_id"),
        open_price=body.get("open_price"),
        amount=body.get("amount"),
        open_value_fiat=body.get("open_value_fiat"),
        open_fee=body.get("open_fee"),
        fee_currency=body.get("fee_currency"),
        open_date=body.get("open_date"),
        side=body.get("side", "long"),
        fiat_currency=body.get("fiat_currency"),
    )
    return JSONResponse(status_code=201, content=to_jsonable(transaction))


@router.put("/{transaction_id}/close")
async def close_transaction(transaction_id: int, request: Request) -> JSONResponse:
    body = await read_body(request)
    transaction = await _service(request).close_transaction(
        transaction_id,
        close_price=body.get("close_price"),
        close_value_fiat=body.get("close_value_fiat"),
        close_fee=body.get("close_fee"),
        fee_currency=body.get("fee_currency"),
        close_date=body.get("close_date"),
    )
    return JSONResponse(content=to_jsonable(transaction))


@router.delete("/{transaction_id}")
async def delete_transaction(transaction_id: int, request: Request) -> JSONResponse:
    await _service(request).delete_transaction(transaction_id)
    return JSONResponse(content={"deleted": transaction_id})
