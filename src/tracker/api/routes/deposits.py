"""Deposit and withdrawal endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tracker.api.serialize import read_body, to_jsonable
from tracker.portfolio.deposits import DepositService

router = APIRouter(prefix="/deposits-withdrawals", tags=["deposits"])


def _service(request: Request) -> DepositService:
    return request.app.state.deposit_service


@router.get("")
async def list_deposits(request: Request) -> JSONResponse:
    records = await _service(request).list_deposits()
    return JSONResponse(content=to_jsonable(records))


@router.get("/{deposit_id}")
async def get_deposit(deposit_id: int, request: Request) -> JSONResponse:
    record = await _service(request).get_deposit(deposit_id)
    return JSONResponse(content=to_jsonable(record))


@router.post("")
async def create_deposit(request: Request) -> JSONResponse:
    body = await read_body(request)
    record = await _service(request).record(
        kind=body.get("kind"),
        quantity=body.get("quantity"),
        currency=body.get("currency"),
    )
    return JSONResponse(status_code=201, content=to_jsonable(record))


@router.put("/{deposit_id}")
async def update_deposit(deposit_id: int, request: Request) -> JSONResponse:
    body = await read_body(request)
    record = await _service(request).update(
        deposit_id,
        kind=body.get("kind"),
        quantity=body.get("quantity"),
        currency=body.get("currency"),
    )
    return JSONResponse(content=to_jsonable(record))


@router.delete("/{deposit_id}")
async def delete_deposit(deposit_id: int, request: Request) -> JSONResponse:
    await _service(request).delete(deposit_id)
    return JSONResponse(content={"deleted": deposit_id})
