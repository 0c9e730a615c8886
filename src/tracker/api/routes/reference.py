"""Exchanges, quote assets and the liveness probe."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tracker.api.serialize import read_body, to_jsonable
from tracker.data.store import PortfolioStore
from tracker.exceptions import InvalidInputError, NotFoundError

router = APIRouter(tags=["reference"])


def _store(request: Request) -> PortfolioStore:
    return request.app.state.store


@router.get("/ping")
async def ping() -> JSONResponse:
    return JSONResponse(content={"status": "ok"})


@router.get("/exchanges")
async def list_exchanges(request: Request) -> JSONResponse:
    exchanges = await _store(request).list_exchanges()
    return JSONResponse(content=to_jsonable(exchanges))


@router.post("/exchanges")
async def create_exchange(request: Request) -> JSONResponse:
    body = await read_body(request)
    name = body.get("name")
    if not name:
        raise InvalidInputError("name is required")
    store = _store(request)
    if await store.get_exchange_by_name(name) is not None:
        raise InvalidInputError(f"Exchange {name} already exists")
    exchange = await store.insert_exchange(name, body.get("api_url"))
    return JSONResponse(status_code=201, content=to_jsonable(exchange))


@router.delete("/exchanges/{exchange_id}")
async def delete_exchange(exchange_id: int, request: Request) -> JSONResponse:
    if not await _store(request).delete_exchange(exchange_id):
        raise NotFoundError(f"Exchange {exchange_id} not found")
    return JSONResponse(content={"deleted": exchange_id})


@router.get("/quotes")
async def list_quotes(request: Request) -> JSONResponse:
    quotes = await _store(request).list_quotes()
    return JSONResponse(content=to_jsonable(quotes))


@router.post("/quotes")
async def create_quote(request: Request) -> JSONResponse:
    body = await read_body(request)
    symbol = str(body.get("symbol") or "").upper()
    if not symbol:
        raise InvalidInputError("symbol is required")
    store = _store(request)
    if any(q.symbol == symbol for q in await store.list_quotes()):
        raise InvalidInputError(f"Quote {symbol} already exists")
    quote = await store.insert_quote(symbol, body.get("description"))
    return JSONResponse(status_code=201, content=to_jsonable(quote))
