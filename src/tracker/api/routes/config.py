"""Config register endpoints, including the stablecoin reference price update."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tracker.api.serialize import read_body, to_jsonable
from tracker.portfolio.registers import ConfigRegistry

router = APIRouter(prefix="/config-info", tags=["config"])


def _registry(request: Request) -> ConfigRegistry:
    return request.app.state.registry


@router.get("")
async def list_config(request: Request) -> JSONResponse:
    entries = await _registry(request).list_entries()
    return JSONResponse(content=to_jsonable(entries))


@router.put("/usdt/prices")
async def update_stablecoin_prices(request: Request) -> JSONResponse:
    """Store new buy/sell reference prices and rewrite today's synthetic candle."""
    body = await read_body(request)
    valuation = request.app.state.settings.valuation
    buy_entry, sell_entry = await _registry(request).update_stablecoin_prices(
        buy=body.get("buy_price"),
        sell=body.get("sell_price"),
        buy_registers=valuation.stablecoin_buy_registers,
        sell_registers=valuation.stablecoin_sell_registers,
    )
    written = await request.app.state.asset_service.refresh_synthetic()
    return JSONResponse(
        content={
            "buy": to_jsonable(buy_entry),
            "sell": to_jsonable(sell_entry),
            "candles_written": written,
        }
    )


@router.get("/name/{name}")
async def get_config_by_name(name: str, request: Request) -> JSONResponse:
    entry = await _registry(request).get_by_name(name)
    return JSONResponse(content=to_jsonable(entry))


@router.get("/{entry_id}")
async def get_config(entry_id: int, request: Request) -> JSONResponse:
    entry = await _registry(request).get(entry_id)
    return JSONResponse(content=to_jsonable(entry))


@router.post("")
async def create_config(request: Request) -> JSONResponse:
    body = await read_body(request)
    entry = await _registry(request).create(
        name=body.get("name", ""),
        total=body.get("total", 0),
        description=body.get("description"),
    )
    return JSONResponse(status_code=201, content=to_jsonable(entry))


@router.put("/{entry_id}")
async def update_config(entry_id: int, request: Request) -> JSONResponse:
    body = await read_body(request)
    entry = await _registry(request).update(entry_id, body)
    return JSONResponse(content=to_jsonable(entry))


@router.delete("/{entry_id}")
async def delete_config(entry_id: int, request: Request) -> JSONResponse:
    await _registry(request).delete(entry_id)
    return JSONResponse(content={"deleted": entry_id})
