"""Asset endpoints: registration, bounds updates, history and manual sync."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tracker.api.serialize import read_body, to_jsonable
from tracker.portfolio.assets import AssetService

router = APIRouter(prefix="/assets", tags=["assets"])


def _service(request: Request) -> AssetService:
    return request.app.state.asset_service


@router.get("")
async def list_assets(request: Request) -> JSONResponse:
    assets = await _service(request).list_assets()
    return JSONResponse(content=to_jsonable(assets))


@router.post("/sync")
async def sync_assets(request: Request) -> JSONResponse:
    """Run an incremental candle sync for every asset now."""
    results = await _service(request).sync_all()
    return JSONResponse(content=results)


@router.get("/{asset_id}")
async def get_asset(asset_id: int, request: Request) -> JSONResponse:
    asset = await _service(request).get_asset(asset_id)
    return JSONResponse(content=to_jsonable(asset))


@router.get("/{asset_id}/history")
async def get_asset_history(asset_id: int, request: Request) -> JSONResponse:
    candles = await _service(request).get_history(asset_id)
    return JSONResponse(content=to_jsonable(candles))


@router.post("")
async def create_asset(request: Request) -> JSONResponse:
    body = await read_body(request)
    asset, candles = await _service(request).create_asset(
        symbol=body.get("symbol", ""),
        exchange_name=body.get("exchange", ""),
        asset_type=body.get("type"),
        current_balance=body.get("current_balance"),
        initial_investment=body.get("initial_investment"),
    )
    return JSONResponse(
        status_code=201,
        content={"asset": to_jsonable(asset), "candles": len(candles)},
    )


@router.put("/{asset_id}")
async def update_asset(asset_id: int, request: Request) -> JSONResponse:
    body = await read_body(request)
    asset = await _service(request).update_asset(asset_id, body)
    return JSONResponse(content=to_jsonable(asset))


@router.delete("/{asset_id}")
async def delete_asset(asset_id: int, request: Request) -> JSONResponse:
    await _service(request).delete_asset(asset_id)
    return JSONResponse(content={"deleted": asset_id})
