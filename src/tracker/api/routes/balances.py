"""Exchange balance endpoint. Reads only; nothing is persisted."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tracker.api.serialize import to_jsonable

router = APIRouter(prefix="/binance", tags=["balances"])


@router.get("/balances")
async def get_balances(request: Request) -> JSONResponse:
    """Spot plus earn balances valued in USD, with the running totals."""
    report = await request.app.state.balance_aggregator.get_valued_balances()
    return JSONResponse(content=to_jsonable(report))
