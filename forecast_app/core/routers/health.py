from fastapi import APIRouter, Depends

from forecast_app.core.dependencies import get_repository
from forecast_app.core.repository import ForecastRepository

router = APIRouter()

@router.get("/healthz")
async def healthz(repo: ForecastRepository = Depends(get_repository)):
    # simple DB round-trip so the health check actually validates connectivity
    await repo.ping()
    return {"ok": True}
