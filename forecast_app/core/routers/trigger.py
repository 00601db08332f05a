# forecast_app/core/routers/trigger.py
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from forecast_app.core.schemas import TriggerRequest
from forecast_app.integrations.forecast_job.job_client import ForecastJobError, trigger_forecast_job

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/trigger-forecast")
async def trigger_forecast(request: TriggerRequest):
    """Fire-and-forget kickoff of a new forecasting run."""
    logger.info(f"Triggering forecast job at {request.timestamp.isoformat()}")
    try:
        result = await trigger_forecast_job(request.timestamp)
    except ForecastJobError as e:
        logger.error(f"Forecast job trigger failed: {e.detail}")
        return JSONResponse(
            status_code=e.status_code,
            content={"success": False, "detail": e.detail},
        )

    return {"success": True, "message": "Forecast job started", "result": result}
