import httpx
from datetime import datetime
from typing import Any, Dict

from forecast_app.core.config import settings


class ForecastJobError(Exception):
    """The forecasting job could not be started."""

    def __init__(self, detail: str, status_code: int = 502):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


async def trigger_forecast_job(timestamp: datetime) -> Dict[str, Any]:
    """Kick off a forecasting run; returns whatever the job endpoint answered."""
    if not settings.FORECAST_JOB_URL:
        raise ForecastJobError("FORECAST_JOB_URL is not configured", status_code=503)

    async with httpx.AsyncClient(timeout=settings.FORECAST_JOB_TIMEOUT) as client:
        try:
            r = await client.post(settings.FORECAST_JOB_URL, json={"timestamp": timestamp.isoformat()})
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ForecastJobError(f"Forecast job returned {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise ForecastJobError(f"Forecast job unreachable: {e}") from e

    try:
        return r.json()
    except ValueError:
        return {"message": r.text}
