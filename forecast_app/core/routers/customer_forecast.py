# forecast_app/core/routers/customer_forecast.py
from typing import List

from fastapi import APIRouter, Depends, Response, status

from forecast_app.core.dependencies import get_bundles, get_repository
from forecast_app.core.errors import NotFoundError, ValidationError
from forecast_app.core.repository import ForecastRepository
from forecast_app.core.schemas import (
    CustomerForecastBundle,
    ForecastCreate,
    ForecastRecord,
    ForecastUpdate,
)
from forecast_app.services.aggregation import to_forecast_record

router = APIRouter()


@router.get("/customer-forecast", response_model=List[CustomerForecastBundle])
async def get_customer_forecasts(
    bundles: List[CustomerForecastBundle] = Depends(get_bundles),
):
    """
    One bundle per forecasted customer: profile, forecasts and the daily
    actual-sales series from first sale through today.
    Top customers by sales come first, the rest alphabetically.
    """
    return bundles


@router.post(
    "/customer-forecast",
    response_model=ForecastRecord,
    status_code=status.HTTP_201_CREATED,
)
async def create_forecast(
    payload: ForecastCreate,
    repo: ForecastRepository = Depends(get_repository),
):
    cof_id = await repo.create_forecast(payload)
    row = await repo.fetch_forecast(cof_id)
    if row is None:
        raise NotFoundError(f"Forecast {cof_id} not found")
    return to_forecast_record(row)


@router.patch("/customer-forecast/{cof_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_forecast(
    cof_id: int,
    payload: ForecastUpdate,
    repo: ForecastRepository = Depends(get_repository),
):
    """Partial update of predictedDate, predictedQuantity, mape, probability, predictionModel."""
    changes = payload.changes()
    if not changes:
        raise ValidationError("No fields to update")

    await repo.update_forecast(cof_id, changes)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/customer-forecast/{cof_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_forecast(
    cof_id: int,
    repo: ForecastRepository = Depends(get_repository),
):
    await repo.delete_forecast(cof_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
