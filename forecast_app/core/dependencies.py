# forecast_app/core/dependencies.py
from datetime import date
from typing import List, Literal, Optional

from fastapi import Depends

from forecast_app.core.config import settings
from forecast_app.core.repository import ForecastRepository
from forecast_app.core.schemas import CustomerForecastBundle
from forecast_app.services.aggregation import load_customer_forecasts
from forecast_app.services.display import ViewSelection


def get_repository() -> ForecastRepository:
    """Dependency injection for the forecast data source"""
    return ForecastRepository()


def get_today() -> date:
    """Wall-clock date at request time; upper bound of the actual-sales series."""
    return date.today()


async def get_bundles(
    repo: ForecastRepository = Depends(get_repository),
    today: date = Depends(get_today),
) -> List[CustomerForecastBundle]:
    return await load_customer_forecasts(repo, today, settings.TOP_CUSTOMER_COUNT)


def get_view(
    chart_type: Literal["size", "company"] = "size",
    size: Literal["all", "large", "mid", "small"] = "all",
    customer_id: Optional[int] = None,
) -> ViewSelection:
    return ViewSelection(chart_type=chart_type, size=size, customer_id=customer_id)
