# forecast_app/core/routers/dashboard.py
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends

from forecast_app.core.dependencies import get_bundles, get_today, get_view
from forecast_app.core.schemas import (
    ChartResponse,
    CompanyDirectory,
    CustomerForecastBundle,
    ForecastRecord,
)
from forecast_app.services.display import (
    ViewSelection,
    build_chart,
    company_directory,
    table_rows,
)

router = APIRouter()


@router.get("/customer-forecast/chart", response_model=ChartResponse)
async def forecast_chart(
    period: Literal["all", "6months", "12months", "24months"] = "all",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    view: ViewSelection = Depends(get_view),
    bundles: List[CustomerForecastBundle] = Depends(get_bundles),
    today: date = Depends(get_today),
):
    """
    Monthly forecast vs. actual sales for the selected customers, with:
      - monthly average actual / predicted (months with data only)
      - mean-of-customer-means MAPE
      - linear trend of the forecast, % of its mean per month
    """
    return build_chart(bundles, view, today, period, date_from, date_to)


@router.get("/customer-forecast/table", response_model=List[ForecastRecord])
async def forecast_table(
    sort: Optional[str] = None,
    direction: Literal["asc", "desc"] = "asc",
    view: ViewSelection = Depends(get_view),
    bundles: List[CustomerForecastBundle] = Depends(get_bundles),
):
    return table_rows(bundles, view, sort, direction)


@router.get("/customer-forecast/companies", response_model=CompanyDirectory)
async def forecast_companies(
    bundles: List[CustomerForecastBundle] = Depends(get_bundles),
):
    """Company selector entries plus customer counts per company size."""
    return company_directory(bundles)
