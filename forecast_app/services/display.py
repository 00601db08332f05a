# forecast_app/services/display.py
"""
Dashboard views over the aggregated customer bundles: monthly chart series,
summary statistics, the flattened forecast table and the company selector.
"""
import math
import statistics
from datetime import date
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Tuple

import pandas as pd
from pydantic import BaseModel

from forecast_app.core.errors import NotFoundError, ValidationError
from forecast_app.core.schemas import (
    ChartPoint,
    ChartResponse,
    ChartStats,
    CompanyDirectory,
    CompanyOption,
    CompanySize,
    CustomerForecastBundle,
    ForecastRecord,
)

PERIOD_MONTHS = {"6months": 6, "12months": 12, "24months": 24}

ALL_COMPANIES_LABEL = "All companies"


class ViewSelection(BaseModel):
    """Which customers the chart and table look at."""

    chart_type: Literal["size", "company"] = "size"
    size: Literal["all", "large", "mid", "small"] = "all"
    customer_id: Optional[int] = None


# ------------- Selection ------------- #

def select_bundles(
    bundles: Sequence[CustomerForecastBundle],
    view: ViewSelection,
) -> List[CustomerForecastBundle]:
    if view.chart_type == "size":
        if view.size == "all":
            return list(bundles)
        return [b for b in bundles if b.company_size == CompanySize(view.size)]

    if view.customer_id is None:
        return list(bundles)

    selected = [b for b in bundles if b.customer_id == view.customer_id]
    if not selected:
        raise NotFoundError(f"Customer {view.customer_id} not found")
    return selected


def view_label(bundles: Sequence[CustomerForecastBundle], view: ViewSelection) -> str:
    if view.chart_type == "size":
        return ALL_COMPANIES_LABEL if view.size == "all" else CompanySize(view.size).label

    if view.customer_id is None:
        return ALL_COMPANIES_LABEL

    bundle = next((b for b in bundles if b.customer_id == view.customer_id), None)
    if bundle is None:
        raise NotFoundError(f"Customer {view.customer_id} not found")
    if bundle.company_size:
        return f"{bundle.display_name} ({bundle.company_size.value})"
    return bundle.display_name


# ------------- Date helpers ------------- #

def month_start(d: date) -> date:
    return d.replace(day=1)


def resolve_date_range(
    period: str,
    today: date,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Tuple[Optional[date], Optional[date]]:
    """
    Preset periods span N months either side of today. Explicit bounds win over
    the preset; an open upper bound falls back to today.
    """
    if date_from is None and date_to is None:
        if period == "all":
            return None, None
        if period not in PERIOD_MONTHS:
            raise ValidationError(f"Unknown period: {period}")
        offset = pd.DateOffset(months=PERIOD_MONTHS[period])
        now = pd.Timestamp(today)
        return (now - offset).date(), (now + offset).date()

    if date_from is not None and date_to is None:
        date_to = today
    if date_from is not None and date_to is not None and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")
    return date_from, date_to


def monthly_totals(points: Iterable[Tuple[date, float]]) -> Dict[date, float]:
    """Sum values per first-of-month."""
    points = list(points)
    if not points:
        return {}

    frame = pd.DataFrame(points, columns=["date", "value"])
    months = pd.to_datetime(frame["date"]).dt.to_period("M").dt.to_timestamp()
    grouped = frame.groupby(months)["value"].sum()
    return {ts.date(): float(v) for ts, v in grouped.items()}


# ------------- Chart ------------- #

def build_monthly_series(
    bundles: Sequence[CustomerForecastBundle],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[ChartPoint]:
    predicted = monthly_totals(
        (f.predicted_date, f.predicted_quantity) for b in bundles for f in b.forecasts
    )
    actual = monthly_totals(
        (s.date, s.quantity) for b in bundles for s in b.actual_sales
    )

    months = set(predicted) | set(actual)
    if date_from is not None and date_to is not None:
        # every month of the selected range shows up, even when empty
        months |= {ts.date() for ts in pd.date_range(month_start(date_from), month_start(date_to), freq="MS")}
    if date_from is not None:
        months = {m for m in months if m >= month_start(date_from)}
    if date_to is not None:
        months = {m for m in months if m <= month_start(date_to)}

    return [
        ChartPoint(
            date=m,
            predicted_quantity=predicted.get(m, 0.0),
            actual_sales_monthly=actual.get(m, 0.0),
        )
        for m in sorted(months)
    ]


def summary_mape(bundles: Sequence[CustomerForecastBundle]) -> float:
    """
    Mean over customers of each customer's own mean MAPE.
    Customers without any MAPE value do not count.
    """
    customer_means = []
    for bundle in bundles:
        values = [f.mape for f in bundle.forecasts if f.mape is not None]
        if values:
            customer_means.append(statistics.mean(values))
    return statistics.mean(customer_means) if customer_means else 0.0


def linear_trend(values: List[float]) -> float:
    """
    OLS slope on x=[0..n-1], y=values, as a percentage of the mean of y.
    Returns 0 with fewer than 2 points or a zero mean.
    """
    n = len(values)
    if n < 2:
        return 0.0

    mean_y = statistics.mean(values)
    if mean_y == 0:
        return 0.0

    mean_x = (n - 1) / 2.0
    num = sum((xi - mean_x) * (yi - mean_y) for xi, yi in enumerate(values))
    den = sum((xi - mean_x) ** 2 for xi in range(n))
    slope = (num / den) if den > 0 else 0.0

    return slope / mean_y * 100.0


def _floored_mean(values: List[float]) -> int:
    return int(math.floor(sum(values) / len(values))) if values else 0


def chart_stats(series: Sequence[ChartPoint], mape: float) -> ChartStats:
    actual = [p.actual_sales_monthly for p in series if p.actual_sales_monthly > 0]
    predicted = [p.predicted_quantity for p in series if p.predicted_quantity > 0]
    return ChartStats(
        avg_actual=_floored_mean(actual),
        avg_predicted=_floored_mean(predicted),
        mape=mape,
        trend=linear_trend(predicted),
    )


def build_chart(
    bundles: Sequence[CustomerForecastBundle],
    view: ViewSelection,
    today: date,
    period: str = "all",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> ChartResponse:
    selected = select_bundles(bundles, view)
    start, end = resolve_date_range(period, today, date_from, date_to)
    series = build_monthly_series(selected, start, end)

    return ChartResponse(
        label=view_label(bundles, view),
        date_from=start,
        date_to=end,
        series=series,
        stats=chart_stats(series, summary_mape(selected)),
    )


# ------------- Table ------------- #

TABLE_SORT_KEYS = {
    "cofId": "cof_id",
    "customerId": "customer_id",
    "companyName": "company_name",
    "customerName": "customer_name",
    "companySize": "company_size",
    "predictedDate": "predicted_date",
    "predictedQuantity": "predicted_quantity",
    "mape": "mape",
    "predictionModel": "prediction_model",
    "probability": "probability",
    "forecastGenerationDate": "forecast_generation_date",
}

_NUMERIC_SORT_KEYS = {"predicted_quantity", "mape", "probability"}


def _sort_value(record: ForecastRecord, field: str):
    if field == "company_name":
        return (record.company_name or record.customer_name or f"Customer {record.customer_id}").lower()
    value = getattr(record, field)
    if field in _NUMERIC_SORT_KEYS:
        return value or 0.0
    if isinstance(value, CompanySize):
        return value.value
    if isinstance(value, str):
        return value.lower()
    return value


def table_rows(
    bundles: Sequence[CustomerForecastBundle],
    view: ViewSelection,
    sort: Optional[str] = None,
    direction: Literal["asc", "desc"] = "asc",
) -> List[ForecastRecord]:
    """
    Forecast rows of the selected customers, each carrying its bundle's profile.
    Default order is by predicted date; `sort` takes a camelCase column name.
    Missing values sort last ascending and first descending.
    """
    rows = []
    for bundle in select_bundles(bundles, view):
        for forecast in bundle.forecasts:
            rows.append(forecast.model_copy(update={
                "company_name": bundle.company_name or forecast.company_name,
                "customer_name": bundle.customer_name or forecast.customer_name,
                "company_size": bundle.company_size or forecast.company_size,
            }))
    rows.sort(key=lambda r: r.predicted_date)

    if sort is None:
        return rows
    if sort not in TABLE_SORT_KEYS:
        raise ValidationError(f"Unknown sort column: {sort}")

    field = TABLE_SORT_KEYS[sort]

    def key(record: ForecastRecord):
        value = _sort_value(record, field)
        return (value is None, value if value is not None else 0)

    return sorted(rows, key=key, reverse=(direction == "desc"))


# ------------- Company selector ------------- #

def company_directory(bundles: Sequence[CustomerForecastBundle]) -> CompanyDirectory:
    counts = {"all": len(bundles)}
    for size in CompanySize:
        counts[size.value] = sum(1 for b in bundles if b.company_size == size)

    return CompanyDirectory(
        companies=[
            CompanyOption(
                customer_id=b.customer_id,
                company_name=b.company_name,
                company_size=b.company_size,
            )
            for b in bundles
        ],
        size_counts=counts,
    )
