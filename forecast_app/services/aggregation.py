# forecast_app/services/aggregation.py
"""
Customer forecast aggregation.

Joins forecast rows and order rows into one bundle per customer:

  1. order rows -> revenue per customer per local calendar date
  2. revenue dates -> contiguous daily series from first sale through today
  3. forecast rows -> grouped per customer with the profile snapshot
  4. bundles -> top customers by total sales, then everyone else by name

Rows come in the nested shape produced by the data source
(see forecast_app.core.repository):

    forecast row: {cof_id, customer_id, predicted_date, predicted_quantity, mape,
                   prediction_model, probability, forecast_generation_datetime,
                   customer: {company_name, name, company_size} | None}
    order row:    {order_date, quantity,
                   product: {selling_price} | None,
                   contact: {customer_id} | None}
"""
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from forecast_app.core.errors import DataSourceError
from forecast_app.core.schemas import (
    CompanySize,
    CustomerForecastBundle,
    DailyActualSales,
    ForecastRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_TOP_CUSTOMERS = 5

Row = Mapping[str, Any]


class ForecastSource(Protocol):
    async def fetch_forecast_rows(self) -> List[Dict[str, Any]]: ...

    async def fetch_order_rows(self, customer_ids: Sequence[int]) -> List[Dict[str, Any]]: ...


# ---------------------------
# Helpers
# ---------------------------

def to_local_date(value: Any) -> date:
    """
    Calendar date of a stored date/timestamp in local time.
    Aware timestamps are converted to the local zone first; naive ones are taken as-is.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Unsupported date value: {value!r}")


def _as_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _order_customer_id(row: Row) -> Optional[int]:
    contact = row.get("contact") or {}
    return contact.get("customer_id")


# ---------------------------
# Step 1: revenue derivation
# ---------------------------

def derive_daily_revenue(order_rows: Iterable[Row]) -> Dict[int, Dict[date, float]]:
    """Sum quantity * unit price per customer per local calendar date."""
    revenue: Dict[int, Dict[date, float]] = defaultdict(lambda: defaultdict(float))
    skipped = 0

    for row in order_rows:
        customer_id = _order_customer_id(row)
        if customer_id is None:
            skipped += 1
            logger.debug(f"Dropping order row without customer linkage: {row.get('order_date')}")
            continue

        if row.get("order_date") is None:
            skipped += 1
            logger.debug(f"Dropping order row without an order date for customer {customer_id}")
            continue

        product = row.get("product") or {}
        unit_price = float(product.get("selling_price") or 0)
        quantity = float(row.get("quantity") or 0)

        day = to_local_date(row["order_date"])
        revenue[customer_id][day] += quantity * unit_price

    if skipped:
        logger.info(f"Skipped {skipped} order rows with unresolved customer linkage or no order date")

    return {cid: dict(days) for cid, days in revenue.items()}


# ---------------------------
# Step 2: gap fill
# ---------------------------

def fill_daily_series(daily_revenue: Mapping[date, float], today: date) -> List[DailyActualSales]:
    """
    One entry per calendar day from the first recorded sale through today, inclusive.
    Days without revenue are 0. No revenue at all yields an empty list.
    """
    if not daily_revenue:
        return []

    start = min(daily_revenue)
    span = (today - start).days + 1

    series = []
    for offset in range(max(span, 0)):
        day = start + timedelta(days=offset)
        series.append(DailyActualSales(date=day, quantity=daily_revenue.get(day, 0.0)))
    return series


# ---------------------------
# Step 3: bundle assembly
# ---------------------------

def to_forecast_record(row: Row) -> ForecastRecord:
    customer = row.get("customer") or {}
    return ForecastRecord(
        cof_id=row["cof_id"],
        customer_id=row["customer_id"],
        company_name=customer.get("company_name") or None,
        customer_name=customer.get("name") or None,
        company_size=CompanySize.from_label(customer.get("company_size")),
        predicted_date=to_local_date(row["predicted_date"]),
        predicted_quantity=float(row.get("predicted_quantity") or 0),
        mape=_as_float(row.get("mape")),
        prediction_model=row.get("prediction_model"),
        probability=_as_float(row.get("probability")),
        forecast_generation_date=row.get("forecast_generation_datetime"),
    )


def assemble_bundles(
    forecast_rows: Iterable[Row],
    daily_revenue: Mapping[int, Mapping[date, float]],
    today: date,
) -> List[CustomerForecastBundle]:
    """Group forecasts per customer (first-seen order) and attach the filled sales series."""
    bundles: Dict[int, CustomerForecastBundle] = {}

    for row in forecast_rows:
        record = to_forecast_record(row)
        bundle = bundles.get(record.customer_id)
        if bundle is None:
            bundle = CustomerForecastBundle(
                customer_id=record.customer_id,
                company_name=record.company_name,
                customer_name=record.customer_name,
                company_size=record.company_size,
            )
            bundles[record.customer_id] = bundle
        bundle.forecasts.append(record)

    for bundle in bundles.values():
        bundle.forecasts.sort(key=lambda f: f.predicted_date)
        bundle.actual_sales = fill_daily_series(daily_revenue.get(bundle.customer_id, {}), today)

    return list(bundles.values())


# ---------------------------
# Step 4: ranking
# ---------------------------

def total_sales(bundle: CustomerForecastBundle) -> float:
    return sum(sale.quantity for sale in bundle.actual_sales)


def rank_bundles(
    bundles: Sequence[CustomerForecastBundle],
    top_n: int = DEFAULT_TOP_CUSTOMERS,
) -> List[CustomerForecastBundle]:
    """
    Top `top_n` customers by total sales (descending), then the rest by
    company name, case-insensitive. Equal totals keep their incoming order.
    """
    totals = {b.customer_id: total_sales(b) for b in bundles}

    top = sorted(bundles, key=lambda b: totals[b.customer_id], reverse=True)[:max(top_n, 0)]
    top_ids = {b.customer_id for b in top}

    rest = sorted(
        (b for b in bundles if b.customer_id not in top_ids),
        key=lambda b: b.display_name.lower(),
    )
    return top + rest


# ---------------------------
# Pipeline
# ---------------------------

def build_customer_forecasts(
    forecast_rows: Sequence[Row],
    order_rows: Iterable[Row],
    today: date,
    top_n: int = DEFAULT_TOP_CUSTOMERS,
) -> List[CustomerForecastBundle]:
    daily_revenue = derive_daily_revenue(order_rows)
    bundles = assemble_bundles(forecast_rows, daily_revenue, today)
    return rank_bundles(bundles, top_n)


async def load_customer_forecasts(
    source: ForecastSource,
    today: date,
    top_n: int = DEFAULT_TOP_CUSTOMERS,
) -> List[CustomerForecastBundle]:
    """
    Fetch both row sets and build the ranked bundle list.
    Any fetch failure raises DataSourceError; nothing partial is returned.
    """
    try:
        forecast_rows = await source.fetch_forecast_rows()
    except DataSourceError:
        raise
    except Exception as e:
        logger.error(f"Forecast fetch failed: {e}", exc_info=True)
        raise DataSourceError(str(e), source="customer_order_forecast") from e

    customer_ids = list(dict.fromkeys(row["customer_id"] for row in forecast_rows))
    if not customer_ids:
        return []

    try:
        order_rows = await source.fetch_order_rows(customer_ids)
    except DataSourceError:
        raise
    except Exception as e:
        logger.error(f"Orders join fetch failed: {e}", exc_info=True)
        raise DataSourceError(str(e), source="orders") from e

    logger.info(
        f"Aggregating {len(forecast_rows)} forecasts and {len(order_rows)} orders "
        f"for {len(customer_ids)} customers"
    )
    return build_customer_forecasts(forecast_rows, order_rows, today, top_n)
