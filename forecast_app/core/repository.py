# forecast_app/core/repository.py
"""
Postgres data source for the forecast dashboard.

Reads return plain dicts in the nested shape the aggregation service expects;
joined tables become nested dicts (or None when the join found nothing).
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from forecast_app.core.db import get_conn
from forecast_app.core.errors import DataSourceError, NotFoundError
from forecast_app.core.schemas import ForecastCreate

logger = logging.getLogger(__name__)


FORECAST_SELECT = """
SELECT
    f."COF_ID"                       AS cof_id,
    f."CUSTOMER_ID"                  AS customer_id,
    f."PREDICTED_DATE"               AS predicted_date,
    f."PREDICTED_QUANTITY"           AS predicted_quantity,
    f."MAPE"                         AS mape,
    f."PREDICTION_MODEL"             AS prediction_model,
    f."PROBABILITY"                  AS probability,
    f."FORECAST_GENERATION_DATETIME" AS forecast_generation_datetime,
    c."CUSTOMER_ID"                  AS profile_customer_id,
    c."COMPANY_NAME"                 AS company_name,
    c."NAME"                         AS contact_name,
    c."COMPANY_SIZE"                 AS company_size
FROM customer_order_forecast f
LEFT JOIN customers c ON c."CUSTOMER_ID" = f."CUSTOMER_ID"
"""

ORDER_SELECT = """
SELECT
    o."ORDER_DATE"   AS order_date,
    o."QUANTITY"     AS quantity,
    p."PRODUCT_ID"   AS product_id,
    p."SELLINGPRICE" AS selling_price,
    ct."CUSTOMER_ID" AS customer_id
FROM orders o
LEFT JOIN products p ON p."PRODUCT_ID" = o."PRODUCT_ID"
LEFT JOIN contacts ct ON ct."CONTACT_ID" = o."CONTACT_ID"
WHERE ct."CUSTOMER_ID" IS NULL OR ct."CUSTOMER_ID" = ANY(%s)
ORDER BY o."ORDER_DATE" ASC;
"""

# Editable fields -> forecast table columns
UPDATABLE_COLUMNS = {
    "predicted_date": "PREDICTED_DATE",
    "predicted_quantity": "PREDICTED_QUANTITY",
    "mape": "MAPE",
    "probability": "PROBABILITY",
    "prediction_model": "PREDICTION_MODEL",
}


def nest_forecast_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Move the joined customer columns into a nested `customer` dict."""
    profile_id = row.pop("profile_customer_id", None)
    customer = {
        "company_name": row.pop("company_name", None),
        "name": row.pop("contact_name", None),
        "company_size": row.pop("company_size", None),
    }
    row["customer"] = customer if profile_id is not None else None
    return row


def nest_order_row(row: Dict[str, Any]) -> Dict[str, Any]:
    product_id = row.pop("product_id", None)
    selling_price = row.pop("selling_price", None)
    customer_id = row.pop("customer_id", None)
    row["product"] = {"selling_price": selling_price} if product_id is not None else None
    row["contact"] = {"customer_id": customer_id} if customer_id is not None else None
    return row


class ForecastRepository:
    """Reads and point mutations against customer_order_forecast and the order tables."""

    async def fetch_forecast_rows(self) -> List[Dict[str, Any]]:
        query = FORECAST_SELECT + 'ORDER BY f."PREDICTED_DATE" ASC;'
        async with get_conn() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query)
                rows = await cur.fetchall()
        return [nest_forecast_row(dict(r)) for r in rows]

    async def fetch_order_rows(self, customer_ids: Sequence[int]) -> List[Dict[str, Any]]:
        async with get_conn() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(ORDER_SELECT, (list(customer_ids),))
                rows = await cur.fetchall()
        return [nest_order_row(dict(r)) for r in rows]

    async def fetch_forecast(self, cof_id: int) -> Optional[Dict[str, Any]]:
        query = FORECAST_SELECT + 'WHERE f."COF_ID" = %s;'
        async with get_conn() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, (cof_id,))
                row = await cur.fetchone()
        return nest_forecast_row(dict(row)) if row else None

    async def create_forecast(self, payload: ForecastCreate) -> int:
        try:
            async with get_conn() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        'SELECT 1 FROM customers WHERE "CUSTOMER_ID" = %s',
                        (payload.customer_id,)
                    )
                    if await cur.fetchone() is None:
                        raise NotFoundError(f"Customer {payload.customer_id} not found")

                    await cur.execute(
                        """
                        INSERT INTO customer_order_forecast (
                            "CUSTOMER_ID", "PREDICTED_DATE", "PREDICTED_QUANTITY", "MAPE",
                            "PREDICTION_MODEL", "PROBABILITY", "FORECAST_GENERATION_DATETIME"
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, NOW())
                        RETURNING "COF_ID";
                        """,
                        (
                            payload.customer_id,
                            payload.predicted_date,
                            payload.predicted_quantity,
                            payload.mape,
                            payload.prediction_model,
                            payload.probability,
                        )
                    )
                    (cof_id,) = await cur.fetchone()
        except psycopg.Error as e:
            logger.error(f"Failed to create forecast for customer {payload.customer_id}: {e}")
            raise DataSourceError(str(e), source="customer_order_forecast") from e

        logger.info(f"Created forecast {cof_id} for customer {payload.customer_id}")
        return cof_id

    async def update_forecast(self, cof_id: int, changes: Dict[str, Any]) -> None:
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(UPDATABLE_COLUMNS[field]), sql.Placeholder())
            for field in changes
        )
        query = sql.SQL('UPDATE customer_order_forecast SET {} WHERE "COF_ID" = %s').format(assignments)

        try:
            async with get_conn() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, (*changes.values(), cof_id))
                    updated = cur.rowcount
        except psycopg.Error as e:
            logger.error(f"Failed to update forecast {cof_id}: {e}")
            raise DataSourceError(str(e), source="customer_order_forecast") from e

        if updated == 0:
            raise NotFoundError(f"Forecast {cof_id} not found")
        logger.info(f"Updated forecast {cof_id}: {', '.join(changes)}")

    async def delete_forecast(self, cof_id: int) -> None:
        try:
            async with get_conn() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        'DELETE FROM customer_order_forecast WHERE "COF_ID" = %s',
                        (cof_id,)
                    )
                    deleted = cur.rowcount
        except psycopg.Error as e:
            logger.error(f"Failed to delete forecast {cof_id}: {e}")
            raise DataSourceError(str(e), source="customer_order_forecast") from e

        if deleted == 0:
            raise NotFoundError(f"Forecast {cof_id} not found")
        logger.info(f"Deleted forecast {cof_id}")

    async def ping(self) -> None:
        async with get_conn() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1;")
                _ = await cur.fetchone()
