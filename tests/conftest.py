import copy
import os
import sys
from datetime import date, datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_configure(config):
    """Runs before test modules are imported, so settings pick these values up."""
    os.environ.setdefault("DB_HOST", "localhost")
    os.environ.setdefault("DB_SSLMODE", "disable")
    os.environ.pop("FORECAST_JOB_URL", None)


TODAY = date(2024, 1, 3)


def make_forecast_row(
    cof_id,
    customer_id,
    predicted_date,
    predicted_quantity,
    mape=None,
    company_name=None,
    contact_name=None,
    company_size=None,
    probability=None,
    prediction_model="prophet",
    with_profile=True,
):
    """A forecast row in the nested shape the data source returns."""
    customer = None
    if with_profile:
        customer = {
            "company_name": company_name,
            "name": contact_name,
            "company_size": company_size,
        }
    return {
        "cof_id": cof_id,
        "customer_id": customer_id,
        "predicted_date": predicted_date,
        "predicted_quantity": predicted_quantity,
        "mape": mape,
        "prediction_model": prediction_model,
        "probability": probability,
        "forecast_generation_datetime": datetime(2023, 12, 31, 9, 0),
        "customer": customer,
    }


def make_order_row(order_date, quantity, unit_price, customer_id):
    return {
        "order_date": order_date,
        "quantity": quantity,
        "product": {"selling_price": unit_price} if unit_price is not None else None,
        "contact": {"customer_id": customer_id} if customer_id is not None else None,
    }


def sample_forecast_rows():
    return [
        make_forecast_row(1, 1, date(2024, 1, 5), 10, mape=0.1, company_name="Alpha Corp",
                          contact_name="Kim", company_size="대기업", probability=0.8),
        make_forecast_row(2, 2, date(2024, 1, 20), 5, company_name="beta Ltd",
                          contact_name="Lee", company_size="중소기업"),
        make_forecast_row(3, 1, date(2024, 2, 10), 20, mape=0.3, company_name="Alpha Corp",
                          contact_name="Kim", company_size="대기업"),
        make_forecast_row(4, 3, date(2024, 3, 1), 7, mape=0.2, with_profile=False),
    ]


def sample_order_rows():
    return [
        make_order_row(date(2024, 1, 1), 10, 10, 1),
        make_order_row(date(2024, 1, 2), 1, 30, 2),
        make_order_row(date(2024, 1, 3), 5, 10, 1),
        make_order_row(date(2024, 1, 2), 99, 10, None),
    ]


class FakeRepository:
    """In-memory stand-in for ForecastRepository."""

    def __init__(self, forecast_rows=None, order_rows=None, fail_on=None, customers=(1, 2, 3)):
        self.forecast_rows = forecast_rows if forecast_rows is not None else []
        self.order_rows = order_rows if order_rows is not None else []
        self.fail_on = fail_on
        self.customers = set(customers)
        self.requested_customer_ids = None
        self.updates = []
        self.deleted = []

    async def fetch_forecast_rows(self):
        if self.fail_on == "forecasts":
            raise RuntimeError("connection refused")
        return copy.deepcopy(self.forecast_rows)

    async def fetch_order_rows(self, customer_ids):
        self.requested_customer_ids = list(customer_ids)
        if self.fail_on == "orders":
            raise RuntimeError("orders join failed")
        return copy.deepcopy(self.order_rows)

    async def fetch_forecast(self, cof_id):
        for row in self.forecast_rows:
            if row["cof_id"] == cof_id:
                return copy.deepcopy(row)
        return None

    async def create_forecast(self, payload):
        from forecast_app.core.errors import NotFoundError

        if payload.customer_id not in self.customers:
            raise NotFoundError(f"Customer {payload.customer_id} not found")
        cof_id = max((r["cof_id"] for r in self.forecast_rows), default=0) + 1
        self.forecast_rows.append(make_forecast_row(
            cof_id,
            payload.customer_id,
            payload.predicted_date,
            payload.predicted_quantity,
            mape=payload.mape,
            probability=payload.probability,
            prediction_model=payload.prediction_model,
            company_name="New Co",
        ))
        return cof_id

    async def update_forecast(self, cof_id, changes):
        from forecast_app.core.errors import NotFoundError

        if not any(r["cof_id"] == cof_id for r in self.forecast_rows):
            raise NotFoundError(f"Forecast {cof_id} not found")
        self.updates.append((cof_id, changes))

    async def delete_forecast(self, cof_id):
        from forecast_app.core.errors import NotFoundError

        before = len(self.forecast_rows)
        self.forecast_rows = [r for r in self.forecast_rows if r["cof_id"] != cof_id]
        if len(self.forecast_rows) == before:
            raise NotFoundError(f"Forecast {cof_id} not found")
        self.deleted.append(cof_id)

    async def ping(self):
        return None


@pytest.fixture
def repo():
    return FakeRepository(sample_forecast_rows(), sample_order_rows())


@pytest.fixture
def client(repo):
    from fastapi.testclient import TestClient

    from forecast_app.app import app
    from forecast_app.core.dependencies import get_repository, get_today

    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_today] = lambda: TODAY
    yield TestClient(app)
    app.dependency_overrides.clear()
