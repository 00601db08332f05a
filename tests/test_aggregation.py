import asyncio
from datetime import date, datetime

import pytest

from conftest import FakeRepository, make_forecast_row, make_order_row, sample_forecast_rows, sample_order_rows
from forecast_app.core.errors import DataSourceError
from forecast_app.core.schemas import CompanySize
from forecast_app.services.aggregation import (
    build_customer_forecasts,
    derive_daily_revenue,
    fill_daily_series,
    load_customer_forecasts,
    rank_bundles,
    to_local_date,
)


def _series(bundle):
    return [(s.date, s.quantity) for s in bundle.actual_sales]


def test_gap_fill_matches_daily_revenue_with_zero_days():
    forecasts = [make_forecast_row(1, 7, date(2024, 1, 10), 30, company_name="Acme")]
    orders = [
        make_order_row(date(2024, 1, 1), 4, 25, 7),
        make_order_row(date(2024, 1, 3), 5, 10, 7),
    ]

    [bundle] = build_customer_forecasts(forecasts, orders, today=date(2024, 1, 3))

    assert _series(bundle) == [
        (date(2024, 1, 1), 100),
        (date(2024, 1, 2), 0),
        (date(2024, 1, 3), 50),
    ]


def test_customer_without_orders_gets_empty_actual_sales():
    forecasts = [
        make_forecast_row(1, 7, date(2024, 1, 5), 10),
        make_forecast_row(2, 7, date(2024, 2, 10), 20),
    ]

    [bundle] = build_customer_forecasts(forecasts, [], today=date(2024, 3, 1))

    assert len(bundle.forecasts) == 2
    assert bundle.actual_sales == []


def test_series_runs_from_first_sale_through_today():
    today = date(2024, 3, 15)
    forecasts = [
        make_forecast_row(1, 1, date(2024, 4, 1), 10, company_name="A"),
        make_forecast_row(2, 2, date(2024, 4, 1), 10, company_name="B"),
    ]
    orders = [
        make_order_row(date(2024, 2, 27), 1, 10, 1),
        make_order_row(date(2024, 3, 2), 2, 10, 1),
        make_order_row(datetime(2023, 12, 31, 23, 30), 1, 5, 2),
    ]

    bundles = {b.customer_id: b for b in build_customer_forecasts(forecasts, orders, today)}

    for customer_id, first_sale in [(1, date(2024, 2, 27)), (2, date(2023, 12, 31))]:
        dates = [s.date for s in bundles[customer_id].actual_sales]
        assert len(dates) == (today - first_sale).days + 1
        assert len(set(dates)) == len(dates)
        assert dates == sorted(dates)
        assert dates[0] == first_sale
        assert dates[-1] == today


def test_daily_totals_add_up_to_order_revenue():
    orders = [
        make_order_row(date(2024, 1, 1), 3, 12.5, 1),
        make_order_row(date(2024, 1, 1), 2, 10, 1),
        make_order_row(date(2024, 1, 4), 1, 99, 1),
        make_order_row(date(2024, 1, 2), 7, 3, 2),
    ]
    forecasts = [make_forecast_row(1, 1, date(2024, 2, 1), 1), make_forecast_row(2, 2, date(2024, 2, 1), 1)]

    bundles = build_customer_forecasts(forecasts, orders, today=date(2024, 1, 10))
    totals = {b.customer_id: sum(s.quantity for s in b.actual_sales) for b in bundles}

    assert totals == {1: 3 * 12.5 + 2 * 10 + 99, 2: 21}


def test_orders_without_customer_linkage_are_dropped():
    orders = [
        make_order_row(date(2024, 1, 1), 10, 10, None),
        make_order_row(date(2024, 1, 2), 1, 10, 5),
    ]

    revenue = derive_daily_revenue(orders)

    assert revenue == {5: {date(2024, 1, 2): 10.0}}


def test_missing_price_counts_as_zero_revenue_but_anchors_series():
    orders = [
        make_order_row(date(2024, 1, 1), 10, None, 5),
        make_order_row(date(2024, 1, 2), 1, 10, 5),
    ]
    forecasts = [make_forecast_row(1, 5, date(2024, 2, 1), 1)]

    [bundle] = build_customer_forecasts(forecasts, orders, today=date(2024, 1, 2))

    assert _series(bundle) == [(date(2024, 1, 1), 0), (date(2024, 1, 2), 10)]


def test_first_sale_after_today_yields_empty_series():
    assert fill_daily_series({date(2024, 5, 1): 10.0}, today=date(2024, 4, 30)) == []


def test_fill_of_no_revenue_is_empty():
    assert fill_daily_series({}, today=date(2024, 4, 30)) == []


def test_timestamps_collapse_to_calendar_dates():
    assert to_local_date(datetime(2024, 1, 2, 23, 59)) == date(2024, 1, 2)
    assert to_local_date("2024-01-02") == date(2024, 1, 2)
    assert to_local_date(date(2024, 1, 2)) == date(2024, 1, 2)


def test_profile_comes_from_first_forecast_row_and_size_is_mapped():
    forecasts = [
        make_forecast_row(1, 9, date(2024, 1, 1), 1, company_name="Hanbit", contact_name="Park",
                          company_size="중견기업"),
        make_forecast_row(2, 9, date(2024, 1, 2), 1, company_name="Hanbit", contact_name="Park",
                          company_size="중견기업"),
    ]

    [bundle] = build_customer_forecasts(forecasts, [], today=date(2024, 1, 2))

    assert bundle.company_name == "Hanbit"
    assert bundle.customer_name == "Park"
    assert bundle.company_size == CompanySize.MID
    assert [f.cof_id for f in bundle.forecasts] == [1, 2]


def test_forecasts_are_ordered_by_date_even_when_rows_are_not():
    forecasts = [
        make_forecast_row(2, 1, date(2024, 3, 1), 1),
        make_forecast_row(1, 1, date(2024, 1, 1), 1),
    ]

    [bundle] = build_customer_forecasts(forecasts, [], today=date(2024, 1, 2))

    assert [f.predicted_date for f in bundle.forecasts] == [date(2024, 1, 1), date(2024, 3, 1)]


def _ranking_fixture():
    # customer_id -> (name, revenue on 2024-01-01)
    customers = {
        1: ("delta", 10),
        2: ("Echo", 700),
        3: ("alpha", 20),
        4: ("Foxtrot", 500),
        5: (None, 30),
        6: ("golf", 300),
        7: ("Bravo", 400),
        8: ("charlie", 600),
    }
    forecasts = [
        make_forecast_row(cid, cid, date(2024, 2, 1), 1, company_name=name)
        for cid, (name, _) in customers.items()
    ]
    orders = [make_order_row(date(2024, 1, 1), 1, revenue, cid) for cid, (_, revenue) in customers.items()]
    return forecasts, orders


def test_top_five_by_sales_then_rest_by_name():
    forecasts, orders = _ranking_fixture()

    bundles = build_customer_forecasts(forecasts, orders, today=date(2024, 1, 1))
    ids = [b.customer_id for b in bundles]

    # top five: 700, 600, 500, 400, 300
    assert ids[:5] == [2, 8, 4, 7, 6]
    # rest: "alpha", "Customer 5", "delta"
    assert ids[5:] == [3, 5, 1]


def test_top_customer_count_is_configurable():
    forecasts, orders = _ranking_fixture()

    bundles = build_customer_forecasts(forecasts, orders, today=date(2024, 1, 1), top_n=2)

    assert [b.customer_id for b in bundles][:2] == [2, 8]
    names = [b.display_name.lower() for b in bundles[2:]]
    assert names == sorted(names)


def test_equal_sales_keep_encounter_order():
    forecasts = [
        make_forecast_row(i, cid, date(2024, 2, 1), 1, company_name=name)
        for i, (cid, name) in enumerate([(30, "zulu"), (10, "yankee"), (20, "xray")], start=1)
    ]

    bundles = build_customer_forecasts(forecasts, [], today=date(2024, 1, 1))

    assert [b.customer_id for b in bundles] == [30, 10, 20]


def test_rank_does_not_expose_total_sales():
    forecasts, orders = _ranking_fixture()

    bundles = rank_bundles(build_customer_forecasts(forecasts, orders, today=date(2024, 1, 1)))

    assert "totalSales" not in bundles[0].model_dump(by_alias=True)
    assert "total_sales" not in bundles[0].model_dump()


def test_aggregation_is_idempotent():
    first = build_customer_forecasts(sample_forecast_rows(), sample_order_rows(), today=date(2024, 1, 3))
    second = build_customer_forecasts(sample_forecast_rows(), sample_order_rows(), today=date(2024, 1, 3))

    assert [b.model_dump() for b in first] == [b.model_dump() for b in second]


def test_load_fetches_orders_for_forecast_customers_only():
    repo = FakeRepository(sample_forecast_rows(), sample_order_rows())

    bundles = asyncio.run(load_customer_forecasts(repo, date(2024, 1, 3)))

    assert repo.requested_customer_ids == [1, 2, 3]
    assert [b.customer_id for b in bundles] == [1, 2, 3]


def test_load_without_forecasts_skips_order_fetch():
    repo = FakeRepository([], sample_order_rows())

    assert asyncio.run(load_customer_forecasts(repo, date(2024, 1, 3))) == []
    assert repo.requested_customer_ids is None


@pytest.mark.parametrize("fail_on, source", [("forecasts", "customer_order_forecast"), ("orders", "orders")])
def test_fetch_failure_raises_data_source_error(fail_on, source):
    repo = FakeRepository(sample_forecast_rows(), sample_order_rows(), fail_on=fail_on)

    with pytest.raises(DataSourceError) as excinfo:
        asyncio.run(load_customer_forecasts(repo, date(2024, 1, 3)))

    assert excinfo.value.source == source
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_orders_without_date_are_dropped():
    orders = [
        make_order_row(None, 4, 10, 5),
        make_order_row(date(2024, 1, 2), 1, 10, 5),
    ]

    assert derive_daily_revenue(orders) == {5: {date(2024, 1, 2): 10.0}}
