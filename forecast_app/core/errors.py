# forecast_app/core/errors.py
"""
Error taxonomy shared by the data source, the services and the routers.

Routers do not catch these; the handlers registered in forecast_app.app turn
them into JSON responses.
"""


class ForecastAppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class DataSourceError(ForecastAppError):
    """Reading forecast or order rows failed. The request yields no data at all."""

    status_code = 500

    def __init__(self, detail: str, source: str | None = None):
        super().__init__(detail)
        self.source = source


class ValidationError(ForecastAppError):
    """A mutation payload is malformed."""

    status_code = 422


class NotFoundError(ForecastAppError):
    """The record targeted by an edit or delete does not exist."""

    status_code = 404
