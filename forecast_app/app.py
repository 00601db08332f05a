from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from forecast_app.core.config import settings
from forecast_app.core.db import close_pool
from forecast_app.core.errors import DataSourceError, ForecastAppError
from forecast_app.core.routers import customer_forecast, dashboard, health, trigger

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting customer forecast API (build {settings.BUILD_ID})")
    yield
    # the pool is opened lazily on first use
    await close_pool()
    logger.info("Shutting down customer forecast API")


app = FastAPI(title="Customer Order Forecast API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------------------
# Error handlers
# -------------------------------

@app.exception_handler(DataSourceError)
async def data_source_error_handler(request: Request, exc: DataSourceError):
    logger.error(f"Data source failure ({exc.source or 'unknown'}): {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "Database processing failed.", "detail": exc.detail},
    )


@app.exception_handler(ForecastAppError)
async def forecast_app_error_handler(request: Request, exc: ForecastAppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())[1:])
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return JSONResponse(status_code=422, content={"detail": "; ".join(messages)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error occurred", "detail": str(exc)},
    )

# -------------------------------
# Router registration
# -------------------------------

app.include_router(customer_forecast.router, prefix="/api", tags=["customer-forecast"])
app.include_router(dashboard.router, prefix="/api", tags=["dashboard"])
app.include_router(trigger.router, prefix="/api", tags=["trigger"])
app.include_router(health.router)

for r in app.routes:
    logger.debug("ROUTE %s %s", getattr(r, "path", ""), getattr(r, "methods", ""))


@app.get("/whoami")
def whoami():
    return {"module": "forecast_app.app", "build_id": settings.BUILD_ID}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("forecast_app.app:app", host="0.0.0.0", port=8000)
