from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.api.routes.cars import build_router
from backend.app.api.schemas import ErrorOut, ViolationOut
from backend.app.core.errors import CatalogError, ValidationFailedError
from backend.app.core.logger import get_logger
from backend.app.core.middleware import log_requests
from backend.app.core.settings import settings
from backend.app.db.session import create_session_factory, init_db
from backend.app.services.aggregation import VehicleAggregationService
from backend.app.services.pricing_client import PricingClient
from backend.app.services.vehicle_store import SqlVehicleStore

logger = get_logger(__name__)


def _error_response(status_code: int, error: ErrorOut) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump(mode="json"))


async def handle_catalog_error(request: Request, exc: CatalogError) -> JSONResponse:
    violations = []
    if isinstance(exc, ValidationFailedError):
        violations = [ViolationOut(field=v.field, message=v.message) for v in exc.violations]
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error_response(exc.status_code, ErrorOut(error=exc.kind, detail=str(exc), violations=violations))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    violations = [
        ViolationOut(field=".".join(str(part) for part in err.get("loc", ()) if part != "body"), message=err.get("msg", ""))
        for err in exc.errors()
    ]
    return _error_response(
        422, ErrorOut(error=ValidationFailedError.kind, detail="Request payload is invalid", violations=violations)
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, ErrorOut(error="internal_error", detail="Internal server error"))


def create_app(service: Optional[VehicleAggregationService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pricing: Optional[PricingClient] = None
        if service is None:
            factory = create_session_factory(settings.database_url)
            init_db(factory)
            pricing = PricingClient()
            app.state.service = VehicleAggregationService(SqlVehicleStore(factory), pricing)
        else:
            app.state.service = service
        logger.info("Vehicles API startup complete")
        yield
        if pricing is not None:
            await pricing.aclose()
        logger.info("Vehicles API shutdown complete")

    app = FastAPI(title="Vehicles API", version="0.1.0", lifespan=lifespan)
    app.middleware("http")(log_requests)
    app.add_exception_handler(CatalogError, handle_catalog_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
    app.include_router(build_router())
    return app


app = create_app()
