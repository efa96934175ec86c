"""
ASGI entry point for the venue booking engine.

`create_app` wires catalog, needs, pricing, availability, booking commit and
staff auth onto app.state; the lifespan hook prepares the SQLite store.

    python main.py
    uvicorn app:app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from booking_engine.controllers.admin_controller import router as admin_router
from booking_engine.controllers.booking_controller import router as booking_router
from booking_engine.controllers.engine_controller import router as engine_router
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.auth_service import AuthService
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.booking_service import BookingService
from booking_engine.services.catalog_service import ResourceCatalog
from booking_engine.services.needs_service import ResourceNeedCalculator
from booking_engine.services.pricing_service import PricingEngine
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; controllers resolve services from app.state."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Engine (catalog capacity is refreshed from active units at startup) ---
    catalog = ResourceCatalog.from_settings(settings)
    need_calculator = ResourceNeedCalculator(catalog, settings=settings)
    pricing_engine = PricingEngine(need_calculator, settings=settings)
    availability_service = AvailabilityService(
        need_calculator,
        reservation_reader=repository,
        rules_reader=repository,
        settings=settings,
    )
    booking_service = BookingService(
        availability_service,
        pricing_engine,
        repository=repository,
        settings=settings,
    )
    auth_service = AuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(engine_router)
    app.include_router(booking_router)
    app.include_router(admin_router)

    # --- app.state wiring ---
    app.state.repository = repository
    app.state.catalog = catalog
    app.state.need_calculator = need_calculator
    app.state.pricing_engine = pricing_engine
    app.state.availability_service = availability_service
    app.state.booking_service = booking_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI) -> None:
    """Create tables, seed units on an empty store, then size the catalog from active units."""
    repository: DataRepository = app.state.repository
    catalog: ResourceCatalog = app.state.catalog

    repository.initialize_database()
    repository.seed_resources()
    catalog.apply_unit_counts(repository.count_active_units())
    logger.info("Engine ready | database=%s", repository.database_path)


app = create_app()
