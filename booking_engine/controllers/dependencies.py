"""Dependency providers resolving engine services from app.state."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.auth_service import AuthService, InvalidAdminTokenError
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.booking_service import BookingService
from booking_engine.services.catalog_service import ResourceCatalog
from booking_engine.services.needs_service import ResourceNeedCalculator
from booking_engine.services.pricing_service import PricingEngine


bearer_scheme = HTTPBearer(auto_error=False)


def _from_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_repository(request: Request) -> DataRepository:
    return _from_state(request, "repository", "Repository")


def get_catalog(request: Request) -> ResourceCatalog:
    return _from_state(request, "catalog", "Resource catalog")


def get_need_calculator(request: Request) -> ResourceNeedCalculator:
    return _from_state(request, "need_calculator", "Need calculator")


def get_pricing_engine(request: Request) -> PricingEngine:
    return _from_state(request, "pricing_engine", "Pricing engine")


def get_availability_service(request: Request) -> AvailabilityService:
    return _from_state(request, "availability_service", "Availability service")


def get_booking_service(request: Request) -> BookingService:
    return _from_state(request, "booking_service", "Booking service")


def get_auth_service(request: Request) -> AuthService:
    return _from_state(request, "auth_service", "Staff authentication")


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    """Gate staff endpoints behind a session opened with POST /login."""
    if not auth_service.auth_enabled:
        return
    try:
        if credentials is None:
            raise InvalidAdminTokenError("Staff session required: send 'Authorization: Bearer <token>'")
        auth_service.validate_bearer_token(credentials.credentials)
    except InvalidAdminTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
