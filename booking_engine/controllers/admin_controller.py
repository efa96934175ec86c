"""HTTP controller layer for staff login, window overrides, rules and units."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field, field_validator, model_validator

from booking_engine.controllers.dependencies import (
    bearer_scheme,
    get_auth_service,
    get_catalog,
    get_repository,
    require_admin,
)
from booking_engine.controllers.schemas import validation_http_error
from booking_engine.domain.constraints import parse_date_key
from booking_engine.domain.errors import BookingValidationError
from booking_engine.domain.models import (
    ALL_ACTIVITIES,
    COMBO_CODE,
    BlackoutRule,
    BufferRule,
    MINUTES_PER_DAY,
    OperatingWindow,
    ResourceType,
    WindowOverride,
)
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from booking_engine.services.catalog_service import ResourceCatalog
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["admin"])

RULE_SCOPES = {
    ALL_ACTIVITIES,
    COMBO_CODE,
    ResourceType.AXE_BAY.value,
    ResourceType.DUCKPIN_LANE.value,
}


def _validate_scope(value: str) -> str:
    if value not in RULE_SCOPES:
        raise ValueError(f"activity must be one of {sorted(RULE_SCOPES)}")
    return value


class LoginRequest(BaseModel):
    admin_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class WindowOverrideRequest(BaseModel):
    open_min: Optional[int] = Field(default=None, ge=0, le=MINUTES_PER_DAY)
    close_min: Optional[int] = Field(default=None, ge=0, le=MINUTES_PER_DAY)
    suppress_blackouts: bool = False
    approved_by: Optional[str] = None

    @model_validator(mode="after")
    def validate_bounds_pair(self) -> "WindowOverrideRequest":
        if (self.open_min is None) != (self.close_min is None):
            raise ValueError("open_min and close_min must be provided together")
        return self


class WindowOverrideResponse(BaseModel):
    date: str
    open_min: Optional[int] = None
    close_min: Optional[int] = None
    suppress_blackouts: bool


class BlackoutRuleRequest(BaseModel):
    date: str
    start_min: Optional[int] = Field(default=None, ge=0, le=MINUTES_PER_DAY)
    end_min: Optional[int] = Field(default=None, ge=0, le=MINUTES_PER_DAY)
    activity: str = ALL_ACTIVITIES
    reason: Optional[str] = None

    @field_validator("activity")
    @classmethod
    def validate_activity(cls, value: str) -> str:
        return _validate_scope(value)

    @model_validator(mode="after")
    def validate_span(self) -> "BlackoutRuleRequest":
        if self.start_min is not None and self.end_min is not None and self.start_min >= self.end_min:
            raise ValueError("start_min must be less than end_min")
        return self


class BufferRuleRequest(BaseModel):
    activity: str = ALL_ACTIVITIES
    before_min: int = Field(default=0, ge=0, le=240)
    after_min: int = Field(default=0, ge=0, le=240)
    active: bool = True

    @field_validator("activity")
    @classmethod
    def validate_activity(cls, value: str) -> str:
        return _validate_scope(value)


class RuleCreatedResponse(BaseModel):
    id: int = Field(gt=0)


class ResourceResponse(BaseModel):
    resource_id: int
    name: str
    resource_type: str
    active: bool


class ResourceUpdateRequest(BaseModel):
    active: bool


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        return LoginResponse(access_token=auth_service.login(payload.admin_token))
    except AdminTokenNotConfiguredError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except InvalidAdminTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Response:
    if credentials is not None:
        auth_service.logout(credentials.credentials)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/overrides/{date_key}",
    response_model=WindowOverrideResponse,
    dependencies=[Depends(require_admin)],
)
async def save_override(
    date_key: str,
    payload: WindowOverrideRequest,
    repository: DataRepository = Depends(get_repository),
) -> WindowOverrideResponse:
    """Record a pre-approved exception to the weekday hours for one date."""
    try:
        parse_date_key(date_key)
        window = None
        if payload.open_min is not None and payload.close_min is not None:
            window = OperatingWindow(open_min=payload.open_min, close_min=payload.close_min)
        override = WindowOverride(
            date_key=date_key,
            window=window,
            suppress_blackouts=payload.suppress_blackouts,
        )
        repository.save_window_override(override, approved_by=payload.approved_by)
        return WindowOverrideResponse(
            date=date_key,
            open_min=payload.open_min,
            close_min=payload.close_min,
            suppress_blackouts=payload.suppress_blackouts,
        )
    except BookingValidationError as exc:
        raise validation_http_error(exc) from exc


@router.delete(
    "/overrides/{date_key}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_override(
    date_key: str,
    repository: DataRepository = Depends(get_repository),
) -> Response:
    if not repository.delete_window_override(date_key):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"no override for {date_key}",
        )
    logger.info("Window override removed | date=%s", date_key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/blackouts",
    response_model=RuleCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_blackout(
    payload: BlackoutRuleRequest,
    repository: DataRepository = Depends(get_repository),
) -> RuleCreatedResponse:
    try:
        parse_date_key(payload.date)
    except BookingValidationError as exc:
        raise validation_http_error(exc) from exc
    rule_id = repository.create_blackout_rule(
        BlackoutRule(
            date_key=payload.date,
            start_min=payload.start_min,
            end_min=payload.end_min,
            activity=payload.activity,
            reason=payload.reason,
        )
    )
    logger.info(
        "Blackout rule created | id=%s | date=%s | activity=%s",
        rule_id,
        payload.date,
        payload.activity,
    )
    return RuleCreatedResponse(id=rule_id)


@router.post(
    "/buffers",
    response_model=RuleCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_buffer(
    payload: BufferRuleRequest,
    repository: DataRepository = Depends(get_repository),
) -> RuleCreatedResponse:
    rule_id = repository.create_buffer_rule(
        BufferRule(
            activity=payload.activity,
            before_min=payload.before_min,
            after_min=payload.after_min,
            active=payload.active,
        )
    )
    logger.info(
        "Buffer rule created | id=%s | activity=%s | before=%s | after=%s",
        rule_id,
        payload.activity,
        payload.before_min,
        payload.after_min,
    )
    return RuleCreatedResponse(id=rule_id)


@router.get(
    "/resources",
    response_model=list[ResourceResponse],
    dependencies=[Depends(require_admin)],
)
async def list_resources(
    repository: DataRepository = Depends(get_repository),
) -> list[ResourceResponse]:
    return [
        ResourceResponse(
            resource_id=record.resource_id,
            name=record.name,
            resource_type=record.resource_type.value,
            active=record.active,
        )
        for record in repository.list_resources()
    ]


@router.patch(
    "/resources/{resource_id}",
    response_model=ResourceResponse,
    dependencies=[Depends(require_admin)],
)
async def update_resource(
    resource_id: int,
    payload: ResourceUpdateRequest,
    repository: DataRepository = Depends(get_repository),
    catalog: ResourceCatalog = Depends(get_catalog),
) -> ResourceResponse:
    """Activate or deactivate one unit and refresh catalog capacity."""
    record = repository.set_resource_active(resource_id, payload.active)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"resource {resource_id} not found",
        )
    catalog.apply_unit_counts(repository.count_active_units())
    return ResourceResponse(
        resource_id=record.resource_id,
        name=record.name,
        resource_type=record.resource_type.value,
        active=record.active,
    )
