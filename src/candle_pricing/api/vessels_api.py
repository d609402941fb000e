"""
Vessels API - FastAPI router for vessel registration and catalog sync.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..engine.errors import PricingError
from ..engine.models import DeploymentResult, RegistrationResult, SyncReport
from .errors import to_http_error
from .state import Services, get_services

router = APIRouter(prefix="/api/vessels", tags=["vessels"])


# Pydantic models for API
class VesselCreate(BaseModel):
    """Request model for registering a vessel."""
    name: str
    size_oz: int
    base_cost: float
    margin_pct: Optional[float] = None
    supplier: Optional[str] = None


class VesselResponse(BaseModel):
    key: str
    name: str
    size_oz: float
    base_cost_cents: int
    margin_pct: float
    supplier: Optional[str]
    status: str
    handle: str


class RegistrationResponse(BaseModel):
    vessel_key: str
    product_id: Optional[str]
    variant_count: int
    inventory_activated: int
    warnings: list[str]
    trace: str


class SyncResponse(BaseModel):
    vessel_key: str
    product_id: Optional[str]
    created_product: bool
    variants_existing: int
    variants_created: int
    variants_priced: int
    error: Optional[str]
    warnings: list[str]
    trace: str


class DeployResponse(BaseModel):
    plan: dict
    products_disabled: int
    variants_disabled: int
    reports: list[SyncResponse]
    warnings: list[str]
    trace: str


def _registration_response(result: RegistrationResult) -> RegistrationResponse:
    return RegistrationResponse(
        vessel_key=result.vessel_key,
        product_id=result.product_id,
        variant_count=result.variant_count,
        inventory_activated=result.inventory_activated,
        warnings=result.warnings,
        trace=result.get_trace_text(),
    )


def _sync_response(report: SyncReport) -> SyncResponse:
    return SyncResponse(
        vessel_key=report.vessel_key,
        product_id=report.product_id,
        created_product=report.created_product,
        variants_existing=report.variants_existing,
        variants_created=report.variants_created,
        variants_priced=report.variants_priced,
        error=report.error,
        warnings=report.warnings,
        trace=report.get_trace_text(),
    )


def _deploy_response(result: DeploymentResult) -> DeployResponse:
    return DeployResponse(
        plan=result.plan.to_dict(),
        products_disabled=result.products_disabled,
        variants_disabled=result.variants_disabled,
        reports=[_sync_response(r) for r in result.reports],
        warnings=result.warnings,
        trace=result.get_trace_text(),
    )


# Endpoints

@router.get("", response_model=list[VesselResponse])
def list_vessels(include_disabled: bool = True, services: Services = Depends(get_services)):
    """List all vessels."""
    try:
        vessels = services.vessels.list_vessels(include_disabled=include_disabled)
    except PricingError as e:
        raise to_http_error(e)
    return [
        VesselResponse(
            key=v.key,
            name=v.name,
            size_oz=v.size_oz,
            base_cost_cents=v.base_cost_cents,
            margin_pct=v.margin_pct,
            supplier=v.supplier,
            status=v.status.value,
            handle=v.handle,
        )
        for v in vessels
    ]


@router.get("/check")
def check_vessel(name: str, size_oz: str, services: Services = Depends(get_services)):
    """Live duplicate check while the operator is typing."""
    return services.vessels.check_available(name, size_oz).to_dict()


@router.post("", response_model=RegistrationResponse)
def register_vessel(body: VesselCreate, services: Services = Depends(get_services)):
    """Register a vessel and provision its product and variants."""
    try:
        result = services.vessels.register(
            body.name, body.size_oz, body.base_cost, body.margin_pct, body.supplier
        )
    except PricingError as e:
        raise to_http_error(e)
    return _registration_response(result)


@router.post("/sync", response_model=list[SyncResponse])
def sync_all_vessels(services: Services = Depends(get_services)):
    """Reconcile every enabled vessel against the catalog."""
    try:
        reports = services.generator.sync_all(services.sync, services.store.load())
    except PricingError as e:
        raise to_http_error(e)
    return [_sync_response(r) for r in reports]


@router.get("/deployment")
def deployment_plan(services: Services = Depends(get_services)):
    """What a deploy would create, update and disable. Read-only."""
    try:
        return services.generator.plan_deployment(services.sync, services.store.load()).to_dict()
    except PricingError as e:
        raise to_http_error(e)


@router.post("/deploy", response_model=DeployResponse)
def deploy_vessels(services: Services = Depends(get_services)):
    """Disable stale products, then reconcile every enabled vessel."""
    try:
        result = services.generator.deploy(services.sync, services.store.load())
    except PricingError as e:
        raise to_http_error(e)
    return _deploy_response(result)


@router.post("/{key}/sync", response_model=SyncResponse)
def sync_vessel(key: str, services: Services = Depends(get_services)):
    """Reconcile one vessel's variants against the catalog."""
    try:
        report = services.generator.sync_vessel(services.sync, services.store.load(), key)
    except PricingError as e:
        raise to_http_error(e)
    return _sync_response(report)


@router.post("/{key}/disable", response_model=RegistrationResponse)
def disable_vessel(key: str, services: Services = Depends(get_services)):
    """Soft-disable a vessel. Its catalog variants are marked disabled."""
    try:
        result = services.vessels.disable(key)
    except PricingError as e:
        raise to_http_error(e)
    return _registration_response(result)
