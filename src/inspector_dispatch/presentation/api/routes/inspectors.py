"""Inspector search, mobilization and administration endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from src.inspector_dispatch.application.services.directory_service import build_search_criteria
from src.inspector_dispatch.application.services.inspector_service import (
    CertificationInput,
    CreateInspectorCommand,
    RecordDrugTestCommand
)
from src.inspector_dispatch.application.services.mobilization_service import MobilizeInspectorCommand
from src.inspector_dispatch.domain.entities.drug_test import DrugTest
from src.inspector_dispatch.domain.entities.inspector import Inspector, InspectorStatus
from src.inspector_dispatch.domain.exceptions import InspectorValidationError
from src.inspector_dispatch.domain.value_objects.page import Page
from src.inspector_dispatch.infrastructure.services import ServiceFactory, get_service_factory
from src.inspector_dispatch.presentation.api.schemas.inspector_schemas import (
    CertificationResponse,
    CreateInspectorRequest,
    DrugTestResponse,
    ErrorResponse,
    InspectorResponse,
    InspectorSearchResponse,
    InspectorSummaryResponse,
    MobilizationResponse,
    MobilizeInspectorRequest,
    RecordDrugTestRequest,
    RecordDrugTestResultRequest,
    StatusChangeRequest,
    UpdateLocationRequest
)

router = APIRouter(responses={
    400: {"model": ErrorResponse, "description": "Validation error"},
    404: {"model": ErrorResponse, "description": "Inspector not found"},
    409: {"model": ErrorResponse, "description": "Domain rejection"},
})


@router.get("/search", responses={503: {"model": ErrorResponse, "description": "Search temporarily unavailable"}})
async def search_inspectors(
    latitude: float = Query(..., description="Search center latitude"),
    longitude: float = Query(..., description="Search center longitude"),
    radius_miles: float = Query(..., description="Search radius in miles (1-500)"),
    status_filter: Optional[str] = Query(None, alias="status"),
    certifications: Optional[List[str]] = Query(None, description="Required certifications (all must match)"),
    is_active: Optional[bool] = Query(None),
    page_number: int = Query(1),
    page_size: int = Query(10),
    sort_by: str = Query("Distance", description="Distance, LastName, Status or LastDrugTestDate"),
    sort_descending: bool = Query(False),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> InspectorSearchResponse:
    """Search inspectors within a radius of a point."""
    criteria = build_search_criteria(
        latitude=latitude,
        longitude=longitude,
        radius_miles=radius_miles,
        status=status_filter,
        certifications=certifications,
        is_active=is_active,
        page_number=page_number,
        page_size=page_size,
        sort_by=sort_by,
        sort_descending=sort_descending
    )

    async with service_factory.get_directory_service() as directory_service:
        page = await directory_service.search(criteria)

    return _to_search_response(page)


@router.get("/{inspector_id}")
async def get_inspector(
    inspector_id: int = Path(..., description="Inspector ID"),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> InspectorResponse:
    """Get an inspector by ID."""
    async with service_factory.get_inspector_service() as inspector_service:
        inspector = await inspector_service.get_inspector(inspector_id)
    return _to_inspector_response(inspector)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_inspector(
    request: CreateInspectorRequest,
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> InspectorResponse:
    """Register a new inspector."""
    try:
        initial_status = InspectorStatus(request.status.strip().lower())
    except ValueError as e:
        raise InspectorValidationError(["Initial status must be inactive or available."]) from e

    command = CreateInspectorCommand(
        first_name=request.first_name,
        last_name=request.last_name,
        badge_number=request.badge_number,
        latitude=request.latitude,
        longitude=request.longitude,
        requesting_user_id=request.requesting_user_id,
        status=initial_status,
        certifications=tuple(
            CertificationInput(item.name, item.issuing_authority, item.expiry_date)
            for item in request.certifications
        )
    )

    async with service_factory.get_inspector_service() as inspector_service:
        inspector = await inspector_service.create_inspector(command)
    return _to_inspector_response(inspector)


@router.post("/{inspector_id}/mobilize")
async def mobilize_inspector(
    request: MobilizeInspectorRequest,
    inspector_id: int = Path(..., description="Inspector ID"),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> MobilizationResponse:
    """Mobilize an available, compliant inspector."""
    command = MobilizeInspectorCommand(
        inspector_id=inspector_id,
        requesting_user_id=request.requesting_user_id,
        notes=request.notes,
        mobilization_date=request.mobilization_date
    )

    async with service_factory.get_mobilization_service() as mobilization_service:
        result = await mobilization_service.mobilize(command)

    return MobilizationResponse(
        inspector_id=result.inspector_id,
        previous_status=result.previous_status.value,
        new_status=result.new_status.value,
        mobilization_date=result.mobilization_date,
        mobilized_at=result.mobilized_at
    )


@router.post("/{inspector_id}/demobilize")
async def demobilize_inspector(
    request: StatusChangeRequest,
    inspector_id: int = Path(..., description="Inspector ID"),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> InspectorResponse:
    """Return a mobilized inspector to available."""
    async with service_factory.get_inspector_service() as inspector_service:
        inspector = await inspector_service.demobilize(inspector_id, request.requesting_user_id)
    return _to_inspector_response(inspector)


@router.post("/{inspector_id}/suspend")
async def suspend_inspector(
    request: StatusChangeRequest,
    inspector_id: int = Path(..., description="Inspector ID"),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> InspectorResponse:
    """Suspend an inspector."""
    async with service_factory.get_inspector_service() as inspector_service:
        inspector = await inspector_service.suspend(inspector_id, request.requesting_user_id, request.reason)
    return _to_inspector_response(inspector)


@router.put("/{inspector_id}/location")
async def update_inspector_location(
    request: UpdateLocationRequest,
    inspector_id: int = Path(..., description="Inspector ID"),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> InspectorResponse:
    """Report an inspector's current location."""
    async with service_factory.get_inspector_service() as inspector_service:
        inspector = await inspector_service.update_location(
            inspector_id,
            request.latitude,
            request.longitude,
            request.requesting_user_id
        )
    return _to_inspector_response(inspector)


@router.post("/{inspector_id}/drug-tests", status_code=status.HTTP_201_CREATED)
async def record_drug_test(
    request: RecordDrugTestRequest,
    inspector_id: int = Path(..., description="Inspector ID"),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> DrugTestResponse:
    """Record an administered drug test."""
    command = RecordDrugTestCommand(
        inspector_id=inspector_id,
        test_kit_id=request.test_kit_id,
        test_type=request.test_type,
        test_date=request.test_date,
        requesting_user_id=request.requesting_user_id,
        administered_by=request.administered_by,
        result=request.result,
        notes=request.notes
    )

    async with service_factory.get_inspector_service() as inspector_service:
        drug_test = await inspector_service.record_drug_test(command)
    return _to_drug_test_response(drug_test)


@router.post("/{inspector_id}/drug-tests/{test_kit_id}/result")
async def record_drug_test_result(
    request: RecordDrugTestResultRequest,
    inspector_id: int = Path(..., description="Inspector ID"),
    test_kit_id: str = Path(..., description="Test kit ID"),
    service_factory: ServiceFactory = Depends(get_service_factory)
) -> DrugTestResponse:
    """Record the result of a pending drug test."""
    async with service_factory.get_inspector_service() as inspector_service:
        drug_test = await inspector_service.record_drug_test_result(
            inspector_id,
            test_kit_id,
            request.result,
            request.requesting_user_id,
            request.notes
        )
    return _to_drug_test_response(drug_test)


def _to_search_response(page: Page) -> InspectorSearchResponse:
    return InspectorSearchResponse(
        items=[
            InspectorSummaryResponse(
                id=item.id,
                first_name=item.first_name,
                last_name=item.last_name,
                badge_number=item.badge_number,
                status=item.status.value,
                latitude=item.latitude,
                longitude=item.longitude,
                distance_miles=item.distance_miles,
                certifications=list(item.certifications),
                last_drug_test_date=item.last_drug_test_date,
                is_active=item.is_active
            )
            for item in page.items
        ],
        total_count=page.total_count,
        page_number=page.page_number,
        page_size=page.page_size,
        total_pages=page.total_pages,
        has_previous_page=page.has_previous_page,
        has_next_page=page.has_next_page
    )


def _to_drug_test_response(drug_test: DrugTest) -> DrugTestResponse:
    return DrugTestResponse(
        test_kit_id=drug_test.test_kit_id,
        test_type=drug_test.test_type,
        test_date=drug_test.test_date,
        administered_by=drug_test.administered_by,
        result=drug_test.result,
        notes=drug_test.notes,
        result_recorded_at=drug_test.result_recorded_at
    )


def _to_inspector_response(inspector: Inspector) -> InspectorResponse:
    return InspectorResponse(
        id=inspector.id,
        first_name=inspector.first_name,
        last_name=inspector.last_name,
        badge_number=inspector.badge_number,
        status=inspector.status.value,
        latitude=inspector.location.latitude,
        longitude=inspector.location.longitude,
        is_active=inspector.is_active,
        certifications=[
            CertificationResponse(
                name=certification.name,
                issuing_authority=certification.issuing_authority,
                expiry_date=certification.expiry_date
            )
            for certification in inspector.certifications
        ],
        drug_tests=[_to_drug_test_response(drug_test) for drug_test in inspector.drug_tests],
        last_drug_test_date=inspector.last_drug_test_date,
        last_mobilized_date=inspector.last_mobilized_date,
        created_at=inspector.created_at,
        updated_at=inspector.updated_at
    )
