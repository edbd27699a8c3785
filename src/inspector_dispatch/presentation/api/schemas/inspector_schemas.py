"""Pydantic schemas for inspector API requests and responses."""

from datetime import date as Date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CertificationRequest(BaseModel):
    """Certification supplied when registering an inspector."""
    name: str = Field(..., description="Certification name, matched case-insensitively in searches")
    issuing_authority: str
    expiry_date: Optional[Date] = None


class CreateInspectorRequest(BaseModel):
    """Request model for registering an inspector."""
    first_name: str
    last_name: str
    badge_number: str = Field(..., description="Unique badge number")
    latitude: float
    longitude: float
    status: str = Field("inactive", description="Initial status: inactive or available")
    certifications: List[CertificationRequest] = Field(default_factory=list)
    requesting_user_id: int


class MobilizeInspectorRequest(BaseModel):
    """Request model for mobilizing an inspector."""
    requesting_user_id: int
    notes: Optional[str] = Field(None, description="Free-text notes, up to 500 characters")
    mobilization_date: Optional[datetime] = Field(None, description="Defaults to now (UTC)")


class StatusChangeRequest(BaseModel):
    """Request model for demobilize and suspend."""
    requesting_user_id: int
    reason: Optional[str] = None


class UpdateLocationRequest(BaseModel):
    """Request model for reporting an inspector location."""
    latitude: float
    longitude: float
    requesting_user_id: int


class RecordDrugTestRequest(BaseModel):
    """Request model for recording an administered drug test."""
    test_kit_id: str = Field(..., description="Kit identifier in DT-YYYY-NNNN format")
    test_type: str = Field(..., description="Standard Panel, DOT Panel or Extended Panel")
    test_date: datetime
    requesting_user_id: int
    administered_by: Optional[str] = None
    result: Optional[bool] = Field(None, description="True pass, False fail, omitted while pending")
    notes: Optional[str] = None


class RecordDrugTestResultRequest(BaseModel):
    """Request model for recording a pending test's result."""
    result: bool
    requesting_user_id: int
    notes: Optional[str] = None


class CertificationResponse(BaseModel):
    """Response model for a certification."""
    name: str
    issuing_authority: str
    expiry_date: Optional[Date] = None


class DrugTestResponse(BaseModel):
    """Response model for a drug test."""
    test_kit_id: str
    test_type: str
    test_date: datetime
    administered_by: Optional[str] = None
    result: Optional[bool] = None
    notes: Optional[str] = None
    result_recorded_at: Optional[datetime] = None


class InspectorResponse(BaseModel):
    """Response model for an inspector."""
    id: int
    first_name: str
    last_name: str
    badge_number: str
    status: str
    latitude: float
    longitude: float
    is_active: bool
    certifications: List[CertificationResponse]
    drug_tests: List[DrugTestResponse]
    last_drug_test_date: Optional[datetime] = None
    last_mobilized_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class InspectorSummaryResponse(BaseModel):
    """Response model for a search result row."""
    id: int
    first_name: str
    last_name: str
    badge_number: str
    status: str
    latitude: float
    longitude: float
    distance_miles: float
    certifications: List[str]
    last_drug_test_date: Optional[datetime] = None
    is_active: bool


class InspectorSearchResponse(BaseModel):
    """Response model for one page of search results."""
    items: List[InspectorSummaryResponse]
    total_count: int
    page_number: int
    page_size: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool


class MobilizationResponse(BaseModel):
    """Response model for a successful mobilization."""
    inspector_id: int
    previous_status: str
    new_status: str
    mobilization_date: datetime
    mobilized_at: datetime


class ErrorResponse(BaseModel):
    """Error body returned for rejected requests."""
    detail: str
    type: str
    reason: Optional[str] = None
    errors: Optional[List[str]] = None
