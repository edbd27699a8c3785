"""SQLAlchemy database models."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text
)
from sqlalchemy.orm import declarative_base, relationship

from src.inspector_dispatch.domain.entities.inspector import InspectorStatus

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InspectorModel(Base):
    """SQLAlchemy model for inspectors."""

    __tablename__ = "inspectors"

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Inspector details
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, index=True)
    badge_number = Column(String(20), nullable=False, unique=True, index=True)

    # Last reported location
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    # Dispatch state
    status = Column(SQLEnum(InspectorStatus, values_callable=lambda obj: [e.value for e in obj]), nullable=False, default=InspectorStatus.INACTIVE)
    is_active = Column(Boolean, nullable=False, default=True)
    last_mobilized_date = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency token, bumped on every update
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Relationships
    certifications = relationship(
        "CertificationModel",
        back_populates="inspector",
        cascade="all, delete-orphan",
        order_by="CertificationModel.id"
    )
    drug_tests = relationship(
        "DrugTestModel",
        back_populates="inspector",
        cascade="all, delete-orphan",
        order_by="DrugTestModel.test_date"
    )

    __table_args__ = (
        Index("ix_inspectors_location", "latitude", "longitude"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<InspectorModel(id={self.id}, badge='{self.badge_number}', status='{self.status}')>"


class CertificationModel(Base):
    """SQLAlchemy model for inspector certifications."""

    __tablename__ = "inspector_certifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspector_id = Column(Integer, ForeignKey("inspectors.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    issuing_authority = Column(String(200), nullable=False)
    expiry_date = Column(Date, nullable=True)

    inspector = relationship("InspectorModel", back_populates="certifications")

    def __repr__(self) -> str:
        return f"<CertificationModel(id={self.id}, inspector_id={self.inspector_id}, name='{self.name}')>"


class DrugTestModel(Base):
    """SQLAlchemy model for drug tests."""

    __tablename__ = "drug_tests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspector_id = Column(Integer, ForeignKey("inspectors.id"), nullable=False, index=True)
    test_kit_id = Column(String(20), nullable=False, unique=True, index=True)
    test_type = Column(String(50), nullable=False)
    test_date = Column(DateTime(timezone=True), nullable=False, index=True)
    administered_by = Column(String(200), nullable=True)

    # Null while pending
    result = Column(Boolean, nullable=True)
    notes = Column(Text, nullable=True)
    result_recorded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    inspector = relationship("InspectorModel", back_populates="drug_tests")

    def __repr__(self) -> str:
        return f"<DrugTestModel(id={self.id}, kit='{self.test_kit_id}', result={self.result})>"


class AuditLogModel(Base):
    """SQLAlchemy model for the audit trail."""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(50), nullable=False)
    action = Column(String(20), nullable=False)
    changes = Column(JSON, nullable=False)
    actor = Column(Integer, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"<AuditLogModel(id={self.id}, entity='{self.entity_type}:{self.entity_id}', action='{self.action}')>"
