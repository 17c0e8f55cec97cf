"""
ORM tables for batches, payee records and the cached reference suppliers.
"""

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text

from clarity.models import utcnow

from .database import Base


class UploadBatch(Base):
    __tablename__ = "upload_batches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=True)
    total_records = Column(Integer, nullable=False, default=0)

    status = Column(String(30), nullable=False, default="pending", index=True)
    current_stage = Column(String(50), nullable=True)
    current_step = Column(String(255), nullable=True)
    progress_message = Column(Text, nullable=True)

    classification_status = Column(String(20), nullable=False, default="pending")
    classification_progress = Column(Integer, nullable=False, default=0)
    classification_completed_at = Column(DateTime, nullable=True)

    supplier_match_status = Column(String(20), nullable=False, default="pending")
    supplier_match_progress = Column(Integer, nullable=False, default=0)
    supplier_match_completed_at = Column(DateTime, nullable=True)

    external_lookup_status = Column(String(20), nullable=False, default="pending")
    external_lookup_progress = Column(Integer, nullable=False, default=0)
    external_lookup_completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_activity_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<UploadBatch(id={self.id}, status={self.status!r})>"


class PayeeClassification(Base):
    __tablename__ = "payee_classifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(Integer, ForeignKey("upload_batches.id"), nullable=False, index=True)
    original_name = Column(String(255), nullable=False)
    cleaned_name = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)

    payee_type = Column(String(20), nullable=True)
    classification_confidence = Column(Float, nullable=True)
    classification_reasoning = Column(Text, nullable=True)
    classification_status = Column(String(20), nullable=False, default="pending")

    supplier_id = Column(String(64), nullable=True)
    supplier_name = Column(String(255), nullable=True)
    supplier_confidence = Column(Float, nullable=True)
    supplier_match_reasoning = Column(Text, nullable=True)
    supplier_matched_at = Column(DateTime, nullable=True)

    lookup_status = Column(String(20), nullable=True)
    lookup_reference = Column(String(128), nullable=True)
    lookup_details = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<PayeeClassification(id={self.id}, batch_id={self.batch_id}, name={self.original_name!r})>"


class CachedSupplier(Base):
    __tablename__ = "cached_suppliers"

    payee_id = Column(String(64), primary_key=True)
    payee_name = Column(String(255), nullable=False, index=True)
    payment_method_default = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<CachedSupplier(payee_id={self.payee_id!r}, payee_name={self.payee_name!r})>"
