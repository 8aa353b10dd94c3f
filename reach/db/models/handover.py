"""
Handover Models - post-sale documents, signatures and key release
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, ForeignKey, Enum as SQLEnum, Text,
)
from sqlalchemy.orm import relationship

from reach.db.database import Base


class HandoverStatus(str, enum.Enum):
    PAYMENT_CONFIRMED = "payment_confirmed"
    PENDING_DEVELOPER_DOCS = "pending_developer_docs"
    DOCS_SUBMITTED = "docs_submitted"
    DOCS_VERIFIED = "docs_verified"
    REACH_SIGNED = "reach_signed"
    BUYER_SIGNED = "buyer_signed"
    KEYS_RELEASED = "keys_released"
    KEYS_DELIVERED = "keys_delivered"
    COMPLETED = "completed"


class Handover(Base):
    __tablename__ = "handovers"

    id = Column(Integer, primary_key=True, index=True)
    escrow_id = Column(Integer, ForeignKey("escrow_transactions.id"), unique=True, nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    developer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    status = Column(
        SQLEnum(HandoverStatus, name="handover_status", values_callable=lambda x: [e.value for e in x]),
        default=HandoverStatus.PAYMENT_CONFIRMED,
        nullable=False,
        index=True,
    )

    payment_confirmed_at = Column(DateTime, nullable=True)
    documents_submitted_at = Column(DateTime, nullable=True)
    documents_verified_at = Column(DateTime, nullable=True)
    reach_signed_at = Column(DateTime, nullable=True)
    buyer_signed_at = Column(DateTime, nullable=True)
    keys_released_at = Column(DateTime, nullable=True)
    keys_delivered_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    scheduled_for = Column(DateTime, nullable=True)

    reach_signature = Column(String(64), nullable=True)
    reach_signature_ts = Column(BigInteger, nullable=True)
    buyer_signature = Column(String(64), nullable=True)
    buyer_signature_ts = Column(BigInteger, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    documents = relationship("PropertyDocument", back_populates="handover", order_by="PropertyDocument.id")


class PropertyDocument(Base):
    """Title deed, survey plan, etc. uploaded by the developer"""

    __tablename__ = "property_documents"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    handover_id = Column(Integer, ForeignKey("handovers.id"), nullable=True, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    document_type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    file_url = Column(String(1000), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    handover = relationship("Handover", back_populates="documents")


class DocumentVault(Base):
    """Buyer's signed copies, written once the buyer signs"""

    __tablename__ = "document_vault"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    handover_id = Column(Integer, ForeignKey("handovers.id"), nullable=False)
    source_document_id = Column(Integer, ForeignKey("property_documents.id"), nullable=True)

    document_type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    file_url = Column(String(1000), nullable=False)
    signature = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
