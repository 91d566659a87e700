# models.py
"""
Database models for the mockup pipeline.

`ProductVariant` mirrors the storefront's variant table (only the columns the
pipeline reads or writes). `GenerationJob` is the record a polling client
reads to follow a pipeline run.
"""

import uuid

from sqlalchemy import Column, String, Integer, DateTime, JSON, func

from db import Base

JOB_TYPE_MOCKUP_GENERATION = "mockup_generation"


class JobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# -----------------------
# Models
# -----------------------
class ProductVariant(Base):
    __tablename__ = "product_variants"
    id = Column(Integer, primary_key=True, autoincrement=False)  # Printful variant ID
    product_id = Column(Integer, nullable=True, index=True)  # Printful catalog product ID
    name = Column(String(255), nullable=True)
    mockup_template_url = Column(String(1024), nullable=True)
    mockup_print_area = Column(JSON, nullable=True)  # {"x", "y", "width", "height"} in [0, 1]
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class GenerationJob(Base):
    __tablename__ = "generation_jobs"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_type = Column(String(64), nullable=False, default=JOB_TYPE_MOCKUP_GENERATION, index=True)
    status = Column(String(16), nullable=False, default=JobStatus.PENDING)
    total_items = Column(Integer, nullable=False, default=0)
    processed_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    error_log = Column(JSON, nullable=False, default=list)  # Most recent [{"item_id", "message"}]
    started_at = Column(DateTime(timezone=True), nullable=False)
    last_updated_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
