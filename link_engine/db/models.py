"""SQLAlchemy database models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid4())


class LinkType(str, Enum):
    PRODUCT = "product"
    COLLECTION = "collection"
    PAGE = "page"
    SOCIAL = "social"
    OTHER = "other"


class LinkSource(str, Enum):
    SITEMAP = "sitemap"
    CRAWL = "crawl"
    AI_DISCOVERED = "ai_discovered"
    USER_ADDED = "user_added"


class ImportStatus(str, Enum):
    PENDING = "pending"
    PARSING = "parsing"
    FETCHING_TITLES = "fetching_titles"
    GENERATING_EMBEDDINGS = "generating_embeddings"
    COMPLETE = "complete"
    FAILED = "failed"


ACTIVE_IMPORT_STATUSES = (
    ImportStatus.PENDING.value,
    ImportStatus.PARSING.value,
    ImportStatus.FETCHING_TITLES.value,
    ImportStatus.GENERATING_EMBEDDINGS.value,
)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Brand(Base):
    """A brand whose site links are catalogued."""

    __tablename__ = "brands"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    domain: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    # Operator-authored overrides: default_destination_url, rules[{id, name, destination_url}], ...
    link_preferences: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    last_ingested_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    links: Mapped[list["LinkIndexEntry"]] = relationship(
        "LinkIndexEntry", back_populates="brand", cascade="all, delete-orphan"
    )
    import_jobs: Mapped[list["SitemapImportJob"]] = relationship(
        "SitemapImportJob", back_populates="brand", cascade="all, delete-orphan"
    )


class LinkIndexEntry(Base):
    """A single known destination on a brand's site."""

    __tablename__ = "brand_link_index"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)  # Canonicalized
    link_type: Mapped[str] = mapped_column(String(32), default=LinkType.OTHER.value, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Fixed-length float vector; entries without one are unreachable by vector search
    embedding: Mapped[Optional[list]] = mapped_column(JSON(none_as_null=True), nullable=True)

    # Health tracking
    is_healthy: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    verification_failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Usage tracking
    use_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    source: Mapped[str] = mapped_column(String(32), default=LinkSource.SITEMAP.value, nullable=False)
    user_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    brand: Mapped["Brand"] = relationship("Brand", back_populates="links")

    __table_args__ = (
        UniqueConstraint("brand_id", "url", name="uq_brand_link_url"),
        Index("idx_brand_link_index_healthy", "brand_id", "is_healthy"),
        Index("idx_brand_link_index_type", "brand_id", "link_type"),
    )


class SitemapImportJob(Base):
    """Re-ingestion job handed to the site-discovery collaborator."""

    __tablename__ = "sitemap_import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    brand_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False
    )
    sitemap_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), default=ImportStatus.PENDING.value, nullable=False
    )

    urls_found: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    urls_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    urls_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    product_urls_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    collection_urls_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    brand: Mapped["Brand"] = relationship("Brand", back_populates="import_jobs")

    __table_args__ = (
        Index("idx_sitemap_jobs_brand", "brand_id"),
        Index("idx_sitemap_jobs_status", "status"),
    )
