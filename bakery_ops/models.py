from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY.
IdType = BigInteger().with_variant(Integer(), 'sqlite')

# Largest values the BIGINT id columns and INTEGER quantity columns hold.
MAX_ID = 2**63 - 1
MAX_QUANTITY = 2**31 - 1


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    ADMIN = 'ADMIN'
    WAREHOUSE = 'WAREHOUSE'
    SELLER = 'SELLER'


class LocationType(str, Enum):
    PRODUCTION = 'PRODUCTION'
    WAREHOUSE = 'WAREHOUSE'
    BRANCH = 'BRANCH'


class CampaignStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    CLOSED = 'CLOSED'


class EditRequestStatus(str, Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class NotificationType(str, Enum):
    WAREHOUSE_RECEIPT_CONFIRMED = 'WAREHOUSE_RECEIPT_CONFIRMED'
    WAREHOUSE_EDIT_REQUEST_CREATED = 'WAREHOUSE_EDIT_REQUEST_CREATED'
    WAREHOUSE_EDIT_REQUEST_REVIEWED = 'WAREHOUSE_EDIT_REQUEST_REVIEWED'


class Company(Base):
    __tablename__ = 'companies'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    first_name: Mapped[str | None] = mapped_column(Text)
    last_name: Mapped[str | None] = mapped_column(Text)
    role: Mapped[UserRole] = mapped_column(SQLEnum(UserRole, name='user_role'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Location(Base):
    __tablename__ = 'locations'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[LocationType] = mapped_column(SQLEnum(LocationType, name='location_type'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Campaign(Base):
    __tablename__ = 'campaigns'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[CampaignStatus] = mapped_column(
        SQLEnum(CampaignStatus, name='campaign_status'), nullable=False, default=CampaignStatus.ACTIVE, server_default='ACTIVE'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductVariant(Base):
    __tablename__ = 'product_variants'
    __table_args__ = (
        Index(
            'product_variants_one_default_per_product',
            'product_id',
            unique=True,
            postgresql_where=text('is_default = true'),
            sqlite_where=text('is_default = 1'),
        ),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductionBatch(Base):
    __tablename__ = 'production_batches'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    campaign_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('campaigns.id'))
    location_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('locations.id'), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    batch_number: Mapped[str] = mapped_column(Text, nullable=False)
    # Local wall-clock time of production.
    production_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductionBatchItem(Base):
    __tablename__ = 'production_batch_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    production_batch_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('production_batches.id', ondelete='CASCADE'), nullable=False
    )
    product_variant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('product_variants.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)


class WarehouseReceipt(Base):
    __tablename__ = 'warehouse_receipts'
    __table_args__ = (
        Index(
            'warehouse_receipts_one_draft_per_day',
            'company_id',
            'location_id',
            'receipt_date',
            unique=True,
            postgresql_where=text('confirmed = false'),
            sqlite_where=text('confirmed = 0'),
        ),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id'), nullable=False)
    campaign_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('campaigns.id'))
    location_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('locations.id'), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    receipt_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    confirmed_by_name: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WarehouseReceiptItem(Base):
    __tablename__ = 'warehouse_receipt_items'
    __table_args__ = (
        CheckConstraint('quantity_received >= 0', name='warehouse_receipt_items_quantity_non_negative'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    warehouse_receipt_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('warehouse_receipts.id', ondelete='CASCADE'), nullable=False
    )
    product_variant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('product_variants.id'), nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False)


class WarehouseEditRequest(Base):
    __tablename__ = 'warehouse_edit_requests'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    warehouse_receipt_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('warehouse_receipts.id', ondelete='CASCADE'), nullable=False
    )
    requester_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    proposed_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[EditRequestStatus] = mapped_column(
        SQLEnum(EditRequestStatus, name='edit_request_status'),
        nullable=False,
        default=EditRequestStatus.PENDING,
        server_default='PENDING',
    )
    approver_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WarehouseReceiptEdit(Base):
    __tablename__ = 'warehouse_receipt_edits'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    warehouse_receipt_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('warehouse_receipts.id', ondelete='CASCADE'), nullable=False
    )
    edited_by_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    previous_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    new_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Notification(Base):
    __tablename__ = 'notifications'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type: Mapped[NotificationType] = mapped_column(SQLEnum(NotificationType, name='notification_type'), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('token', name='web_sessions_token_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
