from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
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
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Id = BigInteger().with_variant(Integer(), 'sqlite')


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    ADMIN = 'ADMIN'
    MANAGER = 'MANAGER'
    STAFF = 'STAFF'


class ApprovalStatus(str, Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class BatchStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    EXPIRING_SOON = 'EXPIRING_SOON'
    EXPIRED = 'EXPIRED'
    DEPLETED = 'DEPLETED'


class AlertType(str, Enum):
    EXPIRED = 'EXPIRED'
    EXPIRING_TODAY = 'EXPIRING_TODAY'
    EXPIRING_1_DAY = 'EXPIRING_1_DAY'
    EXPIRING_2_DAYS = 'EXPIRING_2_DAYS'


class SuggestionStatus(str, Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    EXPIRED = 'EXPIRED'


class TransactionReason(str, Enum):
    SALE = 'SALE'
    RETURN = 'RETURN'
    ADJUSTMENT = 'ADJUSTMENT'
    TRANSFER = 'TRANSFER'
    WASTE = 'WASTE'


class WasteReason(str, Enum):
    EXPIRED = 'EXPIRED'
    DAMAGED = 'DAMAGED'
    SPOILED = 'SPOILED'
    QUALITY = 'QUALITY'
    OTHER = 'OTHER'


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(SQLEnum(UserRole, name='user_role'), nullable=False)
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus, name='approval_status'),
        nullable=False,
        default=ApprovalStatus.APPROVED,
        server_default='APPROVED',
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(Id, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Item(Base):
    __tablename__ = 'items'
    __table_args__ = (
        CheckConstraint('base_price > 0', name='items_base_price_positive_ck'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False, default='kg', server_default='kg')
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class StockBatch(Base):
    __tablename__ = 'stock_batches'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='stock_batches_quantity_non_negative_ck'),
        CheckConstraint('expiry_date > delivery_date', name='stock_batches_expiry_after_delivery_ck'),
        CheckConstraint(
            'current_discount_percentage >= 0 AND current_discount_percentage <= 100',
            name='stock_batches_discount_range_ck',
        ),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    item_id: Mapped[int] = mapped_column(Id, ForeignKey('items.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        SQLEnum(BatchStatus, name='batch_status'),
        nullable=False,
        default=BatchStatus.ACTIVE,
        server_default='ACTIVE',
    )
    current_discount_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    supplier_batch_number: Mapped[str | None] = mapped_column(Text)
    created_by_user_id: Mapped[int | None] = mapped_column(Id, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class StockTransaction(Base):
    __tablename__ = 'stock_transactions'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    batch_id: Mapped[int] = mapped_column(Id, ForeignKey('stock_batches.id', ondelete='CASCADE'), nullable=False)
    reason: Mapped[TransactionReason] = mapped_column(SQLEnum(TransactionReason, name='transaction_reason'), nullable=False)
    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by_user_id: Mapped[int | None] = mapped_column(Id, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WasteLog(Base):
    __tablename__ = 'waste_logs'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='waste_logs_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    batch_id: Mapped[int | None] = mapped_column(Id, ForeignKey('stock_batches.id', ondelete='SET NULL'))
    item_id: Mapped[int] = mapped_column(Id, ForeignKey('items.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[WasteReason] = mapped_column(SQLEnum(WasteReason, name='waste_reason'), nullable=False)
    estimated_loss: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by_user_id: Mapped[int | None] = mapped_column(Id, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DiscountSuggestion(Base):
    __tablename__ = 'discount_suggestions'
    __table_args__ = (
        CheckConstraint(
            'suggested_discount_percentage > 0 AND suggested_discount_percentage <= 100',
            name='discount_suggestions_suggested_range_ck',
        ),
        Index(
            'discount_suggestions_one_pending_per_batch_uq',
            'batch_id',
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    batch_id: Mapped[int] = mapped_column(Id, ForeignKey('stock_batches.id', ondelete='CASCADE'), nullable=False)
    suggested_discount_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_revenue: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[SuggestionStatus] = mapped_column(
        SQLEnum(SuggestionStatus, name='suggestion_status'),
        nullable=False,
        default=SuggestionStatus.PENDING,
        server_default='PENDING',
    )
    approved_discount_percentage: Mapped[int | None] = mapped_column(Integer)
    approved_by_user_id: Mapped[int | None] = mapped_column(Id, ForeignKey('users.id'))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Alert(Base):
    __tablename__ = 'alerts'
    __table_args__ = (
        UniqueConstraint('batch_id', 'alert_type', 'alert_date', name='alerts_batch_type_day_key'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    batch_id: Mapped[int] = mapped_column(Id, ForeignKey('stock_batches.id', ondelete='CASCADE'), nullable=False)
    alert_type: Mapped[AlertType] = mapped_column(SQLEnum(AlertType, name='alert_type'), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    alert_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(Id, ForeignKey('users.id', ondelete='SET NULL'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[str | None] = mapped_column(Text)
    old_values: Mapped[dict | None] = mapped_column(JSON)
    new_values: Mapped[dict | None] = mapped_column(JSON)
    ip: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
