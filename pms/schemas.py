from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from pms.models import ApprovalStatus, TransactionReason, UserRole, WasteReason


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class SignupRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    name: str = Field(min_length=1, max_length=200)
    password: str = Field(min_length=8, max_length=256)
    role: UserRole = UserRole.STAFF


class UserCreateRequest(SignupRequest):
    pass


class ApprovalRequest(BaseModel):
    approval_status: ApprovalStatus


class RoleChangeRequest(BaseModel):
    role: UserRole


class ActiveChangeRequest(BaseModel):
    active: bool


class StockCreateRequest(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    category: str | None = None
    base_price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    quantity: int = Field(gt=0)
    delivery_date: date
    expiry_date: date
    supplier_batch_number: str | None = None

    @model_validator(mode='after')
    def _expiry_after_delivery(self) -> StockCreateRequest:
        if self.expiry_date <= self.delivery_date:
            raise ValueError('expiry_date must be after delivery_date')
        return self


class QuantityUpdateRequest(BaseModel):
    quantity_change: int
    reason: TransactionReason
    notes: str | None = None

    @model_validator(mode='after')
    def _non_zero(self) -> QuantityUpdateRequest:
        if self.quantity_change == 0:
            raise ValueError('quantity_change cannot be zero')
        return self


class WasteRequest(BaseModel):
    quantity: int = Field(gt=0)
    reason: WasteReason
    notes: str | None = None


class ItemCreateRequest(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    base_price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    category: str | None = None
    unit: str | None = None
    description: str | None = None


class ItemUpdateRequest(BaseModel):
    sku: str | None = Field(default=None, min_length=1, max_length=64)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    base_price: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    category: str | None = None
    unit: str | None = None
    description: str | None = None


class ApproveSuggestionRequest(BaseModel):
    approved_discount_percentage: int = Field(ge=0, le=100)


class RejectSuggestionRequest(BaseModel):
    rejection_reason: str = Field(min_length=1, max_length=1000)
