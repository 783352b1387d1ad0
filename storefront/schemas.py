"""
Request schemas.

Every JSON (or multipart form) body is validated into one of these models
before it reaches a service function. A failed validation raises
``pydantic.ValidationError`` which the app turns into a 400 envelope.
"""
from __future__ import annotations

import json
import re
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from flask import request
from pydantic import (
    BaseModel,
    BeforeValidator,
    EmailStr,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)

from .model.order import OrderStatus


def _as_key(v):
    # cart keys are strings; accept JSON numbers too
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v

def _as_decimal(v):
    if isinstance(v, float):
        return Decimal(str(v))
    return v

def _as_list(v):
    if isinstance(v, str):
        try:
            v = json.loads(v)
        except ValueError:
            raise ValueError("Invalid sizes format")
    return v


NonEmpty = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
ProductKey = Annotated[NonEmpty, BeforeValidator(_as_key)]
# money travels with at most cent precision
Amount = Annotated[Decimal, BeforeValidator(_as_decimal), Field(ge=0, decimal_places=2)]


def password_problem(password: str) -> Optional[str]:
    """Return why a password is too weak, or None when it is acceptable."""
    if len(password) < 8:
        return "Password must be at least 8 characters long."
    checks = [r"[a-z]", r"[A-Z]", r"\d", r"[^A-Za-z0-9]"]
    if not all(re.search(c, password) for c in checks):
        return "Password is too weak. It must include uppercase, lowercase, numbers, and special characters."
    return None


def load(model, data=None):
    if data is None:
        data = request.get_json(silent=True) or {}
    return model.model_validate(data)


# ---------------- cart ----------------

class CartAddRequest(BaseModel):
    product_id: ProductKey
    size: NonEmpty
    quantity: int = Field(default=1, ge=1)


class CartUpdateRequest(BaseModel):
    product_id: ProductKey
    size: NonEmpty
    quantity: int = Field(ge=0)


class CartRemoveRequest(BaseModel):
    product_id: ProductKey
    size: NonEmpty


class CartMergeRequest(BaseModel):
    # entries are validated one by one during reconciliation
    cart_data: Optional[Dict[str, Any]] = None


# ---------------- orders ----------------

class Address(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    street: NonEmpty
    city: NonEmpty
    state: NonEmpty
    zip: NonEmpty
    country: NonEmpty
    phone_number: Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^\+?[1-9]\d{1,14}$")]


class OrderLineRequest(BaseModel):
    product_id: int
    name: Optional[str] = None
    price: Amount
    quantity: int = Field(ge=1)
    size: Optional[NonEmpty] = None


class PlaceOrderRequest(BaseModel):
    items: List[OrderLineRequest] = Field(min_length=1)
    amount: Amount
    address: Address


class VerifyStripeRequest(BaseModel):
    order_id: int
    session_id: NonEmpty


class StatusUpdateRequest(BaseModel):
    order_id: int
    status: OrderStatus


# ---------------- catalog ----------------

class ProductForm(BaseModel):
    name: NonEmpty
    description: NonEmpty
    price: Annotated[Decimal, BeforeValidator(_as_decimal), Field(gt=0, decimal_places=2)]
    category: NonEmpty
    sub_category: NonEmpty
    sizes: Annotated[List[NonEmpty], BeforeValidator(_as_list), Field(min_length=1)]
    bestseller: bool = False
    stock: int = Field(ge=0)


class ReviewRequest(BaseModel):
    product_id: int
    rating: Annotated[int, Field(strict=True, ge=1, le=5)]
    comment: NonEmpty


class RemoveProductRequest(BaseModel):
    id: int


# ---------------- accounts ----------------

class _Email(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower()


class RegisterRequest(_Email):
    name: NonEmpty
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def _check_password(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        problem = password_problem(self.password)
        if problem:
            raise ValueError(problem)
        return self


class LoginRequest(_Email):
    password: NonEmpty


class ForgotPasswordRequest(_Email):
    pass


class ResetPasswordRequest(BaseModel):
    token: NonEmpty
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def _check_password(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        problem = password_problem(self.password)
        if problem:
            raise ValueError(problem)
        return self


class UpdatePasswordRequest(BaseModel):
    old_password: NonEmpty
    new_password: str
    confirm_new_password: str

    @model_validator(mode="after")
    def _check_password(self):
        if self.new_password != self.confirm_new_password:
            raise ValueError("New passwords do not match")
        problem = password_problem(self.new_password)
        if problem:
            raise ValueError(problem)
        return self


class RefreshRequest(BaseModel):
    refresh_token: NonEmpty


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class DeleteUserRequest(BaseModel):
    user_id: int
