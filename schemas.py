# schemas.py
from __future__ import annotations

from decimal import Decimal
from typing import List, Literal, Optional, Union

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

Money = Union[Decimal, str]


# -------- JOB INTAKE --------
class EstimateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: Literal["fixed_range", "quote_only", "unknown"] = "unknown"
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None
    multiplier: Optional[Decimal] = None
    reason: Optional[str] = None


class SubmitJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    service_type_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=4000)
    city: Optional[str] = None
    category: Optional[str] = None
    estimate: Optional[EstimateIn] = None


# -------- CONTRACTOR ACTIONS --------
class StartJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notes: Optional[str] = None
    before_photos: List[str] = Field(default_factory=list)


class CompleteJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tasks: Optional[str] = None
    materials: Optional[str] = None
    material_costs: Optional[Money] = None
    notes: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    receipts: List[str] = Field(default_factory=list)
    final_price: Optional[Money] = None


class EndJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cause_code: str = Field(min_length=1)
    notes: Optional[str] = None
    end_photo: Optional[str] = None


class UpdateMaterialsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    material_costs: Money
    receipts: List[str] = Field(default_factory=list)


# -------- ADMIN JOB ACTIONS --------
class AdminNoteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notes: Optional[str] = Field(default=None, max_length=2000)


class ReassignRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    contractor_id: str = Field(min_length=1)
    notes: Optional[str] = Field(default=None, max_length=2000)


class RepriceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    final_price: Money
    notes: Optional[str] = Field(default=None, max_length=2000)


class RecordPaymentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payment_status: Literal["unpaid", "paid", "refunded"]


# -------- PAYOUTS --------
class BatchPayoutRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    job_ids: List[str] = Field(min_length=1)


class SinglePayoutRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    contractor_id: str = Field(min_length=1)
    job_ids: List[str] = Field(min_length=1)
    amount: Optional[Money] = None
    payment_method: str = "bank_transfer"


class PaymentScheduleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payment_schedule: Literal["per_job", "weekly", "biweekly", "monthly"]


class ForcePayoutStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payout_status: Literal["not_ready", "ready", "processing", "paid"]
    reason: str = Field(min_length=3, max_length=500)


def encode(value):
    """JSON-ready copy of value with Decimals kept exact as strings."""
    return jsonable_encoder(value, custom_encoder={Decimal: str})
