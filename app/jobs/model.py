# app/jobs/model.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from app.jobs.errors import ValidationError

_NON_LETTERS = re.compile(r"[^a-z]")


def _squash(value: str) -> str:
    return _NON_LETTERS.sub("", value.strip().lower())


class _ParseableEnum(str, Enum):
    """
    str-valued enum that accepts loosely formatted input.

    "On Site", "on-site" and "ON_SITE" all parse to the same member; anything
    that does not match a member raises ValidationError at construction time.
    """

    @classmethod
    def parse(cls, value: Any, *, field_name: str | None = None):
        if isinstance(value, cls):
            return value
        if value is None or not str(value).strip():
            raise ValidationError(field_name or cls.__name__, "is required")
        key = _squash(str(value))
        for member in cls:
            if _squash(member.value) == key:
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ValidationError(field_name or cls.__name__, f"'{value}' is not one of: {allowed}")

    def __str__(self) -> str:
        return self.value


class JobStatus(_ParseableEnum):
    SUBMITTED = "submitted"
    READY_TO_ASSIGN = "ready_to_assign"
    OPEN = "open"
    ASSIGNED = "assigned"
    EN_ROUTE = "en_route"
    ON_SITE = "on_site"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCEL_REQUESTED = "cancel_requested"
    CANCELLED = "cancelled"


class PaymentStatus(_ParseableEnum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class PayoutStatus(_ParseableEnum):
    NOT_READY = "not_ready"
    READY = "ready"
    PROCESSING = "processing"
    PAID = "paid"


class ContractorTier(_ParseableEnum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"

    @classmethod
    def coerce(cls, value: Any) -> "ContractorTier":
        """Unknown or missing tiers fall back to bronze."""
        try:
            return cls.parse(value)
        except ValidationError:
            return cls.BRONZE


class CauseCode(_ParseableEnum):
    CUSTOMER_UNAVAILABLE = "customer_unavailable"
    SCOPE_MISMATCH = "scope_mismatch"
    SAFETY_CONCERN = "safety_concern"


class ActorRole(_ParseableEnum):
    CUSTOMER = "customer"
    CONTRACTOR = "contractor"
    ADMIN = "admin"
    SYSTEM = "system"


class PaymentSchedule(_ParseableEnum):
    PER_JOB = "per_job"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class EstimateMode(_ParseableEnum):
    FIXED_RANGE = "fixed_range"
    QUOTE_ONLY = "quote_only"
    UNKNOWN = "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Actor:
    role: ActorRole
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "id": self.id}

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=ActorRole.SYSTEM, id=None)

    @classmethod
    def admin(cls, admin_id: str | None) -> "Actor":
        return cls(role=ActorRole.ADMIN, id=admin_id)

    @classmethod
    def contractor(cls, contractor_id: str) -> "Actor":
        return cls(role=ActorRole.CONTRACTOR, id=contractor_id)


@dataclass(frozen=True)
class Estimate:
    """Priced estimate handed over by job intake. Opaque to the lifecycle."""

    mode: EstimateMode
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None
    multiplier: Optional[Decimal] = None
    reason: Optional[str] = None

    @property
    def final_price(self) -> Optional[Decimal]:
        if self.mode != EstimateMode.FIXED_RANGE:
            return None
        return self.max if self.max is not None else self.min

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "min": self.min,
            "max": self.max,
            "multiplier": self.multiplier,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Optional["Estimate"]:
        if not data:
            return None

        def _dec(v):
            return Decimal(str(v)) if v is not None else None

        return cls(
            mode=EstimateMode.parse(data.get("mode") or "unknown", field_name="estimate.mode"),
            min=_dec(data.get("min")),
            max=_dec(data.get("max")),
            multiplier=_dec(data.get("multiplier")),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class Contractor:
    id: str
    name: Optional[str] = None
    tier: ContractorTier = ContractorTier.BRONZE
    payment_schedule: PaymentSchedule = PaymentSchedule.WEEKLY


@dataclass(frozen=True)
class Job:
    id: UUID
    customer_id: str
    service_type_id: Optional[str]
    status: JobStatus = JobStatus.SUBMITTED
    contractor_id: Optional[str] = None
    description: Optional[str] = None
    city: Optional[str] = None
    category: Optional[str] = None
    estimate: Optional[Estimate] = None

    # money, populated at completion
    final_price: Optional[Decimal] = None
    material_fees: Optional[Decimal] = None
    contractor_tier: Optional[ContractorTier] = None
    net_amount: Optional[Decimal] = None
    processing_fee: Optional[Decimal] = None
    platform_fee: Optional[Decimal] = None
    contractor_payout: Optional[Decimal] = None
    net_platform_revenue: Optional[Decimal] = None

    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payout_status: PayoutStatus = PayoutStatus.NOT_READY

    start_report: Optional[dict[str, Any]] = None
    completion_report: Optional[dict[str, Any]] = None
    cancellation: Optional[dict[str, Any]] = None
    relist_count: int = 0

    version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        # rows coming back from storage carry plain strings
        object.__setattr__(self, "status", JobStatus.parse(self.status, field_name="status"))
        object.__setattr__(
            self, "payment_status", PaymentStatus.parse(self.payment_status, field_name="payment_status")
        )
        object.__setattr__(
            self, "payout_status", PayoutStatus.parse(self.payout_status, field_name="payout_status")
        )
        if self.contractor_tier is not None:
            object.__setattr__(self, "contractor_tier", ContractorTier.coerce(self.contractor_tier))

    @property
    def has_financials(self) -> bool:
        return self.final_price is not None and self.contractor_payout is not None

    def snapshot(self) -> dict[str, Any]:
        """Flat view used for audit before/after payloads."""
        return {
            "status": self.status.value,
            "contractor_id": self.contractor_id,
            "payment_status": self.payment_status.value,
            "payout_status": self.payout_status.value,
            "final_price": self.final_price,
            "material_fees": self.material_fees,
            "contractor_tier": self.contractor_tier.value if self.contractor_tier else None,
            "platform_fee": self.platform_fee,
            "processing_fee": self.processing_fee,
            "contractor_payout": self.contractor_payout,
            "relist_count": self.relist_count,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "customer_id": self.customer_id,
            "service_type_id": self.service_type_id,
            "description": self.description,
            "city": self.city,
            "category": self.category,
            "estimate": self.estimate.to_dict() if self.estimate else None,
            "start_report": self.start_report,
            "completion_report": self.completion_report,
            "cancellation": self.cancellation,
            "net_amount": self.net_amount,
            "net_platform_revenue": self.net_platform_revenue,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            **self.snapshot(),
        }


def new_job(
    *,
    customer_id: str,
    service_type_id: str | None,
    estimate: Estimate | None = None,
    description: str | None = None,
    city: str | None = None,
    category: str | None = None,
) -> Job:
    now = utcnow()
    return Job(
        id=uuid4(),
        customer_id=customer_id,
        service_type_id=service_type_id,
        estimate=estimate,
        description=description,
        city=city,
        category=category,
        created_at=now,
        updated_at=now,
    )


@dataclass(frozen=True)
class HistoryEntry:
    job_id: UUID
    action: str
    actor_role: ActorRole
    actor_id: Optional[str]
    details: str
    at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "actor_role", ActorRole.parse(self.actor_role, field_name="actor_role"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "at": self.at.isoformat(),
            "actor_role": self.actor_role.value,
            "actor_id": self.actor_id,
            "action": self.action,
            "details": self.details,
        }


@dataclass(frozen=True)
class ContractorPayment:
    id: UUID
    contractor_id: str
    amount: Decimal
    job_ids: tuple[str, ...]
    payment_schedule: PaymentSchedule
    payment_method: str
    status: str
    initiated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment_id": str(self.id),
            "contractor_id": self.contractor_id,
            "amount": self.amount,
            "job_ids": list(self.job_ids),
            "payment_schedule": self.payment_schedule.value,
            "payment_method": self.payment_method,
            "status": self.status,
            "initiated_at": self.initiated_at.isoformat(),
        }
