"""
Cancellation fee computation and cancellation policy administration.

``compute_fee`` is pure: given a policy, the check-in instant, "now" and the
amount paid so far it returns the same quote every time, so it serves both
the advisory preview and the authoritative recomputation at cancel time.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..core.exceptions import NotFoundError, ValidationError
from ..models.booking import Booking
from ..models.catalog import Property
from ..models.policy import CancellationPolicy
from ..schemas.policy import CreatePolicyRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancellationTier:
    """Fee charged when cancelling less than ``hours_before`` hours before check-in."""

    hours_before: int
    fee_percent: Optional[int] = None
    flat_fee: Optional[int] = None

    def fee_for(self, amount_paid: int) -> int:
        if self.flat_fee is not None:
            fee = self.flat_fee
        else:
            fee = amount_paid * (self.fee_percent or 0) // 100
        return max(0, min(fee, amount_paid))

    def as_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class FeeQuote:
    """Result of a fee computation; ``fee + refund == amount_paid`` always holds."""

    fee: int
    refund: int
    amount_paid: int
    hours_until_check_in: float
    policy_id: Optional[str] = None
    no_show: bool = False
    tiers_applied: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "fee": self.fee,
            "refund": self.refund,
            "amount_paid": self.amount_paid,
            "hours_until_check_in": round(self.hours_until_check_in, 2),
            "policy_id": self.policy_id,
            "no_show": self.no_show,
            "tiers_applied": self.tiers_applied,
        }


def parse_tiers(raw_tiers: list[dict[str, Any]]) -> list[CancellationTier]:
    """
    Validate and normalise stored tier dictionaries, sorted by threshold.

    Raises:
        ValidationError: If a tier is malformed or thresholds repeat
    """
    tiers = []
    for index, raw in enumerate(raw_tiers or []):
        hours_before = raw.get("hours_before")
        fee_percent = raw.get("fee_percent")
        flat_fee = raw.get("flat_fee")
        if not isinstance(hours_before, int) or hours_before < 0:
            raise ValidationError(
                detail="Tier hours_before must be a non-negative integer",
                errors={f"tiers[{index}].hours_before": hours_before},
            )
        if (fee_percent is None) == (flat_fee is None):
            raise ValidationError(
                detail="Each tier needs exactly one of fee_percent or flat_fee",
                errors={f"tiers[{index}]": raw},
            )
        if fee_percent is not None and not 0 <= fee_percent <= 100:
            raise ValidationError(
                detail="Tier fee_percent must be between 0 and 100",
                errors={f"tiers[{index}].fee_percent": fee_percent},
            )
        if flat_fee is not None and flat_fee < 0:
            raise ValidationError(
                detail="Tier flat_fee must not be negative",
                errors={f"tiers[{index}].flat_fee": flat_fee},
            )
        tiers.append(CancellationTier(hours_before, fee_percent, flat_fee))

    thresholds = [tier.hours_before for tier in tiers]
    if len(set(thresholds)) != len(thresholds):
        raise ValidationError(detail="Tier thresholds must be unique", errors={"tiers": thresholds})

    return sorted(tiers, key=lambda tier: tier.hours_before)


def compute_fee(
    policy: Optional[CancellationPolicy],
    check_in_at: datetime,
    now: datetime,
    amount_paid: int,
    no_show: bool = False,
) -> FeeQuote:
    """
    Quote the fee and refund for cancelling at ``now``.

    The applicable tier is the one with the smallest threshold that the gap
    to check-in still falls within; a gap beyond every threshold is free.
    Once check-in has passed the most expensive tier applies. No policy means
    free cancellation, except for no-shows which forfeit everything unless
    the policy says otherwise.
    """
    hours_until = (check_in_at - now).total_seconds() / 3600
    paid = max(0, amount_paid)
    policy_id = str(policy.id) if policy is not None else None
    applied: list[CancellationTier] = []

    if no_show:
        fee = _no_show_fee(policy, paid)
    elif policy is None:
        fee = 0
    else:
        tiers = parse_tiers(policy.tiers)
        if hours_until <= 0 and tiers:
            applied = [max(tiers, key=lambda tier: (tier.fee_for(paid), -tier.hours_before))]
        else:
            within = [tier for tier in tiers if hours_until < tier.hours_before]
            applied = within[:1]
        fee = applied[0].fee_for(paid) if applied else 0

    fee = max(0, min(fee, paid))
    return FeeQuote(
        fee=fee,
        refund=paid - fee,
        amount_paid=paid,
        hours_until_check_in=hours_until,
        policy_id=policy_id,
        no_show=no_show,
        tiers_applied=[tier.as_dict() for tier in applied],
    )


def _no_show_fee(policy: Optional[CancellationPolicy], amount_paid: int) -> int:
    if policy is not None and policy.no_show_flat_fee is not None:
        return policy.no_show_flat_fee
    percent = 100
    if policy is not None and policy.no_show_fee_percent is not None:
        percent = policy.no_show_fee_percent
    return amount_paid * percent // 100


def describe_policy(policy: Optional[CancellationPolicy]) -> str:
    """Guest-facing summary of a policy's tiers."""
    if policy is None:
        return "Free cancellation at any time."

    tiers = parse_tiers(policy.tiers)
    if not tiers:
        return "Free cancellation at any time."

    parts = []
    for tier in reversed(tiers):
        charge = f"{tier.fee_percent}% of the amount paid" if tier.flat_fee is None else f"a flat fee of {tier.flat_fee}"
        parts.append(f"Cancelling less than {tier.hours_before} hours before check-in costs {charge}.")
    parts.insert(0, f"Free cancellation until {tiers[-1].hours_before} hours before check-in.")

    if policy.no_show_flat_fee is not None:
        parts.append(f"No-shows are charged a flat fee of {policy.no_show_flat_fee}.")
    else:
        percent = 100 if policy.no_show_fee_percent is None else policy.no_show_fee_percent
        parts.append(f"No-shows forfeit {percent}% of the amount paid.")

    return " ".join(parts)


class CancellationPolicyService:
    """Service for cancellation policy administration and resolution."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def create_policy(self, request: CreatePolicyRequest) -> CancellationPolicy:
        """
        Create a cancellation policy.

        Raises:
            NotFoundError: If the property does not exist
            ValidationError: If the tiers are malformed
        """
        property_id = request.property_id
        if property_id is not None and await self.db.get(Property, property_id) is None:
            raise NotFoundError(resource_type="property", resource_id=str(property_id))

        raw_tiers = [tier.model_dump(exclude_none=True) for tier in request.tiers]
        tiers = parse_tiers(raw_tiers)

        now = self.clock()
        policy = CancellationPolicy(
            property_id=property_id,
            name=request.name,
            tiers=[tier.as_dict() for tier in tiers],
            no_show_fee_percent=request.no_show_fee_percent,
            no_show_flat_fee=request.no_show_flat_fee,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        policy.description = request.description or describe_policy(policy)

        self.db.add(policy)
        await self.db.commit()
        await self.db.refresh(policy)

        logger.info(
            "Cancellation policy created",
            extra={
                "policy_id": str(policy.id),
                "property_id": str(property_id) if property_id else None,
                "tier_count": len(tiers),
            }
        )
        return policy

    async def get_policy_or_raise(self, policy_id: UUID) -> CancellationPolicy:
        policy = await self.db.get(CancellationPolicy, policy_id)
        if policy is None:
            raise NotFoundError(resource_type="cancellation_policy", resource_id=str(policy_id))
        return policy

    async def list_policies(self, property_id: Optional[UUID] = None, include_inactive: bool = False) -> list[CancellationPolicy]:
        stmt = select(CancellationPolicy)
        if property_id is not None:
            stmt = stmt.where(CancellationPolicy.property_id == property_id)
        if not include_inactive:
            stmt = stmt.where(CancellationPolicy.is_active.is_(True))
        stmt = stmt.order_by(CancellationPolicy.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def deactivate_policy(self, policy_id: UUID) -> CancellationPolicy:
        policy = await self.get_policy_or_raise(policy_id)
        policy.is_active = False
        policy.updated_at = self.clock()
        await self.db.commit()
        await self.db.refresh(policy)

        logger.info("Cancellation policy deactivated", extra={"policy_id": str(policy_id)})
        return policy


async def resolve_policy(session: AsyncSession, booking: Booking) -> Optional[CancellationPolicy]:
    """
    Policy governing a booking: its own, else the newest active policy of its
    property, else the newest active global policy, else None.
    """
    if booking.cancellation_policy_id is not None:
        policy = await session.get(CancellationPolicy, booking.cancellation_policy_id)
        if policy is not None:
            return policy

    for owner in (CancellationPolicy.property_id == booking.property_id, CancellationPolicy.property_id.is_(None)):
        stmt = (
            select(CancellationPolicy)
            .where(owner, CancellationPolicy.is_active.is_(True))
            .order_by(CancellationPolicy.created_at.desc())
            .limit(1)
        )
        policy = (await session.execute(stmt)).scalar_one_or_none()
        if policy is not None:
            return policy

    return None
