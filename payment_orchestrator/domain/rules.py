"""
Fraud rule conditions and evaluators.

Each rule type carries its own typed condition set. Conditions form a tagged
union keyed by ``type`` and are validated when the rule is created, so the
evaluators below never interpret an untyped parameter bag.

Evaluators are pure: history-based rules look at ``CheckSnapshot`` rows the
engine loaded beforehand, newest first.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from payment_orchestrator.domain.exceptions import ValidationError
from payment_orchestrator.domain.models import CheckSnapshot, FraudTransaction, RuleOutcome, RuleType
from payment_orchestrator.utils.date_utils import as_utc, window_start

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class _Conditions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def rule_type(self) -> RuleType:
        return RuleType(self.type)


class VelocityConditions(_Conditions):
    type: Literal["VELOCITY"] = "VELOCITY"
    time_window_minutes: int = Field(60, gt=0, le=7 * 24 * 60)
    max_transactions: Optional[int] = Field(None, gt=0)
    max_amount: Optional[Decimal] = Field(None, gt=0)

    @model_validator(mode="after")
    def _require_limit(self) -> "VelocityConditions":
        if self.max_transactions is None and self.max_amount is None:
            raise ValueError("velocity rule needs max_transactions or max_amount")
        return self


class AmountConditions(_Conditions):
    type: Literal["AMOUNT"] = "AMOUNT"
    min_amount: Optional[Decimal] = Field(None, gt=0)
    flag_round_amounts: bool = False
    round_unit: Decimal = Field(Decimal("1000"), gt=0)
    round_floor: Decimal = Field(Decimal("5000"), ge=0)

    @model_validator(mode="after")
    def _require_check(self) -> "AmountConditions":
        if self.min_amount is None and not self.flag_round_amounts:
            raise ValueError("amount rule needs min_amount or flag_round_amounts")
        return self


class LocationConditions(_Conditions):
    type: Literal["LOCATION"] = "LOCATION"
    blocked_countries: List[str] = Field(default_factory=list)
    check_location_velocity: bool = False
    velocity_window_minutes: int = Field(60, gt=0)

    @field_validator("blocked_countries")
    @classmethod
    def _normalize_countries(cls, value: List[str]) -> List[str]:
        return [country.strip().upper() for country in value]

    @model_validator(mode="after")
    def _require_check(self) -> "LocationConditions":
        if not self.blocked_countries and not self.check_location_velocity:
            raise ValueError("location rule needs blocked_countries or check_location_velocity")
        return self


class PatternConditions(_Conditions):
    type: Literal["PATTERN"] = "PATTERN"
    flag_night_time: bool = False
    flag_identical_amounts: bool = False
    identical_amount_threshold: int = Field(3, gt=0)
    identical_window_hours: int = Field(24, gt=0)

    @model_validator(mode="after")
    def _require_check(self) -> "PatternConditions":
        if not self.flag_night_time and not self.flag_identical_amounts:
            raise ValueError("pattern rule needs flag_night_time or flag_identical_amounts")
        return self


class TimeWindowConditions(_Conditions):
    type: Literal["TIME_WINDOW"] = "TIME_WINDOW"
    blocked_hours: List[int] = Field(default_factory=list)
    blocked_days: List[int] = Field(default_factory=list)  # 0 = Monday ... 6 = Sunday

    @field_validator("blocked_hours")
    @classmethod
    def _check_hours(cls, value: List[int]) -> List[int]:
        if any(hour < 0 or hour > 23 for hour in value):
            raise ValueError("blocked_hours must be within 0-23")
        return value

    @field_validator("blocked_days")
    @classmethod
    def _check_days(cls, value: List[int]) -> List[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("blocked_days must be within 0-6 (Monday=0)")
        return value

    @model_validator(mode="after")
    def _require_check(self) -> "TimeWindowConditions":
        if not self.blocked_hours and not self.blocked_days:
            raise ValueError("time window rule needs blocked_hours or blocked_days")
        return self


class BlacklistConditions(_Conditions):
    type: Literal["BLACKLIST"] = "BLACKLIST"
    check_customers: bool = True
    check_merchants: bool = False
    blacklisted_merchants: List[str] = Field(default_factory=list)


RuleConditions = Annotated[
    Union[
        VelocityConditions,
        AmountConditions,
        LocationConditions,
        PatternConditions,
        TimeWindowConditions,
        BlacklistConditions,
    ],
    Field(discriminator="type"),
]

_conditions_adapter: TypeAdapter = TypeAdapter(RuleConditions)


def parse_conditions(data: Union[Dict[str, Any], _Conditions]) -> _Conditions:
    """
    Validate a raw condition set into its typed form.

    Raises:
        ValidationError: If the type tag is unknown or a field is invalid
    """
    if isinstance(data, _Conditions):
        return data
    try:
        return _conditions_adapter.validate_python(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid rule conditions: {problems}") from e


def dump_conditions(conditions: _Conditions) -> Dict[str, Any]:
    return conditions.model_dump(mode="json")


@dataclass
class RuleContext:
    """Everything a rule may look at for one evaluation"""

    transaction: FraudTransaction
    history: List[CheckSnapshot] = field(default_factory=list)  # newest first
    customer_blacklisted: bool = False
    blacklist_reason: Optional[str] = None


def required_lookback(conditions: List[_Conditions]) -> timedelta:
    """History depth needed to evaluate every given rule"""
    minutes = 60
    for cond in conditions:
        if isinstance(cond, VelocityConditions):
            minutes = max(minutes, cond.time_window_minutes)
        elif isinstance(cond, LocationConditions):
            minutes = max(minutes, cond.velocity_window_minutes)
        elif isinstance(cond, PatternConditions) and cond.flag_identical_amounts:
            minutes = max(minutes, cond.identical_window_hours * 60)
    return timedelta(minutes=minutes)


def _within(history: List[CheckSnapshot], ctx: RuleContext, minutes: int) -> List[CheckSnapshot]:
    start = window_start(ctx.transaction.timestamp, minutes)
    return [snap for snap in history if as_utc(snap.created_at) >= start]


def evaluate_velocity(cond: VelocityConditions, ctx: RuleContext) -> RuleOutcome:
    recent = _within(ctx.history, ctx, cond.time_window_minutes)
    count = len(recent)
    total = sum((snap.amount for snap in recent), Decimal("0"))

    reasons = []
    if cond.max_transactions is not None and count >= cond.max_transactions:
        reasons.append(f"Too many transactions: {count} in {cond.time_window_minutes} minutes")
    if cond.max_amount is not None and total >= cond.max_amount:
        reasons.append(f"Transaction amount velocity exceeded: {total} in {cond.time_window_minutes} minutes")

    return RuleOutcome(
        triggered=bool(reasons),
        reason=". ".join(reasons),
        details={
            "transaction_count": count,
            "total_amount": float(total),
            "time_window_minutes": cond.time_window_minutes,
        },
    )


def evaluate_amount(cond: AmountConditions, ctx: RuleContext) -> RuleOutcome:
    txn = ctx.transaction
    reasons = []
    if cond.min_amount is not None and txn.amount >= cond.min_amount:
        reasons.append(f"Large transaction amount: {txn.currency} {txn.amount}")
    if cond.flag_round_amounts and txn.amount >= cond.round_floor and txn.amount % cond.round_unit == 0:
        reasons.append(f"Round amount pattern detected: {txn.currency} {txn.amount}")

    return RuleOutcome(
        triggered=bool(reasons),
        reason=". ".join(reasons),
        details={
            "amount": float(txn.amount),
            "currency": txn.currency,
            "min_amount": float(cond.min_amount) if cond.min_amount is not None else None,
        },
    )


def evaluate_location(cond: LocationConditions, ctx: RuleContext) -> RuleOutcome:
    location = ctx.transaction.location
    if location is None:
        return RuleOutcome(triggered=False)

    country = location.country.upper()
    reasons = []
    if country in cond.blocked_countries:
        reasons.append(f"Transaction from blocked country: {country}")

    previous_country = None
    if cond.check_location_velocity:
        recent = _within(ctx.history, ctx, cond.velocity_window_minutes)
        if recent and recent[0].country:
            previous_country = recent[0].country.upper()
            if previous_country != country:
                reasons.append(f"Rapid location change: {previous_country} to {country}")

    return RuleOutcome(
        triggered=bool(reasons),
        reason=". ".join(reasons),
        details={"country": country, "previous_country": previous_country},
    )


def evaluate_pattern(cond: PatternConditions, ctx: RuleContext) -> RuleOutcome:
    txn = ctx.transaction
    reasons = []

    hour = txn.timestamp.hour
    if cond.flag_night_time and (hour >= 23 or hour <= 5):
        reasons.append("Transaction during unusual hours (night time)")

    identical = 0
    if cond.flag_identical_amounts:
        recent = _within(ctx.history, ctx, cond.identical_window_hours * 60)
        identical = sum(1 for snap in recent if snap.amount == txn.amount)
        if identical >= cond.identical_amount_threshold:
            reasons.append(f"Repeated identical amount: {txn.amount}")

    return RuleOutcome(
        triggered=bool(reasons),
        reason=". ".join(reasons),
        details={"hour": hour, "identical_amount_count": identical},
    )


def evaluate_time_window(cond: TimeWindowConditions, ctx: RuleContext) -> RuleOutcome:
    timestamp = ctx.transaction.timestamp
    hour = timestamp.hour
    day = timestamp.weekday()

    reasons = []
    if hour in cond.blocked_hours:
        reasons.append(f"Transaction during blocked hours: {hour}:00")
    if day in cond.blocked_days:
        reasons.append(f"Transaction on blocked day: {WEEKDAYS[day]}")

    return RuleOutcome(
        triggered=bool(reasons),
        reason=". ".join(reasons),
        details={"hour": hour, "day_of_week": day},
    )


def evaluate_blacklist(cond: BlacklistConditions, ctx: RuleContext) -> RuleOutcome:
    txn = ctx.transaction
    reasons = []
    if cond.check_customers and ctx.customer_blacklisted:
        reasons.append(f"Customer {txn.customer_id} is blacklisted: {ctx.blacklist_reason}")
    if cond.check_merchants and txn.merchant_id and txn.merchant_id in cond.blacklisted_merchants:
        reasons.append(f"Merchant {txn.merchant_id} is blacklisted")

    return RuleOutcome(
        triggered=bool(reasons),
        reason=". ".join(reasons),
        details={
            "checked_customer": cond.check_customers,
            "checked_merchant": cond.check_merchants,
        },
    )


_EVALUATORS: Dict[type, Callable[[Any, RuleContext], RuleOutcome]] = {
    VelocityConditions: evaluate_velocity,
    AmountConditions: evaluate_amount,
    LocationConditions: evaluate_location,
    PatternConditions: evaluate_pattern,
    TimeWindowConditions: evaluate_time_window,
    BlacklistConditions: evaluate_blacklist,
}


def evaluate_rule(conditions: _Conditions, ctx: RuleContext) -> RuleOutcome:
    """Dispatch to the evaluator for the condition set's rule type"""
    return _EVALUATORS[type(conditions)](conditions, ctx)
