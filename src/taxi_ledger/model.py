"""Domain models for the taxi sales ledger.

These dataclasses represent the core entities shared throughout the package:
sales records, the open shift, per-day metadata, driver configuration and the
explicit driver session that ties them together.
"""

from __future__ import annotations  # Postponed evaluation of annotations (PEP 563)

import uuid  # Opaque record/shift identifiers
from dataclasses import dataclass, field  # Dataclass utilities
from typing import Literal  # Constrained string types for clarity

PaymentMethod = Literal[
    "CASH", "CARD", "NET", "E_MONEY", "TRANSPORT", "DIDI", "QR", "TICKET"
]
RideType = Literal["FLOW", "WAIT", "APP", "HIRE", "RESERVE", "WIRELESS"]
VisibilityMode = Literal["PUBLIC", "PRIVATE", "CUSTOM"]
ShiftStatus = Literal["riding", "active", "break", "completed", "offline"]
Partition = Literal["shift", "history"]  # Where a record currently lives
ImportAction = Literal["update", "insert"]  # Outcome for one imported row

PAYMENT_METHODS: tuple[PaymentMethod, ...] = (
    "CASH", "CARD", "NET", "E_MONEY", "TRANSPORT", "DIDI", "QR", "TICKET",
)
DEFAULT_PAYMENT_ORDER: tuple[PaymentMethod, ...] = (
    "CASH", "CARD", "TICKET", "QR", "DIDI", "NET", "E_MONEY", "TRANSPORT",
)
ALL_RIDE_TYPES: tuple[RideType, ...] = (
    "FLOW", "WAIT", "APP", "HIRE", "RESERVE", "WIRELESS",
)
STREET_RIDE_TYPES: frozenset[str] = frozenset({"FLOW", "WAIT"})  # Not dispatched
PAYMENT_LABELS: dict[str, str] = {
    "CASH": "現金",
    "CARD": "クレジット",
    "NET": "ネット決済",
    "E_MONEY": "電子マネー",
    "TRANSPORT": "交通系",
    "DIDI": "Didi支払い",
    "QR": "アプリ/QR",
    "TICKET": "タクチケ",
}  # Default display names, overridable per driver


def new_record_id() -> str:
    """Return a fresh opaque identifier for a record or shift."""
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class RemarkTags:
    """Structured sub-tags that used to be encoded inside the remarks text."""

    stopovers: tuple[str, ...] = ()  # Intermediate stops, in travel order
    payment_vendor: str | None = None  # App that settled the fare (GO, Didi, ...)
    dispatch_vendor: str | None = None  # App that dispatched the ride


@dataclass(frozen=True, slots=True)
class SalesRecord:
    """One completed ride. Edits replace the whole record under the same id."""

    id: str
    timestamp: int  # Epoch milliseconds of the ride
    amount: int  # Fare
    toll: int = 0  # Highway surcharge
    payment_method: PaymentMethod = "CASH"
    non_cash_amount: int = 0  # Portion of amount+toll not paid in cash
    ride_type: RideType = "FLOW"
    pickup_location: str = ""
    dropoff_location: str = ""
    pickup_coords: str = ""  # "lat,lon"
    dropoff_coords: str = ""
    passengers_male: int = 0
    passengers_female: int = 0
    remarks: str = ""  # Unstructured notes only
    tags: RemarkTags = field(default_factory=RemarkTags)
    is_bad_customer: bool = False

    def __post_init__(self) -> None:
        if self.payment_method not in PAYMENT_METHODS:
            raise ValueError(f"Unknown payment method: {self.payment_method}")
        if self.ride_type not in ALL_RIDE_TYPES:
            raise ValueError(f"Unknown ride type: {self.ride_type}")
        if self.amount < 0 or self.toll < 0:
            raise ValueError("amount and toll must be non-negative")
        if self.passengers_male < 0 or self.passengers_female < 0:
            raise ValueError("passenger counts must be non-negative")
        if self.payment_method == "CASH" and self.non_cash_amount != 0:
            raise ValueError("non_cash_amount must be 0 for cash rides")
        if not 0 <= self.non_cash_amount <= self.total:
            raise ValueError(
                f"non_cash_amount {self.non_cash_amount} outside 0..{self.total}"
            )

    @property
    def total(self) -> int:
        return self.amount + self.toll

    def __str__(self) -> str:
        return (
            f"ride(id={self.id}, timestamp={self.timestamp}, "
            f"amount={self.amount}, method={self.payment_method})"
        )


@dataclass(frozen=True, slots=True)
class Shift:
    """The currently open working session."""

    id: str
    start_time: int  # Epoch milliseconds
    daily_goal: int
    planned_hours: float
    total_rest_minutes: int = 0
    records: tuple[SalesRecord, ...] = ()  # Sorted by timestamp

    @property
    def planned_end_time(self) -> int:
        return self.start_time + int(self.planned_hours * 3_600_000)


@dataclass(frozen=True, slots=True)
class BreakState:
    """Side-channel break tracking for the open shift."""

    is_active: bool = False
    start_time: int | None = None


@dataclass(frozen=True, slots=True)
class DayMetadata:
    """Per business-date annotations."""

    memo: str = ""
    attributed_month: str = ""  # Billing month override, e.g. "2024-03"
    total_rest_minutes: int = 0


@dataclass(frozen=True, slots=True)
class MonthlyStats:
    """Driver-level configuration consumed by the business calendar."""

    shimebi_day: int = 20  # Closing day, 0 = end of month
    business_start_hour: int = 9  # Day rollover hour
    monthly_goal: int = 1_000_000
    default_daily_goal: int = 50_000
    enabled_payment_methods: tuple[PaymentMethod, ...] = DEFAULT_PAYMENT_ORDER
    enabled_ride_types: tuple[RideType, ...] = ALL_RIDE_TYPES
    custom_payment_labels: dict[str, str] = field(default_factory=dict)
    user_name: str = ""
    visibility_mode: VisibilityMode = "PUBLIC"
    allowed_viewers: tuple[str, ...] = ()
    following_users: tuple[str, ...] = ()
    duty_days: tuple[str, ...] = ()  # Business-date strings


@dataclass(frozen=True, slots=True)
class ShiftReport:
    """Terminal summary emitted when a shift is finalized."""

    shift_id: str
    business_date: str
    ride_count: int
    total_sales: int
    total_rest_minutes: int
    closed_at: int


@dataclass(frozen=True, slots=True)
class DriverSession:
    """Everything the core knows about one driver, passed explicitly."""

    uid: str
    stats: MonthlyStats = field(default_factory=MonthlyStats)
    shift: Shift | None = None
    history: tuple[SalesRecord, ...] = ()
    day_metadata: dict[str, DayMetadata] = field(default_factory=dict)
    break_state: BreakState = field(default_factory=BreakState)
    status: ShiftStatus = "offline"
    last_closed: ShiftReport | None = None

    @property
    def start_hour(self) -> int:
        return self.stats.business_start_hour


@dataclass(frozen=True, slots=True)
class ImportDecision:
    """Whether one candidate updated an existing record or was inserted."""

    candidate_index: int  # Position in the imported batch
    action: ImportAction
    record_id: str  # Existing id on update, fresh id on insert


@dataclass(slots=True)
class ImportResult:
    """Groups the merged record set with the per-candidate decisions."""

    records: list[SalesRecord] = field(default_factory=list)  # Sorted merge
    decisions: list[ImportDecision] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return sum(1 for d in self.decisions if d.action == "update")

    @property
    def added_count(self) -> int:
        return sum(1 for d in self.decisions if d.action == "insert")


@dataclass(frozen=True, slots=True)
class StatusSummary:
    """Compact, shareable projection of a driver's current state."""

    uid: str
    status: ShiftStatus
    shift_sales: int = 0
    shift_ride_count: int = 0
    dispatch_count: int = 0
    period_sales: int = 0
    period_rides: int = 0
    period_start: str = ""  # Business-date strings
    period_end: str = ""
    start_time: int | None = None
    planned_end_time: int | None = None


__all__ = [
    "ALL_RIDE_TYPES",
    "BreakState",
    "DEFAULT_PAYMENT_ORDER",
    "DayMetadata",
    "DriverSession",
    "ImportAction",
    "ImportDecision",
    "ImportResult",
    "MonthlyStats",
    "PAYMENT_LABELS",
    "PAYMENT_METHODS",
    "Partition",
    "PaymentMethod",
    "RemarkTags",
    "RideType",
    "STREET_RIDE_TYPES",
    "SalesRecord",
    "Shift",
    "ShiftReport",
    "ShiftStatus",
    "StatusSummary",
    "VisibilityMode",
    "new_record_id",
]
