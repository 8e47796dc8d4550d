from dataclasses import dataclass, field
from decimal import Context, Decimal, ROUND_DOWN, getcontext, localcontext
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

Money = Decimal       # keep full-precision cents

MINUTES = 'minutes'
MESSAGES = 'messages'
MEGABYTES = 'megabytes'
SHARED = 'shared'
CATEGORIES = (MINUTES, MESSAGES, MEGABYTES)

UNKNOWN_OWNER = 'Unknown'


@dataclass(frozen=True)
class Device:
    device_id: str               # phone number or hotspot id, as it appears in the usage exports
    owner: str                   # descriptive only


@dataclass(frozen=True)
class SplitPrecision:
    intermediate: int = 6        # digits kept for percentages and per-device costs
    presentation: int = 2        # digits shown in reports

    def __post_init__(self):
        if self.presentation < 0:
            raise ValueError(f'presentation precision must be >= 0, got {self.presentation}')
        if self.intermediate < self.presentation:
            raise ValueError(
                f'intermediate precision ({self.intermediate}) must be >= '
                f'presentation precision ({self.presentation})'
            )

    @property
    def intermediate_quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.intermediate)

    @property
    def presentation_quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.presentation)

    def context_for(self, *amounts: Decimal) -> Context:
        """
        Decimal context for arithmetic on `amounts`.

        The current context is widened by the integer digits of the largest
        amount and the intermediate digits, so quantizing a huge bill to
        intermediate precision never runs out of digits.
        """
        ctx = getcontext().copy()
        digits = max((a.adjusted() + 1 for a in amounts if a), default=0)
        ctx.prec += max(digits, 0) + self.intermediate + 1
        return ctx


@dataclass(frozen=True)
class Bill:
    description: str
    devices: Tuple[Device, ...]
    short_straw_id: str = ''     # device that absorbs rounding residue
    total: Money = Money(0)      # bill total, informational
    devices_cost: Money = Money(0)
    fees: Money = Money(0)       # taxes & regulatory fees
    minutes: Money = Money(0)
    messages: Money = Money(0)
    megabytes: Money = Money(0)
    extra_minutes: Money = Money(0)
    extra_messages: Money = Money(0)
    extra_megabytes: Money = Money(0)

    def device_ids(self) -> list[str]:
        return [d.device_id for d in self.devices]

    def owner_by_id(self, device_id: str) -> str:
        for d in self.devices:
            if d.device_id == device_id:
                return d.owner
        return UNKNOWN_OWNER

    def billable_amount(self, category: str) -> Money:
        """Base plus overage charge for a usage category."""
        if category not in CATEGORIES:
            raise KeyError(f'Unknown usage category {category!r}')
        return getattr(self, category) + getattr(self, f'extra_{category}')

    @property
    def shared_pool(self) -> Money:
        return self.devices_cost + self.fees


@dataclass(frozen=True)
class CategorySplit:
    name: str                                 # "minutes" | "messages" | "megabytes"
    amount: Money                             # billable amount the costs reconcile to
    costs: Mapping[str, Money]                # device id → cost
    quantities: Mapping[str, int]             # device id → raw usage
    percentages: Mapping[str, Decimal]        # device id → fraction of category usage

    @property
    def total_quantity(self) -> int:
        return sum(self.quantities.values())


@dataclass(frozen=True)
class BillSplit:
    device_ids: Tuple[str, ...]
    short_straw_id: str
    minutes: CategorySplit
    messages: CategorySplit
    megabytes: CategorySplit
    shared_costs: Mapping[str, Money]
    shared_pool: Money
    precision: SplitPrecision = field(default_factory=SplitPrecision)

    def category(self, name: str) -> CategorySplit:
        if name not in CATEGORIES:
            raise KeyError(f'Unknown usage category {name!r}')
        return getattr(self, name)

    def device_total(self, device_id: str) -> Money:
        with self._context():
            return (self.minutes.costs[device_id] + self.messages.costs[device_id]
                    + self.megabytes.costs[device_id] + self.shared_costs[device_id])

    @property
    def total(self) -> Money:
        with self._context():
            return sum((self.device_total(i) for i in self.device_ids), Money(0))

    def rounded_costs(self, name: str) -> Dict[str, Money]:
        """
        Costs for a category (or "shared") at presentation precision.

        Each value is truncated, then the cent residue goes to the short-straw
        device so the rounded values still add up to the pool exactly.
        """
        if name == SHARED:
            costs, pool = self.shared_costs, self.shared_pool
        else:
            cat = self.category(name)
            costs, pool = cat.costs, cat.amount
        quantum = self.precision.presentation_quantum
        with localcontext(self.precision.context_for(pool, *costs.values())):
            out = {i: costs[i].quantize(quantum, ROUND_DOWN) for i in self.device_ids}
            residue = pool.quantize(quantum, ROUND_DOWN) - sum(out.values(), Money(0))
            if residue:
                out[self.short_straw_id] += residue
        return out

    def rounded_device_totals(self) -> Dict[str, Money]:
        rounded = [self.rounded_costs(name) for name in (*CATEGORIES, SHARED)]
        with self._context():
            return {i: sum((r[i] for r in rounded), Money(0)) for i in self.device_ids}

    def _context(self):
        pools = [self.shared_pool, *(self.category(c).amount for c in CATEGORIES)]
        return localcontext(self.precision.context_for(*pools))


def frozen_map(values: dict) -> Mapping:
    return MappingProxyType(dict(values))
