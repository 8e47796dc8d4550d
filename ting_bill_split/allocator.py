import logging
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Dict, List, Mapping

from .config import DEFAULT_PRECISION
from .datatypes import (
    Bill, BillSplit, CategorySplit, Money, SplitPrecision,
    CATEGORIES, MINUTES, MESSAGES, MEGABYTES, SHARED, frozen_map,
)
from .errors import (
    DuplicateDeviceError, EmptyDeviceListError, NegativeUsageError, UnknownShortStrawError,
)

logger = logging.getLogger(__name__)


def compute_split(minutes: Mapping[str, int],
                  messages: Mapping[str, int],
                  megabytes: Mapping[str, int],
                  bill: Bill,
                  precision: SplitPrecision = DEFAULT_PRECISION,
                  strict_short_straw: bool = False) -> BillSplit:
    """
    Split a bill across its devices.

    Usage categories are split by each device's share of the category's total
    usage; devices cost and fees are split evenly. Anything lost to truncation
    lands on the short-straw device, so every pool adds back up to the bill.

    `megabytes` is keyed by device and holds kilobytes, as exported.
    """
    usage = {MINUTES: minutes, MESSAGES: messages, MEGABYTES: megabytes}
    _check_devices(bill)
    for category, qty_map in usage.items():
        _check_usage(category, qty_map)
    short_straw = short_straw_for(bill, strict=strict_short_straw)

    with localcontext(precision.context_for(*_bill_amounts(bill))):
        return _split(usage, bill, precision, short_straw)


def short_straw_for(bill: Bill, strict: bool = False) -> str:
    """
    Device that absorbs rounding residue.

    The bill's shortStrawId when it names a device, otherwise the first device
    in the order the bill lists them.
    """
    ids = bill.device_ids()
    if not ids:
        raise EmptyDeviceListError(bill.description)
    if bill.short_straw_id in ids:
        return bill.short_straw_id
    if bill.short_straw_id:
        if strict:
            raise UnknownShortStrawError(bill.short_straw_id, ids)
        logger.warning(f'shortStrawId {bill.short_straw_id} is not on the bill; using {ids[0]}')
    return ids[0]

# -------------------- helpers --------------------

def _split(usage: Dict[str, Mapping[str, int]], bill: Bill,
           precision: SplitPrecision, short_straw: str) -> BillSplit:
    ids = bill.device_ids()
    quantum = precision.intermediate_quantum

    # Usage categories – proportional to usage, denominator includes unbilled devices
    splits = {}
    for category in CATEGORIES:
        qty_map = usage[category]
        amount = bill.billable_amount(category)
        used = sum(qty_map.values())

        quantities, percentages, costs = {}, {}, {}
        for device_id in ids:
            qty = qty_map.get(device_id, 0)
            pct = _pct(qty, used, quantum)
            quantities[device_id] = qty
            percentages[device_id] = pct
            costs[device_id] = _t(pct * amount, quantum)

        if used == 0:
            logger.info(f'No {category} usage reported; {amount} goes to {short_straw}')
        _reconcile(category, costs, amount, short_straw)
        splits[category] = CategorySplit(
            name=category,
            amount=amount,
            costs=frozen_map(costs),
            quantities=frozen_map(quantities),
            percentages=frozen_map(percentages),
        )

    # Shared – devices cost + taxes & fees, even split
    pool = bill.shared_pool
    per_device = _t(pool / Decimal(len(ids)), quantum)
    shared = {device_id: per_device for device_id in ids}
    _reconcile(SHARED, shared, pool, short_straw)

    return BillSplit(
        device_ids=tuple(ids),
        short_straw_id=short_straw,
        minutes=splits[MINUTES],
        messages=splits[MESSAGES],
        megabytes=splits[MEGABYTES],
        shared_costs=frozen_map(shared),
        shared_pool=pool,
        precision=precision,
    )


def _bill_amounts(bill: Bill) -> List[Money]:
    amounts = [bill.devices_cost, bill.fees]
    for category in CATEGORIES:
        amounts += [getattr(bill, category), getattr(bill, f'extra_{category}')]
    return amounts

def _check_devices(bill: Bill):
    if not bill.devices:
        raise EmptyDeviceListError(bill.description)
    seen = set()
    for device_id in bill.device_ids():
        if device_id in seen:
            raise DuplicateDeviceError(device_id)
        seen.add(device_id)


def _check_usage(category: str, qty_map: Mapping[str, int]):
    for device_id, qty in qty_map.items():
        if qty < 0:
            raise NegativeUsageError(category, device_id, qty)


def _pct(qty: int, used: int, quantum: Decimal) -> Decimal:
    if used == 0:
        return Decimal(0)
    return _t(Decimal(qty) / Decimal(used), quantum)


def _reconcile(category: str, costs: Dict[str, Money], intended: Money, short_straw: str):
    remainder = intended - sum(costs.values(), Money(0))
    if remainder:
        logger.info(f'Remainder {category} cost of ${remainder} to deviceId {short_straw}')
        costs[short_straw] += remainder
    else:
        logger.debug(f'There was no remainder cost when splitting {category}.')


def _t(x, quantum):  # truncate to intermediate precision
    return Decimal(x).quantize(quantum, ROUND_DOWN)
