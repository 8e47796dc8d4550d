"""
Exceptions raised for malformed bills and usage data.

Everything derives from ValueError so callers that only care about "bad input"
can keep catching that.
"""


class BillSplitError(ValueError):
    """Base class for input problems that stop a split from being computed."""


class EmptyDeviceListError(BillSplitError):
    def __init__(self, description: str = ''):
        self.description = description
        label = f' "{description}"' if description else ''
        super().__init__(f'Bill{label} lists no devices; shared costs cannot be split')


class DuplicateDeviceError(BillSplitError):
    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f'Device {device_id} is listed more than once on the bill')


class NegativeUsageError(BillSplitError):
    def __init__(self, category: str, device_id: str, quantity: int):
        self.category = category
        self.device_id = device_id
        self.quantity = quantity
        super().__init__(f'Negative {category} usage for device {device_id}: {quantity}')


class UnknownShortStrawError(BillSplitError):
    def __init__(self, short_straw_id: str, device_ids):
        self.short_straw_id = short_straw_id
        self.device_ids = list(device_ids)
        super().__init__(
            f'shortStrawId {short_straw_id} does not match any device on the bill '
            f'({", ".join(self.device_ids)})'
        )


class BillFormatError(BillSplitError):
    """Bill definition file could not be read or has the wrong shape."""


class UsageFormatError(BillSplitError):
    """Usage CSV export is empty, missing a column, or has a bad quantity."""
