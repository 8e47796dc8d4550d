import logging
import tomllib
import yaml
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, List

from .datatypes import Bill, Device, Money, SplitPrecision
from .errors import BillFormatError, DuplicateDeviceError

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = SplitPrecision(intermediate=6, presentation=2)

BILL_FILENAME = 'bill.yaml'

# bill.yaml key → Bill field, for the money amounts
MONEY_KEYS = {
    'total': 'total',
    'devicesCost': 'devices_cost',
    'fees': 'fees',
    'minutes': 'minutes',
    'messages': 'messages',
    'megabytes': 'megabytes',
    'extraMinutes': 'extra_minutes',
    'extraMessages': 'extra_messages',
    'extraMegabytes': 'extra_megabytes',
}

TEMPLATE_HEADER = """\
# Bill definition for one billing period.
#   minutes / messages / megabytes: base charge per category, in dollars
#   extra*: overage charged on top of the base for that category
#   devicesCost + fees: split evenly across every device
#   shortStrawId: device that absorbs rounding remainders (defaults to the first device)
"""


def load_bill(path: Path) -> Bill:
    """Read a bill.yaml, or a bill.toml as written by earlier releases."""
    path = Path(path)
    if path.suffix.lower() == '.toml':
        try:
            data = tomllib.loads(path.read_text())
        except tomllib.TOMLDecodeError as e:
            raise BillFormatError(f'{path} is not valid TOML: {e}') from e
    else:
        try:
            data = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise BillFormatError(f'{path} is not valid YAML: {e}') from e
    logger.debug(f'Loaded bill definition from {path}')
    return parse_bill(data)


def parse_bill(data: Any) -> Bill:
    """Build a Bill from the mapping found in a bill.yaml file."""
    if not isinstance(data, dict):
        raise BillFormatError('Bill definition must be a mapping of keys to values')

    amounts = {field: _to_money(key, data.get(key, 0)) for key, field in MONEY_KEYS.items()}
    short_straw = data.get('shortStrawId')

    return Bill(
        description=str(data.get('description') or ''),
        devices=tuple(_parse_devices(data.get('devices') or [])),
        short_straw_id='' if short_straw is None else str(short_straw),
        **amounts,
    )


def write_bill_template(directory: Path) -> Path:
    """Write an example bill.yaml into `directory` and return its path."""
    path = Path(directory) / BILL_FILENAME
    template = {
        'description': 'Ting Bill Split YYYY-MM-DD',
        'shortStrawId': '1112223333',
        'total': 0.0,
        'devicesCost': 0.0,
        'fees': 0.0,
        'minutes': 0.0,
        'messages': 0.0,
        'megabytes': 0.0,
        'extraMinutes': 0.0,
        'extraMessages': 0.0,
        'extraMegabytes': 0.0,
        'devices': [
            {'deviceId': '1112223333', 'owner': 'owner1'},
            {'deviceId': '2229998888', 'owner': 'owner2'},
            {'deviceId': '3331119999', 'owner': 'owner1'},
        ],
    }
    path.write_text(TEMPLATE_HEADER + yaml.safe_dump(template, sort_keys=False))
    logger.info(f'Wrote bill template to {path}')
    return path

# -------------------- helpers --------------------

def _parse_devices(raw) -> List[Device]:
    if not isinstance(raw, list):
        raise BillFormatError('devices must be a list of {deviceId, owner} entries')
    out = []
    seen = set()
    for entry in raw:
        # older bill.toml files spell these DeviceID / Owner
        fields = {str(k).lower(): v for k, v in entry.items()} if isinstance(entry, dict) else {}
        if fields.get('deviceid') in (None, ''):
            raise BillFormatError(f'Device entry {entry!r} has no deviceId')
        device_id = str(fields['deviceid'])
        if device_id in seen:
            raise DuplicateDeviceError(device_id)
        seen.add(device_id)
        out.append(Device(device_id=device_id, owner=str(fields.get('owner') or '')))
    return out


def _to_money(key: str, value) -> Money:
    # YAML floats go through str() so 12.85 stays 12.85
    if isinstance(value, bool) or value is None:
        raise BillFormatError(f'{key} must be a dollar amount, got {value!r}')
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise BillFormatError(f'{key} must be a dollar amount, got {value!r}') from e
    if not amount.is_finite():
        raise BillFormatError(f'{key} must be a dollar amount, got {value!r}')
    return amount

