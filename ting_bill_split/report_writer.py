import pandas as pd
from fpdf import FPDF
from pathlib import Path
from decimal import Decimal
from typing import Dict, List
import logging

from .datatypes import Bill, BillSplit, Money, CATEGORIES, MINUTES, MESSAGES, MEGABYTES, SHARED

logger = logging.getLogger(__name__)

# Column order for the per-device table
COLUMNS = [
    'Device',
    'Owner',
    'Minutes',
    'Messages',
    'Data (KB)',
    'Min (percent)',
    'Msg (percent)',
    'Data (percent)',
    '$Min',
    '$Msg',
    '$Data',
    '$Shared',
    '$Total',
]

# PDF column widths in mm, one list per table in _report_tables order
PDF_WIDTHS = [
    [65, 25, 20, 20, 20, 20, 20],         # heading
    [30, 25, 20, 20, 20, 25, 25, 25],     # usage
    [25, 25, 25, 25, 25],                 # weighted
    [25, 25],                             # shared
    [35, 30, 25, 25, 25, 25, 25],         # costs
]


def split_frame(split: BillSplit, bill: Bill) -> pd.DataFrame:
    """One row per device, in bill order, with costs at presentation precision."""
    places = split.precision.presentation
    rounded = {name: split.rounded_costs(name) for name in (*CATEGORIES, SHARED)}
    totals = split.rounded_device_totals()

    rows = []
    for device_id in split.device_ids:
        rows.append({
            'Device': device_id,
            'Owner': bill.owner_by_id(device_id),
            'Minutes': split.minutes.quantities[device_id],
            'Messages': split.messages.quantities[device_id],
            'Data (KB)': split.megabytes.quantities[device_id],
            'Min (percent)': _format_pct(split.minutes.percentages[device_id], places),
            'Msg (percent)': _format_pct(split.messages.percentages[device_id], places),
            'Data (percent)': _format_pct(split.megabytes.percentages[device_id], places),
            '$Min': _format_amount(rounded[MINUTES][device_id], places),
            '$Msg': _format_amount(rounded[MESSAGES][device_id], places),
            '$Data': _format_amount(rounded[MEGABYTES][device_id], places),
            '$Shared': _format_amount(rounded[SHARED][device_id], places),
            '$Total': _format_amount(totals[device_id], places),
        })
    return pd.DataFrame(rows, columns=COLUMNS)


def owner_totals(split: BillSplit, bill: Bill) -> Dict[str, Money]:
    """Presentation totals summed per owner, owners in order of first device."""
    out: Dict[str, Money] = {}
    for device_id, amount in split.rounded_device_totals().items():
        owner = bill.owner_by_id(device_id)
        out[owner] = out.get(owner, Money(0)) + amount
    return out


def write_report(split: BillSplit, bill: Bill, csv_path: Path) -> Path:
    """Write the split as stacked CSV tables: heading, usage, weighted, shared, costs."""
    csv_path = Path(csv_path)
    logger.info(f'Writing split report for {len(split.device_ids)} devices to {csv_path}')

    tables = _report_tables(split, bill)
    with open(csv_path, 'w', newline='') as f:
        for df in tables:
            df.to_csv(f, index=False, lineterminator='\n')
    logger.debug(f'Successfully wrote report to {csv_path}')
    return csv_path


def write_pdf_report(split: BillSplit, bill: Bill, pdf_path: Path) -> Path:
    """
    Write the same five tables as `write_report` to an A4 invoice.

    Core fonts only cover latin-1, so other characters print as '?'.
    """
    pdf_path = Path(pdf_path)
    logger.info(f'Generating invoice PDF for {len(split.device_ids)} devices at {pdf_path}')

    pdf = FPDF(orientation='P', unit='mm', format='A4')
    pdf.add_page()
    pdf.set_xy(10, 20)
    for df, widths in zip(_report_tables(split, bill), PDF_WIDTHS):
        _pdf_table(pdf, df, widths)
        pdf.ln(5)
    pdf.output(str(pdf_path))
    logger.debug(f'Successfully wrote invoice to {pdf_path}')
    return pdf_path


def format_split_report(split: BillSplit, bill: Bill) -> str:
    """
    Format the split as plain text for the terminal or an email.
    """
    places = split.precision.presentation
    totals = split.rounded_device_totals()

    report_lines = []
    report_lines.append(f"=== {bill.description or 'TING BILL SPLIT'} ===")
    report_lines.append("")

    for device_id in split.device_ids:
        owner = bill.owner_by_id(device_id)
        marker = " *" if device_id == split.short_straw_id else ""
        report_lines.append(f"{device_id} ({owner}): ${totals[device_id]:.{places}f}{marker}")

    report_lines.append("")
    for owner, amount in owner_totals(split, bill).items():
        report_lines.append(f"{owner} owes ${amount:.{places}f}")

    report_lines.append("")
    calc = sum(totals.values(), Money(0))
    report_lines.append(f"Bill Total: ${bill.total:.{places}f}")
    report_lines.append(f"Split Total: ${calc:.{places}f}")
    if calc != bill.total:
        report_lines.append("(Split total differs from bill total; check the bill amounts)")
    report_lines.append("")
    report_lines.append("* short straw: absorbs rounding remainders")

    return "\n".join(report_lines)

# -------------------- helpers --------------------

def _report_tables(split: BillSplit, bill: Bill) -> List[pd.DataFrame]:
    places = split.precision.presentation
    money = lambda x: _format_amount(x, places)
    frame = split_frame(split, bill)
    usage_total = sum((split.category(c).amount for c in CATEGORIES), Money(0))

    heading = pd.DataFrame([{
        '**Invoice with date**': bill.description,
        'Devices Qty': len(bill.devices),
        '$Total': money(bill.total),
        '$Calc': money(split.total),
        '$Usage': money(usage_total),
        '$Devices': money(bill.devices_cost),
        '$Tax+Reg': money(bill.fees),
    }])

    usage = frame[['Device', 'Owner', 'Minutes', 'Messages', 'Data (KB)',
                   'Min (percent)', 'Msg (percent)', 'Data (percent)']]
    usage = usage.rename(columns={'Device': '**Phone Number**'})

    base = [bill.minutes, bill.messages, bill.megabytes]
    extra = [bill.extra_minutes, bill.extra_messages, bill.extra_megabytes]
    weighted = pd.DataFrame(
        [
            ['Base', *map(money, base), money(sum(base, Money(0)))],
            ['Extra', *map(money, extra), money(sum(extra, Money(0)))],
            ['Total', *(money(b + e) for b, e in zip(base, extra)), money(usage_total)],
        ],
        columns=['**Weighted**', 'Minutes', 'Messages', 'Data', 'All'],
    )

    shared = pd.DataFrame(
        [
            ['Devices', money(bill.devices_cost)],
            ['Tax & Reg', money(bill.fees)],
            ['Total', money(bill.shared_pool)],
        ],
        columns=['**Shared**', 'Amount'],
    )

    costs = frame[['Device', 'Owner', '$Min', '$Msg', '$Data', '$Shared', '$Total']]
    costs = costs.rename(columns={'Device': '**Phone Number**'})

    return [heading, usage, weighted, shared, costs]


def _format_amount(amount, places: int) -> str:
    return f'{amount:.{places}f}'


def _format_pct(fraction: Decimal, places: int) -> str:
    """Fraction of category usage shown as a percentage"""
    return f'{fraction * 100:.{places}f}'


def _pdf_table(pdf: FPDF, df: pd.DataFrame, widths: List[float]):
    pdf.set_font('helvetica', 'B', 8)
    for width, name in zip(widths, df.columns):
        pdf.cell(width, 7, _pdf_text(name.strip('*')), border=1, align='C')
    pdf.ln()

    pdf.set_font('helvetica', '', 8)
    for row in df.itertuples(index=False):
        for width, value in zip(widths, row):
            pdf.cell(width, 7, _pdf_text(value), border=1, align='C')
        pdf.ln()


def _pdf_text(value) -> str:
    return str(value).encode('latin-1', 'replace').decode('latin-1')
