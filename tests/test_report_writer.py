"""
Report tests for the three-device fixture bill.

Costs are shown at two decimals, truncated, with the leftover cents on the
short-straw device (1112220000), so every column still adds up to the bill.
"""
from decimal import Decimal

import pandas as pd
import pdfplumber
import pytest

from ting_bill_split import allocator, report_writer
from ting_bill_split.datatypes import Bill, Device


@pytest.fixture()
def bill() -> Bill:
    return Bill(
        description="TestParseMaps",
        devices=(
            Device(device_id="1112223333", owner="owner1"),
            Device(device_id="1112224444", owner="owner2"),
            Device(device_id="1112220000", owner="owner1"),
        ),
        short_straw_id="1112220000",
        total=Decimal("118.84"),
        devices_cost=Decimal("42.00"),
        fees=Decimal("12.85"),
        minutes=Decimal("35.00"),
        messages=Decimal("8.00"),
        megabytes=Decimal("20.00"),
        extra_minutes=Decimal("1.00"),
        extra_messages=Decimal("2.00"),
        extra_megabytes=Decimal("3.00"),
    )


@pytest.fixture()
def split(bill):
    return allocator.compute_split(
        {"1112223333": 4, "1112224444": 1},
        {"1112223333": 4696, "1112224444": 1532},
        {"1112223333": 8001, "1112224444": 2999},
        bill,
    )


def test_split_frame(split, bill):
    df = report_writer.split_frame(split, bill)

    assert list(df.columns) == report_writer.COLUMNS
    assert list(df['Device']) == ["1112223333", "1112224444", "1112220000"]
    assert list(df['Owner']) == ["owner1", "owner2", "owner1"]
    assert list(df['Minutes']) == [4, 1, 0]
    assert list(df['Msg (percent)']) == ["75.40", "24.60", "0.00"]
    assert list(df['$Msg']) == ["7.54", "2.45", "0.01"]
    assert list(df['$Data']) == ["16.72", "6.27", "0.01"]
    assert list(df['$Shared']) == ["18.28", "18.28", "18.29"]
    assert list(df['$Total']) == ["71.34", "34.20", "18.31"]


@pytest.mark.parametrize("column", ["Min (percent)", "Msg (percent)", "Data (percent)"])
def test_formatted_percentages_add_up_to_100(split, bill, column):
    df = report_writer.split_frame(split, bill)
    assert sum(Decimal(v) for v in df[column]) == Decimal("100.00")


def test_owner_totals(split, bill):
    assert report_writer.owner_totals(split, bill) == {
        "owner1": Decimal("89.65"),
        "owner2": Decimal("34.20"),
    }


def test_write_report(split, bill, tmp_path):
    path = report_writer.write_report(split, bill, tmp_path / "TestParseMaps_report.csv")

    lines = path.read_text().splitlines()
    assert lines == [
        "**Invoice with date**,Devices Qty,$Total,$Calc,$Usage,$Devices,$Tax+Reg",
        "TestParseMaps,3,118.84,123.85,69.00,42.00,12.85",
        "**Phone Number**,Owner,Minutes,Messages,Data (KB),Min (percent),Msg (percent),Data (percent)",
        "1112223333,owner1,4,4696,8001,80.00,75.40,72.74",
        "1112224444,owner2,1,1532,2999,20.00,24.60,27.26",
        "1112220000,owner1,0,0,0,0.00,0.00,0.00",
        "**Weighted**,Minutes,Messages,Data,All",
        "Base,35.00,8.00,20.00,63.00",
        "Extra,1.00,2.00,3.00,6.00",
        "Total,36.00,10.00,23.00,69.00",
        "**Shared**,Amount",
        "Devices,42.00",
        "Tax & Reg,12.85",
        "Total,54.85",
        "**Phone Number**,Owner,$Min,$Msg,$Data,$Shared,$Total",
        "1112223333,owner1,28.80,7.54,16.72,18.28,71.34",
        "1112224444,owner2,7.20,2.45,6.27,18.28,34.20",
        "1112220000,owner1,0.00,0.01,0.01,18.29,18.31",
    ]


def test_cost_table_adds_up_to_pools(split, bill, tmp_path):
    path = report_writer.write_report(split, bill, tmp_path / "report.csv")
    # last table: header line + one line per device
    costs = pd.read_csv(path, skiprows=14, dtype=str)
    assert sum(Decimal(v) for v in costs['$Shared']) == Decimal("54.85")
    assert sum(Decimal(v) for v in costs['$Total']) == Decimal("123.85")


def test_write_pdf_report(split, bill, tmp_path):
    path = report_writer.write_pdf_report(split, bill, tmp_path / "TestParseMaps.pdf")

    assert path.read_bytes().startswith(b"%PDF")
    with pdfplumber.open(path) as pdf:
        text = "\n".join(page.extract_text() for page in pdf.pages)
    assert "Invoice with date" in text
    assert "$Min $Msg $Data $Shared $Total" in text
    assert "1112223333 owner1 28.80 7.54 16.72 18.28 71.34" in text
    assert "1112220000 owner1 0.00 0.01 0.01 18.29 18.31" in text


def test_format_split_report(split, bill):
    report = report_writer.format_split_report(split, bill)

    assert report.startswith("=== TestParseMaps ===")
    assert "1112220000 (owner1): $18.31 *" in report
    assert "1112223333 (owner1): $71.34\n" in report
    assert "owner1 owes $89.65" in report
    assert "owner2 owes $34.20" in report
    assert "Bill Total: $118.84" in report
    assert "Split Total: $123.85" in report
    assert "Split total differs from bill total" in report


def test_format_split_report_when_totals_match(split, bill):
    matching = Bill(**{**bill.__dict__, "total": Decimal("123.85")})
    report = report_writer.format_split_report(split, matching)
    assert "differs" not in report
