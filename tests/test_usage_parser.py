import io

import pytest

from ting_bill_split import usage_parser
from ting_bill_split.errors import UsageFormatError


MINUTES_CSV = """\
Date,Time,Incoming/Outgoing,Phone,Nickname,Location,Country,Partner's Phone,Partner Nickname,Partner's Location,Partner's Country,Duration (min),Surcharges ($),Features
"February 03, 2011",01:11,outgoing,1112223333,Phone 1,"SPRINGFIELD, MO",USA,7778889999,,USA,United States of America,1,0.0,""
"February 14, 2011",01:22,outgoing,1112223333,Phone 1,"SPRINGFIELD, MO",USA,7778889999,,USA,United States of America,2,0.0,""
"February 14, 2011",01:22,outgoing,1112224444,Phone 2,"DELANO, KS",USA,7778889999,,USA,United States of America,1,0.0,""
"""

MESSAGES_CSV = """\
Date,Time,Phone,Nickname,Partner's Phone,Partner's Nickname,Sent/Received,Roaming,Roaming Country,Surcharges ($)
"February 03, 2011",01:11,1112223333,Phone 1,7778889999,Phone 7,sent,no,"",0.0
"February 03, 2011",01:12,1112223333,Phone 1,7778889999,Phone 7,received,no,"",0.0
"February 03, 2011",01:12,1112224444,Phone 1,7778889999,Phone 7,received,no,"",0.0
"""

MEGABYTES_CSV = """\
Date,Device,Nickname,Location,Kilobytes,Surcharges ($),Type
"February 03, 2011",1112223333,Phone 1,United States of America,1336,0.0,4G LTE
"February 03, 2011",1112223333,Phone 1,United States of America,2024,0.0,3G
"February 04, 2011",1112223333,Phone 1,United States of America,1336,0.0,4G LTE
"February 04, 2011",1112224444,Phone 2,United States of America,1532,0.0,4G LTE
"""


def test_parse_minutes():
    got = usage_parser.parse_minutes(io.StringIO(MINUTES_CSV))
    assert got == {"1112223333": 3, "1112224444": 1}


def test_parse_messages():
    got = usage_parser.parse_messages(io.StringIO(MESSAGES_CSV))
    assert got == {"1112223333": 2, "1112224444": 1}


def test_parse_megabytes():
    got = usage_parser.parse_megabytes(io.StringIO(MEGABYTES_CSV))
    assert got == {"1112223333": 4696, "1112224444": 1532}


def test_parse_from_path(tmp_path):
    path = tmp_path / "20240131-megabytes.csv"
    path.write_text(MEGABYTES_CSV)
    assert usage_parser.parse_megabytes(path) == {"1112223333": 4696, "1112224444": 1532}


def test_devices_keep_first_seen_order():
    csv = "Phone\n5\n3\n5\n1\n"
    assert list(usage_parser.parse_messages(io.StringIO(csv))) == ["5", "3", "1"]


def test_leading_zeros_survive():
    csv = "Device,Kilobytes\n0112223333,10\n"
    assert usage_parser.parse_megabytes(io.StringIO(csv)) == {"0112223333": 10}


def test_header_only_file_is_no_usage():
    assert usage_parser.parse_minutes(io.StringIO("Phone,Duration (min)\n")) == {}


@pytest.mark.parametrize("parse", [
    usage_parser.parse_minutes,
    usage_parser.parse_messages,
    usage_parser.parse_megabytes,
])
def test_empty_file_rejected(parse):
    with pytest.raises(UsageFormatError, match="empty"):
        parse(io.StringIO(""))


def test_missing_phone_header():
    with pytest.raises(UsageFormatError, match='missing "Phone" header in minutes csv file'):
        usage_parser.parse_minutes(io.StringIO("Device,Duration (min)\n1,2\n"))


def test_missing_duration_header():
    with pytest.raises(UsageFormatError, match=r'missing "Duration \(min\)" header'):
        usage_parser.parse_minutes(io.StringIO("Phone,Minutes\n1,2\n"))


def test_missing_kilobytes_header():
    with pytest.raises(UsageFormatError, match='missing "Kilobytes" header'):
        usage_parser.parse_megabytes(io.StringIO("Device,KB\n1,2\n"))


@pytest.mark.parametrize("qty", ["1.5", "", "lots"])
def test_non_integer_quantity_rejected(qty):
    csv = f"Phone,Duration (min)\n1112223333,{qty}\n"
    with pytest.raises(UsageFormatError, match="row 2"):
        usage_parser.parse_minutes(io.StringIO(csv))


def test_blank_device_rejected():
    with pytest.raises(UsageFormatError, match="no Phone"):
        usage_parser.parse_messages(io.StringIO("Phone,Nickname\n,someone\n"))
