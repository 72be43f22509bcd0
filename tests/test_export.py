import csv
import io
import json
from datetime import datetime, timedelta, timezone

from regpoll.common.config import DeviceConfig
from regpoll.services.device.export import csv_header, readings_to_csv, readings_to_json
from regpoll.services.device.reading_log import Reading

DEVICE = DeviceConfig(name="Meter", host="10.0.0.5", port=502, unit_id=1)
TS = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def newest_first() -> list[Reading]:
    return [
        Reading.failed(DEVICE, TS + timedelta(seconds=10), "Timeout: no complete response within 3s"),
        Reading.ok(DEVICE, TS, [42, 255]),
    ]


def test_csv_header():
    assert csv_header(100, 2) == [
        "timestamp", "device_name", "host", "port", "unit_id", "reg100", "reg101", "error",
    ]


def test_csv_rows_oldest_first_with_blank_cells_for_failures():
    rows = list(csv.reader(io.StringIO(readings_to_csv(newest_first(), 0, 2))))

    assert rows[0] == ["timestamp", "device_name", "host", "port", "unit_id", "reg0", "reg1", "error"]
    assert rows[1] == ["2024-05-01T12:00:00+00:00", "Meter", "10.0.0.5", "502", "1", "42", "255", ""]
    assert rows[2][5:7] == ["", ""]
    assert rows[2][7] == "Timeout: no complete response within 3s"
    assert len(rows) == 3


def test_csv_pads_short_register_lists():
    rows = list(csv.reader(io.StringIO(readings_to_csv([Reading.ok(DEVICE, TS, [7])], 0, 3))))
    assert rows[1][5:8] == ["7", "", ""]


def test_csv_with_no_readings_has_only_header():
    assert readings_to_csv([], 0, 1).splitlines() == ["timestamp,device_name,host,port,unit_id,reg0,error"]


def test_json_keeps_log_order():
    records = json.loads(readings_to_json(newest_first()))

    assert [r["registers"] for r in records] == [None, [42, 255]]
    assert records[0]["error"].startswith("Timeout:")
    assert records[1]["timestamp"] == "2024-05-01T12:00:00+00:00"
