"""
Reading Export

Serializes reading-log snapshots to JSON records or CSV tables.
"""

import csv
import io
import json
from typing import Any, Iterable

from .reading_log import Reading

BASE_COLUMNS = ["timestamp", "device_name", "host", "port", "unit_id"]


def readings_to_records(readings: Iterable[Reading]) -> list[dict[str, Any]]:
    """One dict per reading, in the order given (newest first for log snapshots)"""
    return [r.to_dict() for r in readings]


def readings_to_json(readings: Iterable[Reading]) -> str:
    return json.dumps(readings_to_records(readings), indent=2)


def csv_header(start_address: int, quantity: int) -> list[str]:
    return BASE_COLUMNS + [f"reg{start_address + i}" for i in range(quantity)] + ["error"]


def readings_to_csv(
    readings: Iterable[Reading],
    start_address: int,
    quantity: int,
) -> str:
    """
    Tabular export: one row per reading, one column per register offset.

    Rows are written oldest first. Failed readings leave the register
    cells blank and fill the error column.
    """
    fieldnames = csv_header(start_address, quantity)
    register_columns = fieldnames[len(BASE_COLUMNS):-1]

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, restval="")
    writer.writeheader()

    for r in reversed(list(readings)):
        row = {
            "timestamp": r.timestamp.isoformat(),
            "device_name": r.device_name,
            "host": r.host,
            "port": r.port,
            "unit_id": r.unit_id,
            "error": r.error or "",
        }
        if r.registers is not None:
            row.update(zip(register_columns, r.registers))
        writer.writerow(row)

    return output.getvalue()
