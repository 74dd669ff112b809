"""Block device inventory for operator display (lsblk passthrough)."""

from __future__ import annotations

from .primitives import SystemPrimitives


INVENTORY_HEADERS = ("NAME", "MODEL", "SERIAL", "VENDOR", "TRAN")


def _flatten(devices: list[dict], depth: int = 0) -> list[dict]:
    rows = []
    for device in devices:
        row = dict(device)
        row["_depth"] = depth
        rows.append(row)
        rows.extend(_flatten(device.get("children", []) or [], depth + 1))
    return rows


def list_block_devices(primitives: SystemPrimitives) -> list[dict]:
    return _flatten(primitives.list_block_devices())


def format_inventory(rows: list[dict]) -> str:
    """Render inventory rows as an aligned table, children indented."""
    table = [list(INVENTORY_HEADERS)]
    for row in rows:
        cells = []
        for header in INVENTORY_HEADERS:
            value = row.get(header.lower())
            cells.append("" if value is None else str(value).strip())
        if row.get("_depth"):
            cells[0] = "  " * row["_depth"] + "`-" + cells[0]
        table.append(cells)
    widths = [max(len(line[index]) for line in table) for index in range(len(INVENTORY_HEADERS))]
    return "\n".join(
        " ".join(cell.ljust(width) for cell, width in zip(line, widths)).rstrip()
        for line in table
    )
