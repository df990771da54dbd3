# SPDX-License-Identifier: LGPL-3.0-or-later
# hypergen2/inventory/__init__.py
from .snapshot import InventoryRow, Snapshot, SnapshotStore, read_record, record_from_dict, record_to_dict, write_record

__all__ = [
    "InventoryRow",
    "Snapshot",
    "SnapshotStore",
    "read_record",
    "record_from_dict",
    "record_to_dict",
    "write_record",
]
