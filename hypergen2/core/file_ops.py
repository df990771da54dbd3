# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/core/file_ops.py
"""
Atomic file writes for reports and recovery artifacts.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_text(target_path: Path, content: str, *, encoding: str = "utf-8") -> Path:
    """
    Write `content` to a temp file next to `target_path`, fsync it, then
    rename it over the target. The temp file is removed on failure.

    Example:
        atomic_write_text(Path("out/batch-report.json"), payload)
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(
        suffix=".part",
        prefix=f".{target_path.name}.",
        dir=str(target_path.parent),
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, target_path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    return target_path
