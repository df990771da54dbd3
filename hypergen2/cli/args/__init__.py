# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hypergen2/cli/args/__init__.py
"""Argument parser modules for the hypergen2 CLI."""
from __future__ import annotations

from .parser import build_parser, parse_args_with_config
from .validators import validate_args

__all__ = ["build_parser", "parse_args_with_config", "validate_args"]
