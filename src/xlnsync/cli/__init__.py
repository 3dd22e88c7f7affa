# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""xlnsync CLI - watch the live network or print the simulated stream."""

from .main import app, main

__all__ = ["main", "app"]
