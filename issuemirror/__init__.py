"""Mirror GitHub issue activity into forum topics and back."""

from __future__ import annotations

__version__ = "0.1.0"
