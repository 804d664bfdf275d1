"""Client-side log intelligence: full-text search, pattern aggregation and anomaly detection."""

from __future__ import annotations

__version__ = "0.1.0"
