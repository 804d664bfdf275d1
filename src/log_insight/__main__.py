"""Module entrypoint.

Allows:
    python -m log_insight
"""

from __future__ import annotations

from log_insight.server.log_server import main

if __name__ == "__main__":
    main()
