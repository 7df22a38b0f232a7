"""Module executed when running ``python -m letterplex``."""

from __future__ import annotations

import sys

from .main import main


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    sys.exit(main())
