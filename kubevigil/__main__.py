"""Entry point for `python -m kubevigil`.

Usage:
    python -m kubevigil
    uv run python -m kubevigil
"""

from __future__ import annotations

import asyncio

from kubevigil.app import main

asyncio.run(main())
