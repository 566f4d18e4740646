"""Entry point for `python -m meshop`.

Usage:
    python -m meshop
"""

from __future__ import annotations

import asyncio

from meshop.app import main

asyncio.run(main())
