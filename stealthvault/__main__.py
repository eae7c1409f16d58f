"""Allow running as ``python -m stealthvault``."""

from __future__ import annotations

import sys

from stealthvault.main import main

sys.exit(main())
