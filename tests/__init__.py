"""Tests for the form builder.

The ``modules`` and ``utils`` namespace packages live at the repository root,
one level above this package, and are not importable when the tests run from
a checkout that was never installed.  The root is appended to ``sys.path``
here once instead of in every test module.
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))
