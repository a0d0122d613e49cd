"""Everything under tests/unit is marked ``unit``."""

from pathlib import Path

import pytest


_UNIT_ROOT = Path(__file__).parent


def pytest_collection_modifyitems(config, items):
    for item in items:
        if _UNIT_ROOT in item.path.parents:
            item.add_marker(pytest.mark.unit)
