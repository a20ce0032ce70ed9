"""Suite-wide pytest configuration for the XL2 station.

Tests marked ``hardware`` talk to a real sound level meter, GNSS receiver or
Raspberry Pi sensors and only run with ``--run-hardware``.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_addoption(parser):
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="also run tests that need attached XL2/GNSS devices or a Pi host",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "hardware: needs attached devices or Raspberry Pi sensors")
    config.addinivalue_line("markers", "slow: takes more than a few seconds")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-hardware"):
        return
    skip = pytest.mark.skip(reason="hardware test; pass --run-hardware to run")
    for item in items:
        if item.get_closest_marker("hardware") is not None:
            item.add_marker(skip)


@pytest.fixture
def project_root() -> Path:
    return ROOT
