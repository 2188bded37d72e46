import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from reconciler.config.models import FieldMapping, ReconciliationConfig


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server_mappings():
    return [
        FieldMapping(id="m1", source_field="name", target_field="hostname", is_key=True),
        FieldMapping(id="m2", source_field="ip", target_field="address"),
    ]


@pytest.fixture
def server_config(server_mappings):
    return ReconciliationConfig(mappings=server_mappings, fuzzy_threshold=0.8)


@pytest.fixture
def source_rows():
    return [
        {"id": "1", "name": "Server A", "ip": "192.168.1.1"},
        {"id": "2", "name": "Server B", "ip": "192.168.1.2"},
        {"id": "3", "name": "Server C", "ip": "192.168.1.3"},
        {"id": "4", "name": "Server D", "ip": "192.168.1.4"},
    ]


@pytest.fixture
def target_rows():
    return [
        {"id": "101", "hostname": "Server A", "address": "192.168.1.1"},
        {"id": "102", "hostname": "Server B", "address": "192.168.1.20"},
        {"id": "103", "hostname": "Server C", "address": "192.168.1.3"},
        {"id": "104", "hostname": "Server_D", "address": "192.168.1.4"},
    ]
