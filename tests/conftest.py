import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bridge.config import BridgeConfig


@pytest.fixture
def config():
    return BridgeConfig(host="127.0.0.1", port=9100, reconnect_interval=0.05, bootstrap_identity=False)
