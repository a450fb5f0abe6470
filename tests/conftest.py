import os
import tempfile

# Settings are read at import time; keep test runs away from ./data and any local .env secrets.
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="cryptochat-tests-")
os.environ["PAUSE_MS_BETWEEN_SAME_VENDOR"] = "0"
os.environ["APP_PASSWORD"] = ""
os.environ["OPENAI_API_KEY"] = ""

import pytest

FROZEN_NOW = 1736942400.0  # 2025-01-15T12:00:00Z


def make_chart(prices):
    base = 1_700_000_000_000
    return {"prices": [[base + i * 86_400_000, p] for i, p in enumerate(prices)]}


@pytest.fixture
def frozen_clock():
    return lambda: FROZEN_NOW


@pytest.fixture
def global_raw():
    return {
        "data": {
            "total_market_cap": {"usd": 2_000_000_000_000},
            "total_volume": {"usd": 100_000_000_000},
            "market_cap_percentage": {"btc": 52, "eth": 18},
            "market_cap_change_percentage_24h_usd": 1.5,
            "updated_at": 1712512855,
        }
    }


@pytest.fixture
def rising_chart():
    return make_chart([40_000 + i * 100 if i < 100 else 50_000 + (i - 100) * 50 for i in range(200)])


@pytest.fixture
def top_coins_raw():
    return [
        {"id": f"coin-{i}", "symbol": f"c{i}", "price_change_percentage_24h": 2 if i % 2 == 0 else -1}
        for i in range(20)
    ]
