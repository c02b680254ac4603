import json
import os
import sys
from unittest.mock import MagicMock, patch

import pytest

# Add the project root directory to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from cyber_vault import threat_map
from cyber_vault.clients.base import reset_shared_state
from cyber_vault.config import API_CONFIG
from cyber_vault.threat_aggregation import ThreatAggregator

SETTINGS = [
    'DATABASE_URL', 'POSTGRES_HOST', 'WATCHLIST_IPS', 'HIGH_RISK_THRESHOLD', 'SCAN_INTERVAL_MINUTES',
    'API_RATE_LIMIT_REQUESTS_PER_MINUTE', 'API_CACHE_TTL_SECONDS', 'API_REQUEST_TIMEOUT_SECONDS',
]


def make_response(json_data=None, status_code=200, text=None, reason='OK'):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    if text is not None:
        response.text = text
        response.json.side_effect = ValueError('No JSON object could be decoded')
    else:
        response.text = json.dumps(json_data)
        response.json.return_value = json_data
    return response


class FakeHTTP:
    """Stands in for requests.request, answering by URL fragment"""

    def __init__(self):
        self.routes = []
        self.calls = []

    def respond(self, fragment, json_data=None, status_code=200, text=None):
        self.routes.append((fragment, make_response(json_data, status_code, text)))

    def fail(self, fragment, exc):
        self.routes.append((fragment, exc))

    def __call__(self, method, url, params=None, headers=None, json=None, timeout=None):
        self.calls.append({'method': method, 'url': url, 'params': params or {}, 'headers': headers or {},
                           'json': json, 'timeout': timeout})
        for fragment, result in self.routes:
            if fragment in url:
                if isinstance(result, Exception):
                    raise result
                return result
        return make_response({'message': 'Not Found'}, 404)

    def calls_to(self, fragment):
        return [call for call in self.calls if fragment in call['url']]


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Start every test with no vendor keys and fresh shared state"""
    for entry in API_CONFIG.values():
        monkeypatch.delenv(entry['env_var'], raising=False)
        if entry.get('extra_env_var'):
            monkeypatch.delenv(entry['extra_env_var'], raising=False)
    for name in SETTINGS:
        monkeypatch.delenv(name, raising=False)
    # Retries run back to back
    monkeypatch.setenv('API_RETRY_DELAY_SECONDS', '0')
    monkeypatch.delenv('API_MAX_RETRIES', raising=False)

    reset_shared_state()
    threat_map.clear_cache()
    ThreatAggregator.get_unified_threat_intel.limiter.reset()

    yield

    reset_shared_state()
    threat_map.clear_cache()


@pytest.fixture
def http():
    fake = FakeHTTP()
    with patch('cyber_vault.utils.http.requests.request', side_effect=fake):
        yield fake


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cyber_vault_test.db'}"


@pytest.fixture
def data_manager(database_url):
    from cyber_vault.data_manager import ThreatDataManager
    from cyber_vault.database import get_db

    db = get_db(database_url)
    yield ThreatDataManager(db)
    db.close()
