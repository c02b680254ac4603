import pytest

from cyber_vault.clients.abuseipdb import FALLBACK_BLACKLIST, AbuseIPDBClient


@pytest.fixture
def abuseipdb(monkeypatch):
    monkeypatch.setenv('ABUSEIPDB_API_KEY', 'abuse-key')
    return AbuseIPDBClient()


def test_check_ip(http, abuseipdb):
    http.respond('/check', {'data': {
        'ipAddress': '185.220.101.42', 'abuseConfidencePercentage': 87, 'countryCode': 'DE',
        'usageType': 'Data Center', 'totalReports': 412, 'lastReportedAt': '2024-10-31T10:00:00+00:00',
    }})

    result = abuseipdb.check_ip('185.220.101.42')

    call = http.calls[0]
    assert call['url'] == 'https://api.abuseipdb.com/api/v2/check'
    assert call['headers']['Key'] == 'abuse-key'
    assert call['params']['ipAddress'] == '185.220.101.42'
    assert call['params']['maxAgeInDays'] == 90
    assert result['abuse_confidence'] == 87
    assert result['is_malicious'] is True
    assert result['total_reports'] == 412


def test_low_confidence_is_not_malicious(http, abuseipdb):
    http.respond('/check', {'data': {'abuseConfidencePercentage': 25}})
    assert abuseipdb.check_ip('1.1.1.1')['is_malicious'] is False


def test_check_ip_without_key_or_on_error(http, abuseipdb):
    assert AbuseIPDBClient(api_key='').check_ip('1.1.1.1') is None
    assert http.calls == []
    http.respond('/check', {'errors': [{'detail': 'rate limited'}]}, status_code=429)
    assert abuseipdb.check_ip('1.1.1.1') is None


def test_blacklist_fallback_without_key(http):
    assert AbuseIPDBClient().get_blacklist() == FALLBACK_BLACKLIST
    assert http.calls == []


def test_blacklist(http, abuseipdb):
    http.respond('/blacklist', {'data': [
        {'ipAddress': '1.2.3.4', 'abuseConfidencePercentage': 100, 'lastReportedAt': '2024-10-31'},
        {'ipAddress': '5.6.7.8', 'abuseConfidencePercentage': 75, 'lastReportedAt': '2024-10-30'},
    ]})

    threats = abuseipdb.get_blacklist(limit=5)

    assert http.calls[0]['params']['limit'] == 5
    assert threats[0]['name'] == 'Malicious IP: 1.2.3.4'
    assert threats[0]['severity'] == 'high'
    assert threats[1]['severity'] == 'medium'
    assert threats[1]['description'] == 'IP with 75% abuse confidence'


def test_second_key_is_used(http, monkeypatch):
    monkeypatch.setenv('ABUSEIPDB_API_KEY_2', 'backup-key')
    http.respond('/check', {'data': {'abuseConfidencePercentage': 0}})

    AbuseIPDBClient().check_ip('9.9.9.9')

    assert http.calls[0]['headers']['Key'] == 'backup-key'
