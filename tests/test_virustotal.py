import pytest

from cyber_vault.clients.virustotal import FALLBACK_CVES, FALLBACK_THREATS, VirusTotalClient
from cyber_vault.errors import APIError

SHA256 = 'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'


@pytest.fixture
def virustotal(monkeypatch):
    monkeypatch.setenv('VIRUSTOTAL_API_KEY', 'vt-key')
    return VirusTotalClient()


def analysis(malicious=0, suspicious=0, harmless=70, undetected=10, **attributes):
    attributes['last_analysis_stats'] = {
        'malicious': malicious, 'suspicious': suspicious, 'harmless': harmless, 'undetected': undetected,
    }
    return {'data': {'attributes': attributes}}


def test_lookup_ip_uses_header_auth(http, virustotal):
    http.respond('/ip_addresses/8.8.8.8', analysis(reputation=5, last_analysis_date=1700000000))

    result = virustotal.lookup('8.8.8.8')

    call = http.calls[0]
    assert call['url'] == 'https://www.virustotal.com/api/v3/ip_addresses/8.8.8.8'
    assert call['headers']['x-apikey'] == 'vt-key'
    assert 'x-apikey' not in call['params']
    assert result['type'] == 'ip'
    assert result['total'] == 80
    assert result['risk'] == 'low'
    assert result['reputation'] == 5
    assert result['permalink'] == 'https://www.virustotal.com/gui/ip-address/8.8.8.8'


def test_lookup_routes_hashes_and_domains(http, virustotal):
    http.respond('/files/', analysis(malicious=40))
    http.respond('/domains/', analysis(suspicious=2))

    file_result = virustotal.lookup(SHA256)
    domain_result = virustotal.lookup('example.com')

    assert file_result['risk'] == 'critical'
    assert file_result['permalink'].endswith(f"/gui/file/{SHA256}")
    assert domain_result['risk'] == 'high'
    assert domain_result['type'] == 'domain'


def test_lookup_not_found_returns_none(http, virustotal):
    http.respond('/ip_addresses/', {'error': {'code': 'NotFoundError', 'message': 'not found'}}, status_code=404)
    assert virustotal.lookup('10.0.0.1') is None


def test_lookup_other_errors_propagate(http, virustotal):
    http.respond('/ip_addresses/', {'error': {'message': 'Quota exceeded'}}, status_code=429)
    with pytest.raises(APIError) as excinfo:
        virustotal.lookup('1.1.1.1')
    assert excinfo.value.status == 429


def test_recent_threats_fallback_without_key(http):
    assert VirusTotalClient().get_recent_threats() == FALLBACK_THREATS
    assert http.calls == []


def test_recent_threats(http, virustotal):
    http.respond('/intelligence/search', {'data': [
        {'id': 'abc', 'attributes': {
            'meaningful_name': 'a_very_long_and_unreadable_sample_name.exe',
            'last_analysis_stats': {'malicious': 35, 'undetected': 15},
        }},
        {'id': 'def', 'attributes': {
            'meaningful_name': 'dropper.dll',
            'last_analysis_stats': {'malicious': 5, 'undetected': 45},
        }},
    ]})

    threats = virustotal.get_recent_threats()

    assert threats[0]['name'] == 'Phantom Malware'
    assert threats[0]['severity'] == 'high'
    assert threats[0]['detectionRatio'] == '35/50'
    assert threats[1]['name'] == 'dropper.dll'
    assert threats[1]['severity'] == 'low'
    assert threats[1]['emoji'] == '🧙‍♀️'


def test_recent_threats_empty_result_uses_fallback(http, virustotal):
    http.respond('/intelligence/search', {'data': []})
    assert virustotal.get_recent_threats() == FALLBACK_THREATS


def test_recent_cves(http, virustotal):
    http.respond('/intelligence/search', {'data': [
        {'attributes': {'names': ['exploit-cve-2024-3094.bin'],
                        'last_analysis_stats': {'malicious': 45, 'undetected': 5}}},
        {'attributes': {'names': ['sample.bin'],
                        'last_analysis_stats': {'malicious': 0, 'undetected': 50}}},
    ]})

    cves = virustotal.get_recent_cves()

    assert cves[0]['id'] == 'CVE-2024-3094'
    assert cves[0]['severity'] == 'critical'
    assert cves[0]['cvss'] == 9.5
    assert cves[0]['status'] == 'investigating'
    assert cves[1]['id'] == 'CVE-2024-00002'
    assert cves[1]['status'] == 'monitoring'
    assert cves[1]['cvss'] == 2.5


def test_recent_cves_fallback_on_error(http, virustotal):
    http.respond('/intelligence/search', {'error': {'message': 'Forbidden'}}, status_code=403)
    assert virustotal.get_recent_cves() == FALLBACK_CVES


def test_estimate_cvss_bands():
    assert VirusTotalClient.estimate_cvss(0, 0) == 0.0
    assert VirusTotalClient.estimate_cvss(80, 100) == 9.5
    assert VirusTotalClient.estimate_cvss(60, 100) == 8.0
    assert VirusTotalClient.estimate_cvss(30, 100) == 5.5
    assert VirusTotalClient.estimate_cvss(29, 100) == 2.5


def test_extract_cve_id():
    assert VirusTotalClient.extract_cve_id(['foo', 'bar_cve-2021-44228_poc']) == 'CVE-2021-44228'
    assert VirusTotalClient.extract_cve_id([]) is None
