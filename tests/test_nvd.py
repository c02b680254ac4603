from datetime import datetime

from cyber_vault.clients.nvd import FALLBACK_STATS, FALLBACK_VULNERABILITIES, NVDClient

NOW = datetime(2024, 10, 31, 12, 0, 0)


def make_cve(cve_id='CVE-2024-1234', score=9.8, description='Remote code execution in Apache HTTP Server. More.',
             published='2024-10-30T10:00:00.000', version='cvssMetricV31', criteria=None):
    cve = {
        'id': cve_id,
        'published': published,
        'descriptions': [{'lang': 'es', 'value': 'Otra'}, {'lang': 'en', 'value': description}],
        'metrics': {version: [{'cvssData': {'baseScore': score}}]} if score is not None else {},
    }
    if criteria:
        cve['configurations'] = [{'nodes': [{'cpeMatch': [{'criteria': c} for c in criteria]}]}]
    return {'cve': cve}


def test_works_without_key(http):
    http.respond('services.nvd.nist.gov', {'vulnerabilities': [make_cve()]})

    vulns = NVDClient().get_recent_vulnerabilities(now=NOW)

    assert len(vulns) == 1
    call = http.calls[0]
    assert 'apiKey' not in call['headers']
    assert call['params']['pubStartDate'] == '2024-10-24T00:00:00.000'
    assert call['params']['pubEndDate'] == '2024-10-31T23:59:59.999'
    assert call['params']['resultsPerPage'] == 20


def test_key_sent_as_header_when_present(http, monkeypatch):
    monkeypatch.setenv('NVD_API_KEY', 'nvd-key')
    http.respond('services.nvd.nist.gov', {'vulnerabilities': []})

    NVDClient().search('openssl')

    call = http.calls[0]
    assert call['headers']['apiKey'] == 'nvd-key'
    assert call['params']['keywordSearch'] == 'openssl'


def test_summarize():
    vuln = make_cve(criteria=['cpe:2.3:a:apache:http_server:2.4.58:*:*:*:*:*:*:*',
                              'cpe:2.3:a:apache:http_server:2.4.59:*:*:*:*:*:*:*',
                              'bogus'])

    summary = NVDClient.summarize(vuln, NOW)

    assert summary['id'] == 'CVE-2024-1234'
    assert summary['title'] == 'Remote code execution in Apache HTTP Server'
    assert summary['severity'] == 'critical'
    assert summary['cvss'] == 9.8
    assert summary['affected'] == 'Apache web servers'
    assert summary['products'] == ['apache/http_server']
    assert summary['emoji'] == '🚨'
    assert summary['published'] == 'Yesterday'


def test_cvss_prefers_newest_version():
    vuln = make_cve(score=5.0, version='cvssMetricV2')
    vuln['cve']['metrics']['cvssMetricV31'] = [{'cvssData': {'baseScore': 7.2}}]
    assert NVDClient.cvss_score(vuln) == 7.2
    assert NVDClient.cvss_score(make_cve(score=None)) == 0.0


def test_severity_bands():
    assert NVDClient.severity_from_cvss(9.0) == 'critical'
    assert NVDClient.severity_from_cvss(7.0) == 'high'
    assert NVDClient.severity_from_cvss(4.0) == 'medium'
    assert NVDClient.severity_from_cvss(3.9) == 'low'


def test_long_titles_are_truncated():
    description = ' '.join(['word'] * 30)
    title = NVDClient.extract_title(make_cve(description=description))
    assert title == ' '.join(['word'] * 10) + '...'


def test_format_published():
    assert NVDClient.format_published('2024-10-31T08:00:00', NOW) == 'Today'
    assert NVDClient.format_published('2024-10-27T12:00:00', NOW) == '4 days ago'
    assert NVDClient.format_published('2024-09-01T00:00:00', NOW) == '2024-09-01'
    assert NVDClient.format_published(None, NOW) == 'Unknown'


def test_analysis_falls_back_on_error(http):
    http.respond('services.nvd.nist.gov', {'message': 'Service Unavailable'}, status_code=503)

    assert NVDClient().get_vulnerability_analysis(NOW) == FALLBACK_VULNERABILITIES


def test_vulnerability_stats(http):
    http.respond('services.nvd.nist.gov', {'vulnerabilities': [
        make_cve(score=9.1), make_cve(score=7.5), make_cve(score=7.0), make_cve(score=2.0),
    ]})

    assert NVDClient().get_vulnerability_stats() == {'critical': 1, 'high': 2, 'medium': 0, 'low': 1}


def test_vulnerability_stats_fallback(http):
    http.respond('services.nvd.nist.gov', {'message': 'Forbidden'}, status_code=403)
    assert NVDClient().get_vulnerability_stats() == FALLBACK_STATS
