from unittest.mock import MagicMock

import pytest

from cyber_vault.errors import APIError
from cyber_vault.unified_search import NOT_CONFIGURED, SOURCES, UnifiedSearch


@pytest.fixture
def clients():
    mocks = {name: MagicMock() for name in ('shodan', 'virustotal', 'greynoise', 'otx', 'nvd', 'google', 'yandex')}
    for mock in mocks.values():
        mock.is_configured = True
    mocks['otx'].indicator_type.return_value = 'IPv4'
    mocks['nvd'].search.return_value = []
    mocks['yandex'].search.return_value = []
    mocks['google'].search.return_value = {}
    mocks['greynoise'].get_ip_context.return_value = {}
    mocks['shodan'].search.return_value = {'matches': []}
    mocks['otx'].get_indicator.return_value = {}
    mocks['virustotal'].lookup.return_value = None
    return mocks


def by_source(envelopes):
    return {envelope['source']: envelope for envelope in envelopes}


def test_envelopes_follow_source_order(clients):
    envelopes = UnifiedSearch(**clients).search('8.8.8.8')

    assert [envelope['source'] for envelope in envelopes] == SOURCES
    assert all(envelope['status'] == 'success' for envelope in envelopes)


def test_unconfigured_sources_report_errors(clients):
    for name in ('shodan', 'virustotal', 'greynoise', 'otx', 'google', 'yandex'):
        clients[name].is_configured = False

    envelopes = by_source(UnifiedSearch(**clients).search('log4j'))

    assert envelopes['Shodan'] == {'source': 'Shodan', 'data': [], 'status': 'error', 'error': NOT_CONFIGURED}
    assert envelopes['Google Dorking']['error'] == 'API key or Search Engine ID not configured'
    assert envelopes['NVD CVE']['status'] == 'success'
    clients['shodan'].search.assert_not_called()


def test_failed_source_does_not_sink_the_rest(clients):
    clients['shodan'].search.side_effect = APIError('Invalid API key', status=401)
    clients['nvd'].search.side_effect = RuntimeError('socket closed')
    clients['otx'].get_indicator.return_value = {'pulse_info': {'count': 4, 'references': ['r']}}

    envelopes = by_source(UnifiedSearch(**clients).search('8.8.8.8'))

    assert envelopes['Shodan']['status'] == 'error'
    assert envelopes['Shodan']['error'] == 'Invalid API key'
    assert envelopes['NVD CVE']['error'] == 'socket closed'
    otx = envelopes['AlienVault OTX']['data'][0]
    assert otx['description'] == 'Found in 4 threat intelligence pulse(s)'
    assert otx['risk'] == 'high'
    assert otx['url'] == 'https://otx.alienvault.com/indicator/ipv4/8.8.8.8'


def test_shodan_items(clients):
    clients['shodan'].search.return_value = {'matches': [
        {'ip_str': '1.2.3.4', 'port': 22, 'data': 'x' * 250, 'location': {'country_name': 'US'}},
    ]}

    item = UnifiedSearch(**clients).search_shodan('ssh')['data'][0]

    assert item['title'] == '1.2.3.4:22'
    assert item['url'] == 'https://www.shodan.io/host/1.2.3.4'
    assert item['description'] == 'x' * 200 + '...'
    assert item['risk'] == 'medium'


def test_virustotal_item(clients):
    clients['virustotal'].lookup.return_value = {
        'total': 90, 'malicious': 5, 'suspicious': 1, 'harmless': 60, 'undetected': 24,
        'last_analysis_date': 1700000000, 'risk': 'critical', 'permalink': 'https://www.virustotal.com/gui/domain/x.com',
    }

    envelope = UnifiedSearch(**clients).search_virustotal('x.com')

    item = envelope['data'][0]
    assert item['description'] == 'Scanned by 90 engines. 5 flagged as malicious, 1 as suspicious.'
    assert item['risk'] == 'critical'


def test_greynoise_only_searches_ipv4(clients):
    search = UnifiedSearch(**clients)

    assert search.search_greynoise('example.com') == {'source': 'GreyNoise', 'data': [], 'status': 'success'}
    clients['greynoise'].get_ip_context.assert_not_called()

    clients['greynoise'].get_ip_context.side_effect = APIError('not found', status=404)
    assert search.search_greynoise('1.1.1.1')['data'] == []

    clients['greynoise'].get_ip_context.side_effect = None
    clients['greynoise'].get_ip_context.return_value = {
        'ip': '1.1.1.1', 'classification': 'malicious', 'tags': ['Mirai'], 'metadata': {'country': 'CN'},
    }
    item = search.search_greynoise('1.1.1.1')['data'][0]
    assert item['risk'] == 'critical'
    assert item['description'] == 'malicious IP - Mirai'
    assert item['metadata']['country'] == 'CN'


def test_nvd_items(clients):
    clients['nvd'].search.return_value = [{'cve': {
        'id': 'CVE-2021-44228',
        'descriptions': [{'lang': 'en', 'value': 'Log4j JNDI lookup'}],
        'metrics': {'cvssMetricV31': [{'cvssData': {'baseScore': 10.0}}]},
        'references': [{'url': 'https://logging.apache.org'}],
    }}]

    item = UnifiedSearch(**clients).search_nvd('log4j')['data'][0]

    assert item['title'] == 'CVE-2021-44228'
    assert item['url'] == 'https://nvd.nist.gov/vuln/detail/CVE-2021-44228'
    assert item['risk'] == 'critical'
    assert item['metadata']['references'] == ['https://logging.apache.org']


def test_dork_risk_from_url(clients):
    clients['google'].search.return_value = {'items': [
        {'title': 'Admin', 'link': 'https://site.example/admin/'},
        {'title': 'Blog', 'link': 'https://site.example/blog/'},
    ]}
    clients['yandex'].search.return_value = [{'title': 'Login', 'url': 'https://a.example/login', 'domain': 'a.example'}]
    search = UnifiedSearch(**clients)

    google_items = search.search_google('site.example')['data']
    yandex_items = search.search_yandex('a.example')['data']

    assert [item['risk'] for item in google_items] == ['medium', 'low']
    assert 'inurl:admin' in clients['google'].search.call_args[0][0]
    assert yandex_items[0]['risk'] == 'medium'
    assert yandex_items[0]['metadata'] == {'domain': 'a.example'}
