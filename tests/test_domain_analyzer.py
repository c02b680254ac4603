from datetime import datetime
from unittest.mock import MagicMock, patch

import dns.exception
import dns.resolver
import pytest

from cyber_vault.analyzers.domain_analyzer import DomainAnalyzer, demo_timeline, format_wayback_date
from cyber_vault.errors import InvalidInputError

NOW = datetime(2024, 10, 31, 12, 0, 0)


def make_resolver(answers=None, errors=None):
    answers = answers or {}
    errors = errors or {}

    def resolve(domain, record_type):
        if record_type in errors:
            raise errors[record_type]
        return answers.get(record_type, [])

    resolver = MagicMock()
    resolver.resolve.side_effect = resolve
    return resolver


@pytest.fixture
def analyzer():
    return DomainAnalyzer(resolver=make_resolver({'A': ['93.184.216.34']}), limiter=MagicMock(), whoisxml_key='')


def test_clean_domain():
    assert DomainAnalyzer.clean_domain('https://www.Example.com/login?x=1') == 'example.com'
    assert DomainAnalyzer.clean_domain('mail.example.co.uk') == 'example.co.uk'
    with pytest.raises(InvalidInputError):
        DomainAnalyzer.clean_domain('localhost')


def test_dns_records_map_failures():
    resolver = make_resolver(
        answers={'A': ['1.2.3.4'], 'TXT': ['"v=spf1 -all"']},
        errors={
            'AAAA': dns.resolver.NoAnswer(),
            'MX': dns.exception.Timeout(),
            'NS': dns.exception.DNSException('SERVFAIL'),
        },
    )

    records = DomainAnalyzer(resolver=resolver, limiter=MagicMock(), whoisxml_key='').get_dns_records('example.com')

    assert records == {'A': ['1.2.3.4'], 'AAAA': [], 'MX': ['Timeout'], 'NS': [], 'TXT': ['"v=spf1 -all"']}


def test_dns_nxdomain():
    resolver = make_resolver(errors={t: dns.resolver.NXDOMAIN() for t in ('A', 'AAAA', 'MX', 'NS', 'TXT')})
    records = DomainAnalyzer(resolver=resolver, limiter=MagicMock(), whoisxml_key='').get_dns_records('nope.com')
    assert records['A'] == ['Domain not found']


@patch('cyber_vault.analyzers.domain_analyzer.whois.whois')
def test_whois_info(mock_whois, analyzer):
    mock_whois.return_value = {
        'domain_name': ['EXAMPLE.COM', 'example.com'],
        'registrar': 'RESERVED-Internet Assigned Numbers Authority',
        'creation_date': [datetime(1995, 8, 14, 4, 0), datetime(1995, 8, 14, 4, 0)],
        'expiration_date': datetime(2025, 8, 13, 4, 0),
        'name_servers': ['A.IANA-SERVERS.NET', 'a.iana-servers.net', 'B.IANA-SERVERS.NET'],
        'status': 'clientDeleteProhibited',
    }

    info = analyzer.get_whois_info('example.com')

    assert info == {
        'domain': 'example.com',
        'registrar': 'RESERVED-Internet Assigned Numbers Authority',
        'creation_date': '1995-08-14T04:00:00',
        'expiration_date': '2025-08-13T04:00:00',
        'nameservers': ['a.iana-servers.net', 'b.iana-servers.net'],
        'status': ['clientdeleteprohibited'],
    }
    analyzer.limiter.wait.assert_called_once()


@patch('cyber_vault.analyzers.domain_analyzer.whois.whois')
def test_whois_falls_back_to_demo(mock_whois, analyzer):
    mock_whois.side_effect = ConnectionResetError('whois server hung up')
    assert analyzer.get_whois_info('example.com')['demo'] is True

    mock_whois.side_effect = None
    mock_whois.return_value = {'domain_name': None}
    info = analyzer.get_whois_info('example.com')
    assert info['demo'] is True
    assert info['registrar'] == 'Demo Registrar Inc.'


def test_whoisxml_used_when_key_set(http):
    http.respond('whoisxmlapi.com', {'WhoisRecord': {
        'domainName': 'example.com',
        'registrarName': 'Example Registrar',
        'createdDate': '2024-10-20T00:00:00Z',
        'nameServers': {'hostNames': ['ns1.example.com']},
        'status': 'clientTransferProhibited serverHold',
    }})
    analyzer = DomainAnalyzer(resolver=make_resolver(), limiter=MagicMock(), whoisxml_key='wx-key')

    info = analyzer.get_whois_info('example.com')

    assert http.calls[0]['params']['apiKey'] == 'wx-key'
    assert info['registrar'] == 'Example Registrar'
    assert info['expiration_date'] == 'Unknown'
    assert info['nameservers'] == ['ns1.example.com']
    assert info['status'] == ['clientTransferProhibited', 'serverHold']


def test_wayback_timeline(http, analyzer):
    http.respond('web.archive.org', [
        ['timestamp', 'original', 'statuscode'],
        ['20240101120000', 'http://example.com/', '200'],
        ['2023', 'http://example.com/old'],
        ['20230615080000', 'https://example.com/', '301'],
    ])

    timeline = analyzer.get_wayback_timeline('example.com', limit=5)

    params = http.calls[0]['params']
    assert params['output'] == 'json'
    assert params['limit'] == 5
    assert timeline == [
        {'timestamp': '20240101120000', 'url': 'http://example.com/', 'status': '200', 'date': '2024-01-01 12:00'},
        {'timestamp': '20230615080000', 'url': 'https://example.com/', 'status': '301', 'date': '2023-06-15 08:00'},
    ]


def test_wayback_falls_back_to_demo_timeline(http, analyzer):
    http.respond('web.archive.org', {'message': 'Service Unavailable'}, status_code=503)
    assert analyzer.get_wayback_timeline('example.com') == demo_timeline('example.com')


def test_format_wayback_date():
    assert format_wayback_date('20240101120000') == '2024-01-01 12:00'
    assert format_wayback_date('2024') == 'Unknown'
    assert format_wayback_date('') == 'Unknown'


def test_search_domains():
    assert DomainAnalyzer.search_domains('Acme Corp') == [
        'acmecorp.com', 'acmecorp.net', 'acmecorp.org', 'www.acmecorp.com', 'shop.acmecorp.com',
    ]
    assert DomainAnalyzer.search_domains('  ') == []


def test_risk_score():
    fresh = {
        'dns_records': {'A': [], 'TXT': ['known phishing kit', 'v=spf1 -all']},
        'whois_info': {'creation_date': '2024-10-20T00:00:00Z'},
    }
    assert DomainAnalyzer.calculate_risk_score(fresh, NOW) == 75

    established = {
        'dns_records': {'A': ['1.2.3.4'], 'TXT': []},
        'whois_info': {'creation_date': '1995-08-14T04:00:00'},
    }
    assert DomainAnalyzer.calculate_risk_score(established, NOW) == 0

    demo = {'dns_records': {'A': ['Domain not found']}, 'whois_info': {'creation_date': '2024-10-30', 'demo': True}}
    assert DomainAnalyzer.calculate_risk_score(demo, NOW) == 20


@patch('cyber_vault.analyzers.domain_analyzer.whois.whois')
def test_analyze_domain_records_lookup(mock_whois, http, analyzer):
    mock_whois.return_value = {'domain_name': 'example.com', 'creation_date': datetime(1995, 8, 14)}
    http.respond('web.archive.org', [['timestamp', 'original', 'statuscode']])
    data_manager = MagicMock()

    analysis = analyzer.analyze_domain('https://www.example.com', data_manager=data_manager)

    assert analysis['domain'] == 'example.com'
    assert analysis['dns_records']['A'] == ['93.184.216.34']
    assert analysis['wayback'] == []
    assert analysis['risk_score'] == 0
    data_manager.record_lookup.assert_called_once_with('example.com', 'domain', 0, 'low', ['whois', 'dns', 'wayback'])
