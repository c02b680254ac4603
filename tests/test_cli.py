from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

import cli
from cyber_vault.errors import APIError


@pytest.fixture
def output():
    console = Console(record=True, width=200)
    with patch.object(cli, 'console', console):
        yield console


@pytest.fixture
def vault(database_url):
    instance = cli.CyberVaultCLI(database_url)
    yield instance
    instance.close()


def test_parser():
    parser = cli.build_parser()

    args = parser.parse_args(['history', '--hours', '6', '--high-risk'])
    assert args.command == 'history'
    assert args.hours == 6
    assert args.high_risk is True

    args = parser.parse_args(['dorks', '--engine', 'yandex'])
    assert args.engine == 'yandex'

    with pytest.raises(SystemExit):
        parser.parse_args(['dorks', '--engine', 'bing'])


def test_lookup_dispatch(vault):
    with patch.object(vault, 'lookup_ip') as lookup_ip, \
            patch.object(vault, 'lookup_hash') as lookup_hash, \
            patch.object(vault, 'lookup_domain') as lookup_domain:
        vault.lookup('8.8.8.8')
        vault.lookup('d41d8cd98f00b204e9800998ecf8427e')
        vault.lookup('example.com')

    lookup_ip.assert_called_once_with('8.8.8.8')
    lookup_hash.assert_called_once_with('d41d8cd98f00b204e9800998ecf8427e')
    lookup_domain.assert_called_once_with('example.com')


def test_lookup_ip_records_history(vault, output, http):
    vault.lookup_ip('8.8.8.8')

    text = output.export_text()
    assert 'Threat Intelligence' in text
    assert 'no data' in text
    assert [entry.indicator for entry in vault.data_manager.get_recent_lookups()] == ['8.8.8.8']


def test_lookup_hash_requires_key(vault, output):
    vault.lookup_hash('d41d8cd98f00b204e9800998ecf8427e')
    assert 'VirusTotal API key is required' in output.export_text()


def test_lookup_hash_records_score(vault, output, http, monkeypatch):
    monkeypatch.setenv('VIRUSTOTAL_API_KEY', 'vt-key')
    http.respond('/files/', {'data': {'attributes': {
        'last_analysis_stats': {'malicious': 0, 'suspicious': 3, 'harmless': 10, 'undetected': 50},
        'reputation': -5,
    }}})

    vault.lookup_hash('d41d8cd98f00b204e9800998ecf8427e')

    entry = vault.data_manager.get_recent_lookups()[0]
    assert entry.indicator_type == 'hash'
    assert entry.risk_score == 60
    assert entry.threat_level == 'high'


def test_show_status(vault, output):
    vault.show_status()
    text = output.export_text()
    assert 'API Configuration' in text
    assert '0/12 services configured' in text


def test_show_dorks(vault, output):
    vault.show_dorks('halloween')
    text = output.export_text()
    assert 'Phantom FTP Servers' in text
    assert 'authorized' in text


def test_show_history(vault, output):
    vault.data_manager.record_lookup('evil.example', 'domain', 85, 'critical', ['whois'])
    vault.data_manager.record_lookup('good.example', 'domain', 5, 'low', ['whois'])

    vault.show_history(high_risk=True)

    text = output.export_text()
    assert 'evil.example' in text
    assert 'good.example' not in text
    assert 'Total lookups: 2' in text


def test_main_without_command_prints_help(capsys):
    with patch('cli.CyberVaultCLI') as mock_cli:
        cli.main([])
    mock_cli.assert_not_called()
    assert 'usage' in capsys.readouterr().out


def test_main_runs_command_and_closes(output):
    with patch('cli.CyberVaultCLI') as mock_cli:
        cli.main(['cves', '--keyword', 'openssl', '--days', '3'])

    instance = mock_cli.return_value
    instance.show_cves.assert_called_once_with('openssl', 3)
    instance.close.assert_called_once()


def test_main_reports_api_errors(output):
    with patch('cli.CyberVaultCLI') as mock_cli:
        mock_cli.return_value.search.side_effect = APIError('Rate limit exceeded. Please try again later.', status=429)
        cli.main(['search', 'log4j'])

    assert 'Error: Rate limit exceeded' in output.export_text()
    mock_cli.return_value.close.assert_called_once()


def test_main_serve(output):
    with patch('cli.serve') as mock_serve, patch('cli.CyberVaultCLI') as mock_cli:
        cli.main(['serve', '--port', '8080'])

    mock_serve.assert_called_once_with('127.0.0.1', 8080, False)
    mock_cli.assert_not_called()
