import pytest
import requests

from cyber_vault.clients.geolocation import IP_API_FIELDS, GeoLocationClient, is_public_ip
from cyber_vault.errors import InvalidInputError

IP_API_RESPONSE = {
    'status': 'success',
    'country': 'United States',
    'countryCode': 'US',
    'region': 'VA',
    'city': 'Ashburn',
    'lat': 39.03,
    'lon': -77.5,
    'timezone': 'America/New_York',
    'org': 'Google Public DNS',
    'as': 'AS15169 Google LLC',
    'isp': 'Google LLC',
    'query': '8.8.8.8',
}


def test_is_public_ip():
    assert is_public_ip('8.8.8.8')
    assert is_public_ip('2606:4700:4700::1111')
    assert not is_public_ip('192.168.1.10')
    assert not is_public_ip('10.0.0.1')
    assert not is_public_ip('127.0.0.1')
    assert not is_public_ip('fe80::1')


def test_keyless_lookup_uses_ip_api(http):
    http.respond('ip-api.com/json/8.8.8.8', IP_API_RESPONSE)
    client = GeoLocationClient()

    location = client.lookup('8.8.8.8')

    call = http.calls[0]
    assert call['url'] == 'http://ip-api.com/json/8.8.8.8'
    assert call['params'] == {'fields': IP_API_FIELDS}
    assert client.provider == 'ip-api'
    assert location['country'] == 'United States'
    assert location['country_code'] == 'US'
    assert (location['lat'], location['lon']) == (39.03, -77.5)
    assert location['isp'] == 'Google LLC'
    assert location['provider'] == 'ip-api'


def test_ip_api_failure_status_returns_none(http):
    http.respond('ip-api.com', {'status': 'fail', 'message': 'reserved range', 'query': '100.64.0.1'})
    assert GeoLocationClient().lookup('9.9.9.9') is None


def test_token_lookup_uses_ipinfo(http, monkeypatch):
    monkeypatch.setenv('IPINFO_API_KEY', 'ipinfo-token')
    http.respond('ipinfo.io/1.1.1.1', {
        'ip': '1.1.1.1', 'city': 'Brisbane', 'region': 'Queensland', 'country': 'AU',
        'loc': '-27.4816,153.0175', 'org': 'AS13335 Cloudflare, Inc.', 'timezone': 'Australia/Brisbane',
    })
    client = GeoLocationClient()

    location = client.lookup('1.1.1.1')

    call = http.calls[0]
    assert call['url'] == 'https://ipinfo.io/1.1.1.1'
    assert call['params'] == {'token': 'ipinfo-token'}
    assert client.provider == 'ipinfo'
    assert location['country'] == 'AU'
    assert location['country_code'] == 'AU'
    assert (location['lat'], location['lon']) == (-27.4816, 153.0175)
    assert location['as'] == 'AS13335 Cloudflare, Inc.'


def test_ipinfo_bogon_returns_none(http, monkeypatch):
    monkeypatch.setenv('IPINFO_API_KEY', 'ipinfo-token')
    http.respond('ipinfo.io', {'ip': '9.9.9.9', 'bogon': True})
    assert GeoLocationClient().lookup('9.9.9.9') is None


def test_ipinfo_bad_loc_defaults_to_zero(http, monkeypatch):
    monkeypatch.setenv('IPINFO_API_KEY', 'ipinfo-token')
    http.respond('ipinfo.io', {'ip': '9.9.9.9', 'country': 'CH', 'loc': 'nowhere'})
    location = GeoLocationClient().lookup('9.9.9.9')
    assert (location['lat'], location['lon']) == (0.0, 0.0)


def test_private_address_skips_request(http):
    assert GeoLocationClient().lookup('192.168.0.5') is None
    assert http.calls == []


def test_invalid_address_raises(http):
    with pytest.raises(InvalidInputError):
        GeoLocationClient().lookup('not-an-ip')


def test_upstream_failure_returns_none(http):
    http.fail('ip-api.com', requests.exceptions.ConnectionError('refused'))
    assert GeoLocationClient().lookup('8.8.4.4') is None


def test_lookups_are_cached(http):
    http.respond('ip-api.com', IP_API_RESPONSE)
    client = GeoLocationClient()

    client.lookup('8.8.8.8')
    client.lookup(' 8.8.8.8 ')

    assert len(http.calls) == 1
