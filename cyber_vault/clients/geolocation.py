import ipaddress
import logging
from typing import Dict, Optional, Any

from cyber_vault.clients.base import BaseClient
from cyber_vault.errors import APIError, InvalidInputError
from cyber_vault.utils.security import InputValidator

logger = logging.getLogger(__name__)

IP_API_URL = 'http://ip-api.com/json'
IP_API_FIELDS = 'status,message,country,countryCode,region,city,lat,lon,timezone,org,as,isp,query'


def is_public_ip(ip: str) -> bool:
    """False for private, loopback, link-local and other non-routable addresses"""
    return ipaddress.ip_address(ip).is_global


class GeoLocationClient(BaseClient):
    """
    IP geolocation through IPinfo when a token is configured, otherwise the keyless ip-api.com.
    Lookups never raise for upstream failures; they return None instead.
    """

    service = 'IPINFO'
    auth_param = 'token'
    requires_key = False

    @property
    def provider(self) -> str:
        return 'ipinfo' if self.api_key else 'ip-api'

    def lookup(self, ip: str) -> Optional[Dict[str, Any]]:
        """
        Locate an IP address
        :param ip: IPv4 or IPv6 address
        :return: Location dict, or None for private addresses and failed lookups
        """
        ip = InputValidator.sanitize_input(ip)
        if not InputValidator.validate_ip(ip):
            raise InvalidInputError('ip', 'not a valid IP address')
        if not is_public_ip(ip):
            logger.debug(f"Skipping geolocation for non-public address {ip}")
            return None

        try:
            if self.api_key:
                return self._lookup_ipinfo(ip)
            return self._lookup_ip_api(ip)
        except APIError as e:
            self._log_failure(f"geolocation for {ip}", e)
            return None

    def _lookup_ipinfo(self, ip: str) -> Optional[Dict[str, Any]]:
        data = self._request(f"/{ip}", cache_key=f"ipinfo:{ip}")
        if data.get('bogon'):
            return None

        try:
            lat, lon = (float(part) for part in (data.get('loc') or '0,0').split(','))
        except ValueError:
            lat, lon = 0.0, 0.0

        # IPinfo only reports the two-letter country code
        return {
            'ip': data.get('ip', ip),
            'country': data.get('country') or 'Unknown',
            'country_code': data.get('country') or 'XX',
            'region': data.get('region') or '',
            'city': data.get('city') or 'Unknown',
            'lat': lat,
            'lon': lon,
            'timezone': data.get('timezone') or '',
            'org': data.get('org') or '',
            'as': data.get('org') or '',
            'isp': None,
            'provider': 'ipinfo',
        }

    def _lookup_ip_api(self, ip: str) -> Optional[Dict[str, Any]]:
        data = self._request(f"/{ip}", params={'fields': IP_API_FIELDS}, cache_key=f"ip-api:{ip}",
                             base_url=IP_API_URL)
        if data.get('status') != 'success':
            logger.info(f"ip-api.com could not locate {ip}: {data.get('message', 'unknown reason')}")
            return None

        return {
            'ip': data.get('query', ip),
            'country': data.get('country') or 'Unknown',
            'country_code': data.get('countryCode') or 'XX',
            'region': data.get('region') or '',
            'city': data.get('city') or 'Unknown',
            'lat': data.get('lat') or 0.0,
            'lon': data.get('lon') or 0.0,
            'timezone': data.get('timezone') or '',
            'org': data.get('org') or '',
            'as': data.get('as') or '',
            'isp': data.get('isp'),
            'provider': 'ip-api',
        }
