import logging
from datetime import datetime
from typing import Dict, Optional, Any

from cyber_vault.clients.base import BaseClient

logger = logging.getLogger(__name__)

SPOOKY_QUERIES = [
    {
        'name': 'Phantom Cameras',
        'query': 'device:camera',
        'description': 'Security cameras lurking in the digital shadows',
        'type': 'host',
        'risk': 'Medium',
        'explanation': 'Surveillance cameras that might be watching... watching you back.',
    },
    {
        'name': 'Ghost Databases',
        'query': 'service:mysql',
        'description': 'MySQL databases floating in cyberspace',
        'type': 'host',
        'risk': 'High',
        'explanation': 'Databases that might contain spectral secrets and haunted data.',
    },
    {
        'name': 'Zombie Routers',
        'query': 'device:router',
        'description': 'Undead network devices shambling through the internet',
        'type': 'host',
        'risk': 'Medium',
        'explanation': 'Routers that refuse to die, potentially with default credentials.',
    },
    {
        'name': 'Cursed Web Servers',
        'query': 'app:nginx',
        'description': 'Web servers hosting mysterious content',
        'type': 'web',
        'risk': 'Low',
        'explanation': 'Web servers running Nginx, gateway to digital realms unknown.',
    },
    {
        'name': 'Haunted IoT Devices',
        'query': 'device:iot',
        'description': 'Internet of Things devices with supernatural connectivity',
        'type': 'host',
        'risk': 'High',
        'explanation': 'Smart devices that might be smarter than their owners intended.',
    },
    {
        'name': 'Spectral Printers',
        'query': 'device:printer',
        'description': 'Printers materializing documents from the ether',
        'type': 'host',
        'risk': 'Low',
        'explanation': 'Network printers that might print more than just documents.',
    },
]


def _location(match: Dict[str, Any]) -> Dict[str, Any]:
    geo = match.get('geoinfo') or {}
    coords = geo.get('location') or {}
    return {
        'country': ((geo.get('country') or {}).get('names') or {}).get('en') or 'Unknown',
        'city': ((geo.get('city') or {}).get('names') or {}).get('en') or 'Unknown',
        'latitude': coords.get('latitude'),
        'longitude': coords.get('longitude'),
    }


def _first_ip(value: Any) -> str:
    # Web results list every address the site resolves to
    if isinstance(value, list):
        value = value[0] if value else None
    return value or 'Unknown'


class ZoomEyeClient(BaseClient):
    """ZoomEye host and web search. Failures raise APIError for the caller to report."""

    service = 'ZOOMEYE'
    auth_header = 'API-KEY'

    def _search(self, kind: str, query: str, page: int, facets: Optional[str]) -> Dict[str, Any]:
        params = {'query': query, 'page': page}
        if facets:
            params['facets'] = facets
        return self._request(f"/{kind}/search", params=params, cache_key=f"{kind}:{query}:{page}:{facets}")

    def search_hosts(self, query: str, page: int = 1, facets: Optional[str] = None) -> Dict[str, Any]:
        data = self._search('host', query, page, facets)
        matches = []
        for match in data.get('matches', []) or []:
            portinfo = match.get('portinfo') or {}
            geo = match.get('geoinfo') or {}
            matches.append({
                'ip': match.get('ip') or 'Unknown',
                'port': portinfo.get('port') or 0,
                'protocol': portinfo.get('service') or 'Unknown',
                'banner': portinfo.get('banner') or '',
                'timestamp': match.get('timestamp') or datetime.utcnow().isoformat(),
                'location': _location(match),
                'organization': geo.get('organization') or None,
                'service': portinfo.get('service') or None,
                'version': portinfo.get('version') or None,
            })
        return {
            'total': data.get('total', 0) or 0,
            'available': data.get('available', 0) or 0,
            'matches': matches,
        }

    def search_web(self, query: str, page: int = 1, facets: Optional[str] = None) -> Dict[str, Any]:
        data = self._search('web', query, page, facets)
        matches = []
        for match in data.get('matches', []) or []:
            geo = match.get('geoinfo') or {}
            webapp = match.get('webapp')
            if isinstance(webapp, list):
                webapp = ', '.join(str(app.get('name', app)) if isinstance(app, dict) else str(app) for app in webapp)
            matches.append({
                'ip': _first_ip(match.get('ip')),
                'port': match.get('port') or 80,
                'protocol': 'HTTP',
                'banner': webapp or match.get('title') or '',
                'timestamp': match.get('timestamp') or datetime.utcnow().isoformat(),
                'location': _location(match),
                'organization': geo.get('organization') or None,
                'service': webapp or None,
                'version': match.get('version') or None,
            })
        return {
            'total': data.get('total', 0) or 0,
            'available': data.get('available', 0) or 0,
            'matches': matches,
        }

    def get_user_info(self) -> Dict[str, Any]:
        """Account details and remaining search quota"""
        return self._request('/user')
