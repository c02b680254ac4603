import random
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from cyber_vault.clients.base import BaseClient, parse_timestamp, format_relative
from cyber_vault.errors import APIError

logger = logging.getLogger(__name__)

ASSET_QUERIES = ['apache', 'nginx', 'mysql', 'ssh', 'ftp', 'telnet']

ASSET_TYPES = {
    'apache': 'server',
    'nginx': 'server',
    'mysql': 'database',
    'ssh': 'server',
    'ftp': 'file',
    'telnet': 'network',
}

ASSET_EMOJIS = {
    'apache': '🖥️',
    'nginx': '🖥️',
    'mysql': '🗄️',
    'ssh': '🔒',
    'ftp': '📁',
    'telnet': '🔗',
}

IOT_QUERY = 'product:IoT OR product:camera OR product:router'

FALLBACK_IOT_STATS = {
    'totalDevices': 1234567,
    'vulnerableDevices': 370370,
    'criticalIssues': 61728,
    'countries': 195,
}

FALLBACK_ASSETS = [
    {
        'name': 'Web Server (nginx)',
        'ip': '192.168.1.10',
        'status': 'secure',
        'lastScan': '2 hours ago',
        'vulnerabilities': 0,
        'riskScore': 15,
        'type': 'server',
        'emoji': '🖥️',
    },
    {
        'name': 'Database Server (MySQL)',
        'ip': '192.168.1.20',
        'status': 'warning',
        'lastScan': '1 hour ago',
        'vulnerabilities': 2,
        'riskScore': 45,
        'type': 'database',
        'emoji': '🗄️',
    },
    {
        'name': 'Email Server (Exchange)',
        'ip': '192.168.1.30',
        'status': 'critical',
        'lastScan': '30 min ago',
        'vulnerabilities': 5,
        'riskScore': 85,
        'type': 'email',
        'emoji': '📧',
    },
]


def _vuln_ids(vulns: Any) -> List[str]:
    # Search matches carry a dict keyed by CVE id, host lookups a list
    if not vulns:
        return []
    if isinstance(vulns, dict):
        return sorted(vulns.keys())
    return sorted(vulns)


class ShodanClient(BaseClient):
    """Shodan device search and host lookups"""

    service = 'SHODAN'
    auth_param = 'key'

    def search(self, query: str, limit: int = 100, page: int = 1,
               facets: Optional[str] = None) -> Dict[str, Any]:
        """
        Raw host search. Falls back to demo results when no key is configured.
        :return: {'matches', 'total', 'facets'}
        """
        if not self.api_key:
            return self.generate_demo_results(query, limit)

        params = {'query': query, 'limit': limit, 'page': page}
        if facets:
            params['facets'] = facets
        data = self._request('/shodan/host/search', params=params,
                             cache_key=f"search:{query}:{limit}:{page}:{facets}")
        return {
            'matches': data.get('matches', []),
            'total': data.get('total', 0),
            'facets': data.get('facets', {}),
        }

    def _search_matches(self, query: str, limit: int) -> List[Dict[str, Any]]:
        data = self._request('/shodan/host/search', params={'query': query, 'limit': limit},
                             cache_key=f"matches:{query}:{limit}")
        return data.get('matches', [])

    def search_devices(self, query: str = 'country:US', limit: int = 20) -> List[Dict[str, Any]]:
        """Search for devices and return them normalized, or [] on failure"""
        try:
            return [self.normalize_match(match) for match in self._search_matches(query, limit)]
        except APIError as e:
            self._log_failure('device search', e)
            return []

    @staticmethod
    def normalize_match(match: Dict[str, Any]) -> Dict[str, Any]:
        location = match.get('location') or {}
        return {
            'ip': match.get('ip_str'),
            'port': match.get('port'),
            'product': match.get('product'),
            'version': match.get('version'),
            'banner': (match.get('data') or '')[:200],
            'country': location.get('country_name'),
            'city': location.get('city'),
            'org': match.get('org'),
            'hostnames': match.get('hostnames', []),
            'vulns': _vuln_ids(match.get('vulns')),
            'timestamp': match.get('timestamp'),
        }

    def _host(self, ip: str) -> Dict[str, Any]:
        return self._request(f"/shodan/host/{ip}", cache_key=f"host:{ip}")

    def get_host(self, ip: str) -> Optional[Dict[str, Any]]:
        """Look up a single host, normalized, or None on failure"""
        try:
            data = self._host(ip)
        except APIError as e:
            self._log_failure(f"host lookup for {ip}", e)
            return None

        return {
            'ip': data.get('ip_str', ip),
            'ports': data.get('ports', []),
            'hostnames': data.get('hostnames', []),
            'org': data.get('org'),
            'os': data.get('os'),
            'country': data.get('country_name'),
            'city': data.get('city'),
            'vulns': _vuln_ids(data.get('vulns')),
            'tags': data.get('tags', []),
            'services': [
                {'port': item.get('port'), 'product': item.get('product'), 'version': item.get('version')}
                for item in data.get('data', [])
            ],
        }

    def get_scan_results(self, targets: List[str]) -> List[Dict[str, Any]]:
        """Scan up to three targets, marking unreachable ones offline"""
        results = []
        for target in targets[:3]:
            try:
                data = self._host(target)
            except APIError as e:
                self._log_failure(f"scan of {target}", e)
                results.append({
                    'target': target,
                    'status': 'offline',
                    'services': [],
                    'vulnerabilities': [],
                    'location': None,
                })
                continue

            city = data.get('city')
            country = data.get('country_name')
            results.append({
                'target': target,
                'status': 'online',
                'services': [
                    {
                        'port': item.get('port'),
                        'service': item.get('product') or 'Unknown',
                        'version': item.get('version'),
                    }
                    for item in data.get('data', [])
                ][:5],
                'vulnerabilities': _vuln_ids(data.get('vulns')),
                'location': f"{city}, {country}" if city or country else None,
            })
        return results

    def get_asset_monitoring(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Sample exposed web and database services as monitored assets"""
        assets = []
        try:
            for query in ASSET_QUERIES[:3]:
                for host in self._search_matches(query, 2):
                    assets.append(self.transform_host_to_asset(host, query, now))
        except APIError as e:
            self._log_failure('asset monitoring', e)
            return [dict(asset) for asset in FALLBACK_ASSETS]

        if not assets:
            return [dict(asset) for asset in FALLBACK_ASSETS]
        return assets[:6]

    @classmethod
    def transform_host_to_asset(cls, host: Dict[str, Any], service_type: str,
                                now: Optional[datetime] = None) -> Dict[str, Any]:
        vuln_count = len(_vuln_ids(host.get('vulns')))
        risk_score = cls.calculate_asset_risk(host, vuln_count, now)
        hostnames = host.get('hostnames') or []
        label = service_type.capitalize()
        location = host.get('location') or {}

        return {
            'name': f"{label} ({hostnames[0]})" if hostnames else f"{label} Server",
            'ip': host.get('ip_str'),
            'status': cls.status_from_risk(risk_score),
            'lastScan': format_relative(host.get('timestamp'), now),
            'vulnerabilities': vuln_count,
            'riskScore': risk_score,
            'type': ASSET_TYPES.get(service_type, 'server'),
            'emoji': ASSET_EMOJIS.get(service_type, '🖥️'),
            'location': f"{location.get('city')}, {location.get('country_name')}" if location else None,
            'product': host.get('product'),
        }

    @staticmethod
    def calculate_asset_risk(host: Dict[str, Any], vuln_count: int, now: Optional[datetime] = None) -> int:
        """Score a host 0-100 from vulnerabilities, staleness and banner keywords"""
        score = vuln_count * 15

        seen = parse_timestamp(host.get('timestamp'))
        if seen is not None:
            age_days = ((now or datetime.utcnow()) - seen).total_seconds() / 86400
            if age_days > 30:
                score += 10
            if age_days > 90:
                score += 20

        banner = (host.get('data') or '').lower()
        if 'admin' in banner or 'root' in banner:
            score += 15
        if 'default' in banner or 'password' in banner:
            score += 25

        return min(score, 100)

    @staticmethod
    def status_from_risk(score: int) -> str:
        if score >= 70:
            return 'critical'
        if score >= 40:
            return 'warning'
        return 'secure'

    def get_iot_stats(self) -> Dict[str, int]:
        """Estimate IoT exposure from the total hit count of an IoT query"""
        try:
            data = self._request('/shodan/host/search', params={'query': IOT_QUERY, 'limit': 1},
                                 cache_key='iot-stats')
        except APIError as e:
            self._log_failure('IoT stats', e)
            return dict(FALLBACK_IOT_STATS)

        total = data.get('total', 0) or 0
        return {
            'totalDevices': total,
            'vulnerableDevices': int(total * 0.3),
            'criticalIssues': int(total * 0.05),
            'countries': 50,
        }

    @staticmethod
    def generate_demo_results(query: str, limit: int = 10, rng: Optional[random.Random] = None) -> Dict[str, Any]:
        """Placeholder search results shown when Shodan is not configured"""
        rng = rng or random.Random()
        countries = ['United States', 'Germany', 'Japan', 'United Kingdom']
        cities = ['New York', 'Berlin', 'Tokyo', 'London']
        lowered = query.lower()

        if '80' in lowered:
            port = 80
        elif '443' in lowered:
            port = 443
        else:
            port = 22

        if 'apache' in lowered:
            product = 'Apache httpd'
        elif 'nginx' in lowered:
            product = 'nginx'
        else:
            product = 'OpenSSH'

        matches = []
        for i in range(min(limit, 5)):
            matches.append({
                'ip_str': f"192.168.{rng.randint(0, 254)}.{rng.randint(0, 254)}",
                'port': port,
                'transport': 'tcp',
                'product': product,
                'version': '2.4.41',
                'title': f"Demo Server {i + 1}",
                'location': {'country_name': countries[i % 4], 'city': cities[i % 4]},
                'org': f"Demo Organization {i + 1}",
                'isp': 'Demo ISP',
                'asn': f"AS{12345 + i}",
                'hostnames': [f"demo{i + 1}.example.com"],
                'domains': ['example.com'],
                'timestamp': datetime.utcnow().isoformat(),
                'vulns': [f"CVE-2024-{1000 + i}"] if 'vuln' in lowered else [],
            })

        return {
            'matches': matches,
            'total': 1000 + rng.randint(0, 8999),
            'facets': {},
            'demo': True,
        }
