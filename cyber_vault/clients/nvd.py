import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any

from cyber_vault.clients.base import BaseClient, parse_timestamp
from cyber_vault.errors import APIError

logger = logging.getLogger(__name__)

# First keyword match wins
AFFECTED_SYSTEMS = [
    ('windows', 'Windows systems'),
    ('linux', 'Linux systems'),
    ('apache', 'Apache web servers'),
    ('nginx', 'Nginx web servers'),
    ('mysql', 'MySQL databases'),
    ('oracle', 'Oracle products'),
    ('microsoft', 'Microsoft products'),
    ('google', 'Google products'),
    ('android', 'Android devices'),
    ('ios', 'iOS devices'),
    ('docker', 'Docker containers'),
    ('kubernetes', 'Kubernetes clusters'),
]

FALLBACK_VULNERABILITIES = [
    {
        'id': 'CVE-2023-44487',
        'title': 'HTTP/2 Rapid Reset Attack',
        'severity': 'critical',
        'cvss': 9.8,
        'description': 'DDoS vulnerability affecting HTTP/2 implementations (Demo Data)',
        'affected': 'Web servers, Load balancers',
        'status': 'patch-available',
        'emoji': '🚨',
        'published': '3 days ago',
    },
    {
        'id': 'CVE-2023-42793',
        'title': 'JetBrains TeamCity Authentication Bypass',
        'severity': 'high',
        'cvss': 8.1,
        'description': 'Authentication bypass in TeamCity server (Demo Data)',
        'affected': 'TeamCity instances',
        'status': 'patch-available',
        'emoji': '🔐',
        'published': '5 days ago',
    },
    {
        'id': 'CVE-2023-41265',
        'title': 'Qlik Sense Path Traversal',
        'severity': 'high',
        'cvss': 7.5,
        'description': 'Path traversal vulnerability in Qlik Sense (Demo Data)',
        'affected': 'Qlik Sense servers',
        'status': 'investigating',
        'emoji': '📂',
        'published': '1 week ago',
    },
]

FALLBACK_STATS = {'critical': 1, 'high': 3, 'medium': 7, 'low': 12}


class NVDClient(BaseClient):
    """National Vulnerability Database CVE API. A key only raises the rate limit."""

    service = 'NVD'
    auth_header = 'apiKey'
    requires_key = False

    def _fetch_recent(self, results_per_page: int, days: int, now: Optional[datetime]) -> List[Dict[str, Any]]:
        end = now or datetime.utcnow()
        start = end - timedelta(days=days)
        params = {
            'pubStartDate': start.strftime('%Y-%m-%d') + 'T00:00:00.000',
            'pubEndDate': end.strftime('%Y-%m-%d') + 'T23:59:59.999',
            'resultsPerPage': results_per_page,
        }
        data = self._request('', params=params,
                             cache_key=f"recent:{params['pubStartDate']}:{params['pubEndDate']}:{results_per_page}")
        return data.get('vulnerabilities', []) or []

    def get_recent_vulnerabilities(self, results_per_page: int = 20, days: int = 7,
                                   now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """CVEs published in the last `days` days, or [] on failure"""
        try:
            return self._fetch_recent(results_per_page, days, now)
        except APIError as e:
            self._log_failure('recent vulnerabilities', e)
            return []

    def search(self, keyword: str, results_per_page: int = 10) -> List[Dict[str, Any]]:
        data = self._request('', params={'keywordSearch': keyword, 'resultsPerPage': results_per_page},
                             cache_key=f"search:{keyword}:{results_per_page}")
        return data.get('vulnerabilities', []) or []

    def get_vulnerability_analysis(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        vulns = self.get_recent_vulnerabilities(10, now=now)
        if not vulns:
            return [dict(vuln) for vuln in FALLBACK_VULNERABILITIES]
        return [self.summarize(vuln, now) for vuln in vulns]

    def get_vulnerability_stats(self) -> Dict[str, int]:
        """Count last week's CVEs per severity band"""
        try:
            vulns = self._fetch_recent(100, 7, None)
        except APIError as e:
            self._log_failure('vulnerability stats', e)
            return dict(FALLBACK_STATS)

        stats = {'critical': 0, 'high': 0, 'medium': 0, 'low': 0}
        for vuln in vulns:
            stats[self.severity_from_cvss(self.cvss_score(vuln))] += 1
        return stats

    @classmethod
    def summarize(cls, vuln: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        cve = vuln.get('cve', {})
        score = cls.cvss_score(vuln)
        return {
            'id': cve.get('id'),
            'title': cls.extract_title(vuln),
            'severity': cls.severity_from_cvss(score),
            'cvss': score,
            'description': cls.english_description(vuln),
            'affected': cls.affected_systems(vuln),
            'products': cls.affected_products(vuln),
            'status': 'investigating',
            'emoji': cls.emoji(vuln),
            'published': cls.format_published(cve.get('published'), now),
        }

    @staticmethod
    def cvss_score(vuln: Dict[str, Any]) -> float:
        """Base score from the newest CVSS version present"""
        metrics = vuln.get('cve', {}).get('metrics', {}) or {}
        for version in ('cvssMetricV31', 'cvssMetricV30', 'cvssMetricV2'):
            entries = metrics.get(version) or []
            if entries:
                score = entries[0].get('cvssData', {}).get('baseScore')
                if score is not None:
                    return float(score)
        return 0.0

    @staticmethod
    def severity_from_cvss(score: float) -> str:
        if score >= 9.0:
            return 'critical'
        if score >= 7.0:
            return 'high'
        if score >= 4.0:
            return 'medium'
        return 'low'

    @staticmethod
    def english_description(vuln: Dict[str, Any]) -> str:
        for desc in vuln.get('cve', {}).get('descriptions', []) or []:
            if desc.get('lang') == 'en':
                return desc.get('value') or 'No description available'
        return 'No description available'

    @classmethod
    def extract_title(cls, vuln: Dict[str, Any]) -> str:
        title = cls.english_description(vuln).split('. ')[0]
        if len(title) > 80:
            title = ' '.join(title.split(' ')[:10]) + '...'
        return title or vuln.get('cve', {}).get('id', '')

    @classmethod
    def affected_systems(cls, vuln: Dict[str, Any]) -> str:
        description = cls.english_description(vuln).lower()
        for keyword, label in AFFECTED_SYSTEMS:
            if keyword in description:
                return label
        return 'Multiple systems'

    @staticmethod
    def affected_products(vuln: Dict[str, Any]) -> List[str]:
        """Vendor/product pairs from the CPE configuration nodes, at most three"""
        products = []
        for config in vuln.get('cve', {}).get('configurations', []) or []:
            for node in config.get('nodes', []) or []:
                for match in node.get('cpeMatch', []) or []:
                    # cpe:2.3:part:vendor:product:version:...
                    parts = (match.get('criteria') or '').split(':')
                    if len(parts) < 5:
                        continue
                    product = f"{parts[3]}/{parts[4]}"
                    if product not in products:
                        products.append(product)
                    if len(products) == 3:
                        return products
        return products

    @classmethod
    def emoji(cls, vuln: Dict[str, Any]) -> str:
        description = cls.english_description(vuln).lower()
        if cls.cvss_score(vuln) >= 9.0:
            return '🚨'
        if 'authentication' in description or 'bypass' in description:
            return '🔐'
        if 'file' in description or 'path' in description:
            return '📂'
        if 'code execution' in description or 'rce' in description:
            return '💀'
        if 'denial of service' in description or 'dos' in description:
            return '⚡'
        if 'injection' in description or 'sql' in description:
            return '💉'
        if 'cross-site' in description or 'xss' in description:
            return '🕸️'
        return '📦'

    @staticmethod
    def format_published(value: Any, now: Optional[datetime] = None) -> str:
        published = parse_timestamp(value)
        if published is None:
            return 'Unknown'
        days = ((now or datetime.utcnow()) - published).days
        if days <= 0:
            return 'Today'
        if days == 1:
            return 'Yesterday'
        if days < 7:
            return f"{days} days ago"
        return published.strftime('%Y-%m-%d')
