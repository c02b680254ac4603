import re
import logging
from typing import Dict, List, Optional, Any

from cyber_vault.clients.base import BaseClient, format_relative
from cyber_vault.errors import APIError
from cyber_vault.utils.security import InputValidator

logger = logging.getLogger(__name__)

ENDPOINTS = {
    'ip': 'ip_addresses',
    'hash': 'files',
    'domain': 'domains',
}

GUI_PATHS = {
    'ip': 'ip-address',
    'hash': 'file',
    'domain': 'domain',
}

CVE_PATTERN = re.compile(r'CVE-\d{4}-\d{4,7}', re.IGNORECASE)

THREAT_PREFIXES = ['Phantom', 'Specter', 'Wraith', 'Shadow', 'Ghost', 'Banshee', 'Poltergeist']
THREAT_TYPES = ['Malware', 'Trojan', 'Ransomware', 'Spyware', 'Rootkit', 'Botnet']
THREAT_EMOJIS = ['👻', '🧙‍♀️', '🪦', '🕷️', '🦇', '🎃', '💀', '🧟‍♂️']
VULNERABILITY_TYPES = [
    'Remote Code Execution',
    'Privilege Escalation',
    'Buffer Overflow',
    'SQL Injection',
    'Cross-Site Scripting',
    'Authentication Bypass',
    'Path Traversal',
    'Memory Corruption',
]

FALLBACK_THREATS = [
    {
        'name': 'PhantomStrike Ransomware',
        'severity': 'high',
        'description': 'Active targeting of healthcare systems',
        'firstSeen': '2 hours ago',
        'emoji': '👻',
    },
    {
        'name': 'WitchCraft Botnet',
        'severity': 'medium',
        'description': 'IoT device infections spreading',
        'firstSeen': '6 hours ago',
        'emoji': '🧙‍♀️',
    },
    {
        'name': 'Graveyard Phishing',
        'severity': 'high',
        'description': 'Halloween-themed email campaigns',
        'firstSeen': '12 hours ago',
        'emoji': '🪦',
    },
]

FALLBACK_CVES = [
    {
        'id': 'CVE-2023-44487',
        'title': 'HTTP/2 Rapid Reset Attack',
        'severity': 'critical',
        'cvss': 9.8,
        'description': 'DDoS vulnerability affecting HTTP/2 implementations',
        'affected': 'Web servers, Load balancers',
        'status': 'patch-available',
        'emoji': '🚨',
    },
    {
        'id': 'CVE-2023-42793',
        'title': 'JetBrains TeamCity Authentication Bypass',
        'severity': 'high',
        'cvss': 8.1,
        'description': 'Authentication bypass in TeamCity server',
        'affected': 'TeamCity instances',
        'status': 'patch-available',
        'emoji': '🔐',
    },
]


def _stats_total(stats: Dict[str, Any]) -> int:
    return sum(count or 0 for count in stats.values() if isinstance(count, (int, float)))


class VirusTotalClient(BaseClient):
    """VirusTotal v3 lookups and intelligence searches"""

    service = 'VIRUSTOTAL'
    auth_header = 'x-apikey'

    def lookup(self, indicator: str) -> Optional[Dict[str, Any]]:
        """
        Fetch analysis stats for an IP, domain or file hash
        :param indicator: IP address, domain name or file hash
        :return: Normalized analysis, or None when VirusTotal has no record
        """
        kind = InputValidator.classify_indicator(indicator)
        try:
            data = self._request(f"/{ENDPOINTS[kind]}/{indicator}", cache_key=f"lookup:{indicator}")
        except APIError as e:
            if e.status == 404:
                return None
            raise

        attributes = (data or {}).get('data', {}).get('attributes')
        if not attributes:
            return None

        stats = attributes.get('last_analysis_stats', {}) or {}
        malicious = stats.get('malicious', 0)
        suspicious = stats.get('suspicious', 0)

        if malicious > 0:
            risk = 'critical'
        elif suspicious > 0:
            risk = 'high'
        else:
            risk = 'low'

        return {
            'indicator': indicator,
            'type': kind,
            'malicious': malicious,
            'suspicious': suspicious,
            'harmless': stats.get('harmless', 0),
            'undetected': stats.get('undetected', 0),
            'total': _stats_total(stats),
            'reputation': attributes.get('reputation'),
            'last_analysis_date': attributes.get('last_analysis_date'),
            'risk': risk,
            'permalink': f"https://www.virustotal.com/gui/{GUI_PATHS[kind]}/{indicator}",
        }

    def _intelligence_search(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        data = self._request('/intelligence/search',
                             params={'query': query, 'descriptors_only': 'true', 'limit': limit},
                             cache_key=f"intel:{query}:{limit}")
        return data.get('data', []) or []

    def get_recent_threats(self) -> List[Dict[str, Any]]:
        """Recent files with many detections, falling back to demo threats"""
        try:
            items = self._intelligence_search('type:file positives:10+ fs:2023-01-01+')
        except APIError as e:
            self._log_failure('recent threats', e)
            return [dict(threat) for threat in FALLBACK_THREATS]

        threats = []
        for index, item in enumerate(items):
            attributes = item.get('attributes', {}) or {}
            stats = attributes.get('last_analysis_stats', {}) or {}
            malicious = stats.get('malicious', 0)
            total = _stats_total(stats)

            if malicious >= 30:
                severity = 'high'
            elif malicious >= 15:
                severity = 'medium'
            else:
                severity = 'low'

            threats.append({
                'name': self.threat_name(attributes.get('meaningful_name') or item.get('id') or f"Threat-{index + 1}", index),
                'severity': severity,
                'description': f"Detected by {malicious}/{total} security vendors",
                'firstSeen': format_relative(attributes.get('first_submission_date')),
                'emoji': THREAT_EMOJIS[index % len(THREAT_EMOJIS)],
                'detectionRatio': f"{malicious}/{total}",
                'sha256': item.get('id'),
            })

        return threats or [dict(threat) for threat in FALLBACK_THREATS]

    def get_recent_cves(self) -> List[Dict[str, Any]]:
        """Files tagged with CVEs, falling back to a demo CVE list"""
        try:
            items = self._intelligence_search('type:file tag:cve')
        except APIError as e:
            self._log_failure('recent CVEs', e)
            return [dict(cve) for cve in FALLBACK_CVES]

        cves = []
        for index, item in enumerate(items):
            attributes = item.get('attributes', {}) or {}
            stats = attributes.get('last_analysis_stats', {}) or {}
            malicious = stats.get('malicious', 0)
            total = _stats_total(stats)
            cve_id = self.extract_cve_id(attributes.get('names', [])) or f"CVE-2024-{index + 1:05d}"

            if malicious >= 25:
                severity, emoji = 'critical', '🚨'
            elif malicious >= 15:
                severity, emoji = 'high', '⚠️'
            elif malicious >= 5:
                severity, emoji = 'medium', '🔐'
            else:
                severity, emoji = 'low', '📂'

            cves.append({
                'id': cve_id,
                'title': VULNERABILITY_TYPES[index % len(VULNERABILITY_TYPES)],
                'severity': severity,
                'cvss': self.estimate_cvss(malicious, total),
                'description': f"Security vulnerability detected by {malicious}/{total} vendors",
                'affected': 'Various systems and applications',
                'status': 'investigating' if malicious > 0 else 'monitoring',
                'emoji': emoji,
            })

        return cves or [dict(cve) for cve in FALLBACK_CVES]

    @staticmethod
    def threat_name(original: str, index: int = 0) -> str:
        """Replace unreadably long sample names with a themed label"""
        if len(original) > 30:
            prefix = THREAT_PREFIXES[index % len(THREAT_PREFIXES)]
            kind = THREAT_TYPES[index % len(THREAT_TYPES)]
            return f"{prefix} {kind}"
        return original

    @staticmethod
    def extract_cve_id(names: List[str]) -> Optional[str]:
        for name in names or []:
            match = CVE_PATTERN.search(name)
            if match:
                return match.group(0).upper()
        return None

    @staticmethod
    def estimate_cvss(malicious: int, total: int) -> float:
        """Midpoint of the CVSS band implied by the detection ratio"""
        if total == 0:
            return 0.0
        ratio = malicious / total
        if ratio >= 0.8:
            return 9.5
        if ratio >= 0.6:
            return 8.0
        if ratio >= 0.3:
            return 5.5
        return 2.5
