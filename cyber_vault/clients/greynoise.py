import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from cyber_vault.clients.base import BaseClient, parse_timestamp
from cyber_vault.errors import APIError

logger = logging.getLogger(__name__)

STAT_QUERIES = [
    'classification:malicious',
    'tags:malware',
    'tags:exploit',
    'tags:scanner',
]

SPOOKY_EMOJIS = ['👻', '🧙‍♀️', '🎃', '💀', '🦇', '🕷️', '🕸️', '⚰️']
SPOOKY_NAMES = [
    'PhantomStrike', 'WitchCraft', 'Graveyard', 'Vampire', 'Banshee',
    'Poltergeist', 'Specter', 'Wraith', 'Ghoul', 'Demon',
]

FALLBACK_THREATS = [
    {'name': 'PhantomStrike Ransomware', 'severity': 'high',
     'description': 'Active targeting of healthcare systems', 'firstSeen': '2 hours ago', 'emoji': '👻'},
    {'name': 'WitchCraft Botnet', 'severity': 'medium',
     'description': 'IoT device infections spreading', 'firstSeen': '6 hours ago', 'emoji': '🧙‍♀️'},
    {'name': 'Graveyard Phishing', 'severity': 'high',
     'description': 'Halloween-themed email campaigns', 'firstSeen': '12 hours ago', 'emoji': '🪦'},
]


class GreyNoiseClient(BaseClient):
    """GreyNoise internet-noise context for IP addresses"""

    service = 'GREYNOISE'
    auth_header = 'key'

    def get_ip_context(self, ip: str) -> Dict[str, Any]:
        return self._request(f"/noise/context/{ip}", cache_key=f"context:{ip}")

    def quick_check(self, ip: str) -> Dict[str, Any]:
        return self._request(f"/noise/quick/{ip}", cache_key=f"quick:{ip}")

    def community_lookup(self, ip: str) -> Optional[Dict[str, Any]]:
        try:
            return self._request(f"/community/{ip}", cache_key=f"community:{ip}")
        except APIError as e:
            self._log_failure(f"community lookup for {ip}", e)
            return None

    def get_threat_stats(self) -> List[Dict[str, Any]]:
        """Run the dashboard GNQL stat queries; a failed query reports zero"""
        results = []
        for query in STAT_QUERIES:
            try:
                results.append(self._request('/experimental/gnql/stats', params={'query': query},
                                             cache_key=f"stats:{query}"))
            except APIError as e:
                self._log_failure(f"stats query '{query}'", e)
                results.append({'query': query, 'count': 0, 'stats': {}})
        return results

    def get_recent_threats(self, limit: int = 10) -> List[Dict[str, Any]]:
        """IPs classified malicious in the last day, or [] on failure"""
        try:
            data = self._request('/experimental/gnql',
                                 params={'query': 'classification:malicious last_seen:1d', 'size': limit},
                                 cache_key=f"recent:{limit}")
        except APIError as e:
            self._log_failure('recent threats', e)
            return []
        return data.get('data', []) or []

    def get_display_threats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Themed threat cards and where they came from ('greynoise' or 'fallback')"""
        if not self.check_connection():
            logger.warning("GreyNoise API not available, using fallback data")
            return {'threats': [dict(threat) for threat in FALLBACK_THREATS], 'source': 'fallback'}
        threats = self.transform_threats_for_display(self.get_recent_threats(10), now)
        return {'threats': threats or [dict(threat) for threat in FALLBACK_THREATS],
                'source': 'greynoise' if threats else 'fallback'}

    def check_connection(self) -> bool:
        if not self.api_key:
            return False
        try:
            return self._request('/ping').get('pong') is True
        except APIError as e:
            self._log_failure('connection check', e)
            return False

    def lookup_summary(self, ip: str) -> Dict[str, Any]:
        """IP context reshaped for the reputation panel. Raises APIError on failure."""
        context = self.get_ip_context(ip)
        classification = context.get('classification', 'unknown')
        noise = bool(context.get('noise'))

        return {
            'ip': ip,
            'is_noisy': noise,
            'is_riot': bool(context.get('riot')),
            'classification': classification,
            'threat_level': self.threat_level(classification, noise),
            'last_seen': context.get('last_seen'),
            'description': self.describe(context),
            'emoji': self.emoji(classification),
            'source': 'greynoise',
            'timestamp': datetime.utcnow().isoformat(),
        }

    @staticmethod
    def threat_level(classification: str, noise: bool) -> str:
        if classification == 'malicious':
            return 'high'
        if classification == 'benign' and noise:
            return 'low'
        if noise:
            return 'medium'
        return 'unknown'

    @staticmethod
    def describe(context: Dict[str, Any]) -> str:
        if context.get('classification') == 'malicious':
            return ('This IP haunts the digital realm with malicious intent. '
                    'It has been spotted casting dark spells across the internet.')
        if context.get('riot'):
            return ('This IP belongs to a known digital entity in the GreyNoise RIOT dataset, '
                    'generally trustworthy but active.')
        if context.get('noise'):
            return "This IP creates digital noise in the ether. It's actively scanning or probing the internet."
        return 'This IP appears to be a quiet spirit, not making much noise in the digital realm.'

    @staticmethod
    def emoji(classification: str) -> str:
        return {'malicious': '💀', 'benign': '👻'}.get(classification, '🔮')

    @classmethod
    def transform_threats_for_display(cls, threats: List[Dict[str, Any]],
                                      now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Turn the first three GNQL hits into themed threat cards"""
        display = []
        for index, threat in enumerate(threats[:3]):
            name = SPOOKY_NAMES[index % len(SPOOKY_NAMES)]
            tags = threat.get('tags') or []

            severity = 'medium'
            if threat.get('classification') == 'malicious' and ('exploit' in tags or 'malware' in tags):
                severity = 'high'

            if 'scanner' in tags:
                description = f"{name} scanning rituals targeting vulnerable systems"
            elif 'malware' in tags:
                description = f"{name} malware haunting network infrastructure"
            elif 'exploit' in tags:
                description = f"{name} exploitation spells being cast"
            else:
                description = 'Mysterious digital entity detected'

            last_seen = threat.get('last_seen')
            display.append({
                'name': f"{name} Entity",
                'severity': severity,
                'description': description,
                'firstSeen': cls.format_last_seen(last_seen, now) if last_seen else f"{index + 1} hours ago",
                'emoji': SPOOKY_EMOJIS[index % len(SPOOKY_EMOJIS)],
                'ip': threat.get('ip'),
                'classification': threat.get('classification'),
            })
        return display

    @staticmethod
    def format_last_seen(last_seen: Any, now: Optional[datetime] = None) -> str:
        seen = parse_timestamp(last_seen)
        if seen is None:
            return 'recently'
        hours = int(((now or datetime.utcnow()) - seen).total_seconds() // 3600)
        if hours < 1:
            return 'less than 1 hour ago'
        if hours < 24:
            return f"{hours} hours ago"
        return f"{hours // 24} days ago"
