import copy
import random
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any

from cyber_vault.clients.geolocation import GeoLocationClient
from cyber_vault.utils.cache import TTLCache

logger = logging.getLogger(__name__)

CACHE_SECONDS = 30

THREAT_TYPES = [
    {'type': 'Port Scanning', 'emoji': '🔍', 'severity': 'medium', 'descriptions': [
        'Automated port scanning detected from this location',
        'Network reconnaissance activity observed',
        'Suspicious connection attempts to multiple ports',
    ]},
    {'type': 'Malware C&C', 'emoji': '🦠', 'severity': 'high', 'descriptions': [
        'Command and control server communication detected',
        'Malware callback activity observed',
        'Botnet communication identified',
    ]},
    {'type': 'DDoS Attack', 'emoji': '⚡', 'severity': 'high', 'descriptions': [
        'Distributed denial of service attack in progress',
        'High volume traffic anomaly detected',
        'Network flooding attempt identified',
    ]},
    {'type': 'Phishing Campaign', 'emoji': '🎣', 'severity': 'medium', 'descriptions': [
        'Phishing email campaign traced to this region',
        'Fraudulent website hosting detected',
        'Social engineering attack infrastructure',
    ]},
    {'type': 'Brute Force', 'emoji': '🔨', 'severity': 'medium', 'descriptions': [
        'Password brute force attempts detected',
        'Login credential attacks observed',
        'Authentication bypass attempts',
    ]},
    {'type': 'Data Exfiltration', 'emoji': '📤', 'severity': 'critical', 'descriptions': [
        'Suspicious data transfer activity',
        'Potential data theft in progress',
        'Unauthorized file access detected',
    ]},
    {'type': 'Cryptomining', 'emoji': '⛏️', 'severity': 'low', 'descriptions': [
        'Unauthorized cryptocurrency mining detected',
        'Resource hijacking activity observed',
        'Illegal mining operation identified',
    ]},
    {'type': 'Ransomware', 'emoji': '🔐', 'severity': 'critical', 'descriptions': [
        'Ransomware encryption activity detected',
        'File system encryption in progress',
        'Ransom demand infrastructure identified',
    ]},
]

LOCATIONS = [
    {'city': 'Beijing', 'country': 'China', 'lat': 39.9042, 'lng': 116.4074},
    {'city': 'Moscow', 'country': 'Russia', 'lat': 55.7558, 'lng': 37.6176},
    {'city': 'Pyongyang', 'country': 'North Korea', 'lat': 39.0392, 'lng': 125.7625},
    {'city': 'Tehran', 'country': 'Iran', 'lat': 35.6892, 'lng': 51.3890},
    {'city': 'São Paulo', 'country': 'Brazil', 'lat': -23.5505, 'lng': -46.6333},
    {'city': 'Lagos', 'country': 'Nigeria', 'lat': 6.5244, 'lng': 3.3792},
    {'city': 'Bucharest', 'country': 'Romania', 'lat': 44.4268, 'lng': 26.1025},
    {'city': 'Kyiv', 'country': 'Ukraine', 'lat': 50.4501, 'lng': 30.5234},
    {'city': 'Mumbai', 'country': 'India', 'lat': 19.0760, 'lng': 72.8777},
    {'city': 'Jakarta', 'country': 'Indonesia', 'lat': -6.2088, 'lng': 106.8456},
    {'city': 'Istanbul', 'country': 'Turkey', 'lat': 41.0082, 'lng': 28.9784},
    {'city': 'Bangkok', 'country': 'Thailand', 'lat': 13.7563, 'lng': 100.5018},
    {'city': 'Hanoi', 'country': 'Vietnam', 'lat': 21.0285, 'lng': 105.8542},
    {'city': 'Manila', 'country': 'Philippines', 'lat': 14.5995, 'lng': 120.9842},
    {'city': 'Warsaw', 'country': 'Poland', 'lat': 52.2297, 'lng': 21.0122},
]

SEVERITY_COLORS = {
    'critical': '#dc2626',
    'high': '#ea580c',
    'medium': '#ca8a04',
    'low': '#16a34a',
}

EXPLANATIONS = {
    'Port Scanning': ('Hackers are checking what services are running on computers at this location. '
                      'Think of it like someone testing all the doors and windows on a house to see which ones are unlocked.'),
    'Malware C&C': ('Infected computers at this location are talking to criminal servers. '
                    'This means there are probably viruses or other bad software running on computers here.'),
    'DDoS Attack': ('Many computers are working together to overwhelm a website or service, '
                    'like a crowd of people all trying to enter a store at once to shut it down.'),
    'Phishing Campaign': ('Criminals at this location are sending fake emails or creating fake websites '
                          'to steal passwords and personal information from people.'),
    'Brute Force': ('Hackers are trying thousands of different passwords very quickly to break into accounts, '
                    'like trying every key on a huge keyring.'),
    'Data Exfiltration': ('Someone is stealing and copying important files or data from computers, '
                          'like a digital burglar taking valuable information.'),
    'Cryptomining': ("Criminals have secretly installed software that uses other people's computers "
                     "to create digital money, slowing down the computers."),
    'Ransomware': ('Malicious software is encrypting (locking) files on computers and demanding money to unlock them, '
                   'like a digital kidnapper.'),
}

_cache = TTLCache(CACHE_SECONDS)


def generate_threat_events(rng: Optional[random.Random] = None, now: Optional[datetime] = None) -> list:
    """15 to 25 threat events spread over the last hour, newest first"""
    rng = rng or random.Random()
    now = now or datetime.utcnow()
    events = []

    for i in range(rng.randint(15, 25)):
        location = rng.choice(LOCATIONS)
        threat = rng.choice(THREAT_TYPES)
        events.append({
            'id': f"threat-{i}-{int(now.timestamp() * 1000)}",
            'lat': location['lat'] + rng.uniform(-1, 1),
            'lng': location['lng'] + rng.uniform(-1, 1),
            'country': location['country'],
            'city': location['city'],
            'threat_type': threat['type'],
            'severity': threat['severity'],
            'description': rng.choice(threat['descriptions']),
            'timestamp': now - timedelta(seconds=rng.random() * 3600),
            'ip': '.'.join(str(rng.randint(0, 254)) for _ in range(4)),
            'port': rng.randint(1, 65535),
            'emoji': threat['emoji'],
        })

    events.sort(key=lambda event: event['timestamp'], reverse=True)
    for event in events:
        event['timestamp'] = event['timestamp'].isoformat()
    return events


def fetch_threat_data(rng: Optional[random.Random] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Threat-map events, regenerated at most every 30 seconds"""
    cached = _cache.get('threats')
    if cached is not None:
        return cached

    data = {
        'threats': generate_threat_events(rng, now),
        'last_updated': (now or datetime.utcnow()).isoformat(),
    }
    _cache.set('threats', data)
    logger.debug(f"Generated {len(data['threats'])} threat map events")
    return data


def clear_cache() -> None:
    _cache.clear()


def get_threat_type_color(severity: str) -> str:
    return SEVERITY_COLORS.get(severity, '#6b7280')


def get_threat_explanation(threat_type: str) -> str:
    return EXPLANATIONS.get(threat_type, 'Suspicious cyber activity has been detected at this location.')


# Sample attack sources resolved through geolocation for the country view
ATTACK_SOURCES = [
    {'ip': '14.102.128.1', 'attacks': 847, 'severity': 'high', 'top_ports': [22, 80, 443, 3389],
     'attack_types': ['SSH brute force', 'Web scanning', 'Port scanning']},
    {'ip': '185.220.100.1', 'attacks': 623, 'severity': 'high', 'top_ports': [22, 23, 80, 443, 8080],
     'attack_types': ['Botnet', 'DDoS', 'Credential stuffing']},
    {'ip': '175.45.176.1', 'attacks': 234, 'severity': 'medium', 'top_ports': [22, 80, 443],
     'attack_types': ['APT activity', 'Reconnaissance']},
    {'ip': '5.62.56.1', 'attacks': 189, 'severity': 'medium', 'top_ports': [22, 80, 443, 993],
     'attack_types': ['Phishing', 'Email attacks']},
    {'ip': '1.1.1.1', 'attacks': 156, 'severity': 'low', 'top_ports': [80, 443],
     'attack_types': ['Web scanning']},
]

MAX_SOURCE_LOOKUPS = 10

SEVERITY_ORDER = {'low': 1, 'medium': 2, 'high': 3}

FALLBACK_COUNTRY_MAP = {
    'attack_sources': [
        {'country': 'China', 'country_code': 'CN', 'attacks': 847, 'severity': 'high', 'lat': 35.8617,
         'lon': 104.1954, 'top_ports': [22, 80, 443], 'attack_types': ['SSH brute force']},
        {'country': 'Russia', 'country_code': 'RU', 'attacks': 623, 'severity': 'high', 'lat': 61.5240,
         'lon': 105.3188, 'top_ports': [22, 23, 80], 'attack_types': ['Botnet']},
        {'country': 'North Korea', 'country_code': 'KP', 'attacks': 234, 'severity': 'medium', 'lat': 40.3399,
         'lon': 127.5101, 'top_ports': [22, 80], 'attack_types': ['APT']},
        {'country': 'Iran', 'country_code': 'IR', 'attacks': 189, 'severity': 'medium', 'lat': 32.4279,
         'lon': 53.6880, 'top_ports': [22, 80, 443], 'attack_types': ['Phishing']},
        {'country': 'Unknown', 'country_code': 'XX', 'attacks': 156, 'severity': 'low', 'lat': 0.0,
         'lon': 0.0, 'top_ports': [80], 'attack_types': ['Scanning']},
    ],
    'total_attacks': 2049,
    'top_countries': ['China', 'Russia', 'North Korea', 'Iran', 'Unknown'],
    'active_threats': 2,
}


def higher_severity(a: str, b: str) -> str:
    return a if SEVERITY_ORDER.get(a, 0) >= SEVERITY_ORDER.get(b, 0) else b


def aggregate_by_country(sources: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge located attack sources per country, summing attacks and keeping the higher severity.
    :return: {'attack_sources', 'total_attacks', 'top_countries', 'active_threats'}
    """
    countries: Dict[str, Dict[str, Any]] = {}
    for source in sources:
        existing = countries.get(source['country'])
        if existing is None:
            countries[source['country']] = dict(source, top_ports=list(source['top_ports']),
                                                 attack_types=list(source['attack_types']))
            continue
        existing['attacks'] += source['attacks']
        existing['severity'] = higher_severity(existing['severity'], source['severity'])
        existing['top_ports'] += [port for port in source['top_ports'] if port not in existing['top_ports']]
        existing['attack_types'] += [t for t in source['attack_types'] if t not in existing['attack_types']]

    merged = sorted(countries.values(), key=lambda entry: entry['attacks'], reverse=True)
    return {
        'attack_sources': merged,
        'total_attacks': sum(entry['attacks'] for entry in merged),
        'top_countries': [entry['country'] for entry in merged[:5]],
        'active_threats': len([entry for entry in merged if entry['severity'] == 'high']),
    }


def get_country_threat_map(client=None) -> Dict[str, Any]:
    """Attack sources located by IP and grouped per country; fallback data when nothing resolves"""
    cached = _cache.get('countries')
    if cached is not None:
        return cached

    client = client or GeoLocationClient()
    located = []
    try:
        for source in ATTACK_SOURCES[:MAX_SOURCE_LOOKUPS]:
            location = client.lookup(source['ip'])
            if location is None:
                continue
            located.append({
                'country': location['country'],
                'country_code': location['country_code'],
                'attacks': source['attacks'],
                'severity': source['severity'],
                'lat': location['lat'],
                'lon': location['lon'],
                'top_ports': source['top_ports'],
                'attack_types': source['attack_types'],
            })
    except Exception as e:
        logger.error(f"Error building country threat map: {str(e)}")
        return copy.deepcopy(FALLBACK_COUNTRY_MAP)

    if not located:
        logger.warning("No attack sources could be located, using fallback map data")
        return copy.deepcopy(FALLBACK_COUNTRY_MAP)

    data = aggregate_by_country(located)
    _cache.set('countries', data)
    return data
