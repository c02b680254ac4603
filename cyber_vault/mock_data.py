"""
Demo data generators used when no live API is configured.

Every generator takes an optional `random.Random` so callers can make output reproducible.
"""
import random
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

SERVICES = ['http', 'https', 'ssh', 'ftp', 'smtp', 'mysql', 'mongodb', 'redis', 'telnet', 'vnc']

SERVICE_PORTS = {
    'https': 443,
    'ssh': 22,
    'ftp': 21,
    'smtp': 25,
    'mysql': 3306,
    'mongodb': 27017,
    'redis': 6379,
    'telnet': 23,
    'vnc': 5900,
}

COUNTRIES = ['US', 'CN', 'RU', 'DE', 'FR', 'BR', 'IN', 'JP', 'CA', 'UK']
CITIES = ['New York', 'Beijing', 'Moscow', 'Berlin', 'Paris', 'São Paulo', 'Mumbai', 'Tokyo', 'Toronto', 'London']
ORGANIZATIONS = ['Google LLC', 'Amazon.com', 'Microsoft Corporation', 'Unknown', 'DigitalOcean', 'Cloudflare', 'Linode']
VULNERABILITIES = ['CVE-2023-44487', 'CVE-2023-42793', 'CVE-2023-38831', 'CVE-2023-41265']

MAX_PER_PAGE = 100


def port_for_service(service: str, rng: Optional[random.Random] = None) -> int:
    if service in SERVICE_PORTS:
        return SERVICE_PORTS[service]
    # Plain http lands on a random high port
    return 80 + (rng or random).randint(0, 8999)


def generate_cyber_search_results(query: str, count: int = 20, rng: Optional[random.Random] = None,
                                  now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Fabricate device search hits resembling a Shodan-style result set"""
    rng = rng or random.Random()
    now = now or datetime.utcnow()
    results = []

    for i in range(count):
        service = rng.choice(SERVICES)
        org = rng.choice(ORGANIZATIONS)
        vuln_count = rng.randint(1, 3) if rng.random() < 0.3 else 0

        results.append({
            'id': f"result_{i}_{int(now.timestamp())}",
            'ip': '.'.join(str(rng.randint(0, 254)) for _ in range(4)),
            'port': port_for_service(service, rng),
            'hostname': f"host-{i}.{org.lower().replace(' ', '')}.com" if rng.random() < 0.7 else None,
            'country': rng.choice(COUNTRIES),
            'city': rng.choice(CITIES) if rng.random() < 0.8 else None,
            'service': service,
            'product': f"{service.capitalize()} Server" if rng.random() < 0.6 else None,
            'version': f"{rng.randint(1, 5)}.{rng.randint(0, 9)}" if rng.random() < 0.5 else None,
            'os': rng.choice(['Linux', 'Windows', 'FreeBSD']) if rng.random() < 0.4 else None,
            'last_seen': (now - timedelta(seconds=rng.random() * 7 * 86400)).isoformat(),
            'organization': org if rng.random() < 0.7 else None,
            'latitude': rng.uniform(-90, 90),
            'longitude': rng.uniform(-180, 180),
            'vulnerabilities': VULNERABILITIES[:vuln_count] or None,
            'banner': (f"{service.upper()}/1.1 200 OK\nServer: {service}-server/{rng.randint(1, 5)}.0"
                       if rng.random() < 0.3 else None),
            'query': query,
        })
    return results


def filter_results(results: List[Dict[str, Any]], country: str = '', service: str = '') -> List[Dict[str, Any]]:
    if country:
        results = [r for r in results if r['country'].lower() == country.lower()]
    if service:
        results = [r for r in results if service.lower() in r['service'].lower()]
    return results


def paginate_results(results: List[Dict[str, Any]], page: int = 1, per_page: int = 20, query: str = '') -> Dict[str, Any]:
    page = max(1, page)
    per_page = min(per_page, MAX_PER_PAGE)
    start = (page - 1) * per_page
    end = start + per_page
    return {
        'results': results[start:end],
        'total': len(results),
        'query': query,
        'page': page,
        'per_page': per_page,
        'has_more': end < len(results),
    }


def generate_dashboard_metrics(rng: Optional[random.Random] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Security score, alerts, events and system status for the overview page"""
    rng = rng or random.Random()
    now = now or datetime.utcnow()

    def ago(**delta) -> str:
        return (now - timedelta(**delta)).isoformat()

    return {
        'security_score': {
            'overall': rng.randint(70, 99),
            'categories': {
                'infrastructure': rng.randint(70, 99),
                'applications': rng.randint(70, 99),
                'network': rng.randint(70, 99),
                'compliance': rng.randint(70, 99),
            },
            'trend': rng.choice(['up', 'down', 'stable']),
            'last_updated': now.isoformat(),
        },
        'alerts': [
            {
                'id': 'alert_1',
                'title': 'Suspicious login activity detected',
                'severity': 'high',
                'status': 'active',
                'timestamp': ago(hours=2),
                'description': 'Multiple failed login attempts from unusual location',
                'affected_systems': ['Web Server 1', 'Database Server'],
                'action_required': True,
            },
            {
                'id': 'alert_2',
                'title': 'Vulnerability scan completed',
                'severity': 'medium',
                'status': 'investigating',
                'timestamp': ago(hours=6),
                'description': 'Weekly vulnerability scan found 3 medium-risk issues',
                'affected_systems': ['Application Server'],
                'action_required': False,
            },
        ],
        'threats': [
            {
                'id': 'threat_1',
                'title': 'New IoT Botnet Campaign',
                'severity': 'high',
                'category': 'Malware',
                'description': 'Large-scale botnet targeting IoT devices with weak credentials',
                'timestamp': ago(hours=3),
                'source': 'ThreatShare Intelligence',
                'indicators': ['192.168.1.100/24', 'malware.example.com'],
                'affected_systems': ['IoT Devices'],
                'mitigation': 'Update device credentials and firmware',
            },
        ],
        'recent_events': [
            {
                'id': 'event_1',
                'type': 'login',
                'title': 'Admin login',
                'description': 'Administrator logged in from authorized IP',
                'timestamp': ago(minutes=30),
                'source': 'Authentication System',
            },
            {
                'id': 'event_2',
                'type': 'scan',
                'title': 'Network scan completed',
                'description': 'Scheduled network security scan finished successfully',
                'timestamp': ago(hours=2),
                'severity': 'low',
                'source': 'Security Scanner',
            },
        ],
        'system_status': [
            {'component': 'Web Server', 'status': 'operational', 'uptime': 99.9, 'response_time': 145,
             'last_checked': now.isoformat()},
            {'component': 'Database', 'status': 'operational', 'uptime': 99.8, 'response_time': 23,
             'last_checked': now.isoformat()},
            {'component': 'API Gateway', 'status': 'degraded', 'uptime': 98.2, 'response_time': 890,
             'last_checked': now.isoformat()},
        ],
        'vulnerabilities': [
            {
                'id': 'vuln_1',
                'cve': 'CVE-2023-44487',
                'title': 'HTTP/2 Rapid Reset Attack',
                'severity': 'critical',
                'cvss': 9.8,
                'description': 'DDoS vulnerability affecting HTTP/2 implementations',
                'affected': 'Web servers, Load balancers',
                'status': 'patch-available',
                'published_date': '2023-10-10T00:00:00Z',
            },
        ],
        'iot_devices': [
            {
                'id': 'iot_1',
                'name': 'Security Camera #1',
                'type': 'IP Camera',
                'ip': '192.168.1.150',
                'vendor': 'Hikvision',
                'model': 'DS-2CD2085FWD-I',
                'firmware': '5.6.0',
                'last_seen': ago(minutes=5),
                'risk_level': 'medium',
                'vulnerabilities': 2,
                'is_secure': False,
            },
        ],
    }
