import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Dict, List, Optional, Any, Tuple

from cyber_vault.clients.abuseipdb import AbuseIPDBClient
from cyber_vault.clients.base import parse_timestamp
from cyber_vault.clients.greynoise import GreyNoiseClient
from cyber_vault.clients.otx import OTXClient
from cyber_vault.clients.shodan import ShodanClient
from cyber_vault.clients.virustotal import VirusTotalClient
from cyber_vault.errors import InvalidInputError
from cyber_vault.utils.security import InputValidator, rate_limit

logger = logging.getLogger(__name__)

LIVE_FEED_QUERY = 'malware OR botnet OR "command and control"'
IP_LOOKUPS_PER_MINUTE = 30


def run_settled(tasks: Dict[str, Callable[[], Any]], max_workers: int = 8) -> Dict[str, Tuple[Any, Optional[Exception]]]:
    """
    Run independent calls in parallel and collect every outcome
    :param tasks: Mapping of name to zero-argument callable
    :return: Mapping of name to (result, None) or (None, exception)
    """
    outcomes: Dict[str, Tuple[Any, Optional[Exception]]] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(fn): name for name, fn in tasks.items()}
        for future in as_completed(futures):
            name = futures[future]
            try:
                outcomes[name] = (future.result(), None)
            except Exception as exc:
                logger.error(f"{name} lookup failed: {str(exc)}")
                outcomes[name] = (None, exc)
    return outcomes


def calculate_risk_score(data: Dict[str, Any]) -> int:
    """Combine per-source signals into a 0-100 score"""
    score = 0

    greynoise = data.get('greynoise') or {}
    if greynoise.get('classification') == 'malicious':
        score += 40
    elif greynoise.get('classification') == 'suspicious':
        score += 20

    shodan = data.get('shodan') or {}
    if shodan.get('vulns'):
        score += 30
    if 'malware' in (shodan.get('tags') or []):
        score += 25

    otx = data.get('otx') or {}
    if ((otx.get('pulse_info') or {}).get('count') or 0) > 0:
        score += 20

    abuse = data.get('abuseipdb') or {}
    confidence = abuse.get('abuse_confidence') or 0
    if confidence > 50:
        score += 35
    elif confidence > 25:
        score += 15

    virustotal = data.get('virustotal') or {}
    if (virustotal.get('malicious') or 0) > 0:
        score += 40
    elif (virustotal.get('suspicious') or 0) > 0:
        score += 20

    return min(score, 100)


def get_threat_level(score: int) -> str:
    if score >= 80:
        return 'critical'
    if score >= 60:
        return 'high'
    if score >= 30:
        return 'medium'
    return 'low'


def categorize_threat_type(tags: Optional[List[str]]) -> str:
    if not tags:
        return 'vulnerability'
    joined = ' '.join(tags).lower()
    if 'malware' in joined or 'trojan' in joined or 'virus' in joined:
        return 'malware'
    if 'botnet' in joined or 'bot' in joined:
        return 'botnet'
    if 'phish' in joined:
        return 'phishing'
    if 'scan' in joined:
        return 'scanning'
    return 'vulnerability'


def map_severity_from_tags(tags: Optional[List[str]]) -> str:
    # Tag wording is shifted one band up
    if not tags:
        return 'low'
    joined = ' '.join(tags).lower()
    if 'critical' in joined or 'high' in joined:
        return 'critical'
    if 'medium' in joined or 'moderate' in joined:
        return 'high'
    if 'low' in joined:
        return 'medium'
    return 'low'


class ThreatAggregator:
    """
    Combines the vendor clients into unified IP reports, dashboard counters and the live feed.
    """

    def __init__(self, data_manager=None, shodan: Optional[ShodanClient] = None,
                 virustotal: Optional[VirusTotalClient] = None, greynoise: Optional[GreyNoiseClient] = None,
                 otx: Optional[OTXClient] = None, abuseipdb: Optional[AbuseIPDBClient] = None):
        self.data_manager = data_manager
        self.shodan = shodan or ShodanClient()
        self.virustotal = virustotal or VirusTotalClient()
        self.greynoise = greynoise or GreyNoiseClient()
        self.otx = otx or OTXClient()
        self.abuseipdb = abuseipdb or AbuseIPDBClient()

    @rate_limit(max_calls=IP_LOOKUPS_PER_MINUTE, time_window=60, key_index=1)
    def get_unified_threat_intel(self, ip: str) -> Dict[str, Any]:
        """Query every IP source in parallel; a failed source contributes None"""
        ip = InputValidator.sanitize_input(ip)
        if not InputValidator.validate_ip(ip):
            raise InvalidInputError('ip', 'not a valid IP address')

        logger.info(f"Gathering threat intelligence for {ip}")
        outcomes = run_settled({
            'greynoise': lambda: self.greynoise.get_ip_context(ip),
            'shodan': lambda: self.shodan.get_host(ip),
            'otx': lambda: self.otx.get_indicator(ip),
            'abuseipdb': lambda: self.abuseipdb.check_ip(ip),
            'virustotal': lambda: self.virustotal.lookup(ip),
        })

        report = {'ip': ip, 'timestamp': datetime.utcnow().isoformat()}
        for source in ('greynoise', 'shodan', 'otx', 'abuseipdb', 'virustotal'):
            report[source] = outcomes[source][0]

        report['risk_score'] = calculate_risk_score(report)
        report['threat_level'] = get_threat_level(report['risk_score'])

        if self.data_manager is not None:
            sources = [source for source in ('greynoise', 'shodan', 'otx', 'abuseipdb', 'virustotal')
                       if report[source] is not None]
            self.data_manager.record_lookup(ip, 'ip', report['risk_score'], report['threat_level'], sources)

        return report

    def get_dashboard_stats(self) -> Dict[str, Any]:
        tasks = {'otx': lambda: self.otx.get_recent_pulses(50)}
        if self.shodan.is_configured:
            tasks['shodan'] = lambda: self.shodan.search('*', limit=1, facets='country')
        outcomes = run_settled(tasks)

        shodan_data = outcomes.get('shodan', (None, None))[0] or {}
        pulses = outcomes['otx'][0] or []
        total = shodan_data.get('total', 0) or 0

        recent_alerts = 0
        if self.data_manager is not None:
            recent_alerts = len(self.data_manager.get_recent_lookups(hours=24, limit=1000))

        return {
            'total_queries': total,
            'active_bots': int(total * 0.15),
            'threat_level': 'medium',
            'countries': len((shodan_data.get('facets') or {}).get('country', []) or []),
            'malware_detected': len(pulses),
            'recent_alerts': recent_alerts,
        }

    def get_live_threat_feed(self) -> List[Dict[str, Any]]:
        """Newest OTX pulses and Shodan malware hits, merged newest first"""
        tasks = {'otx': lambda: self.otx.get_recent_pulses(20)}
        if self.shodan.is_configured:
            tasks['shodan'] = lambda: self.shodan.search(LIVE_FEED_QUERY, limit=10)
        outcomes = run_settled(tasks)

        now = datetime.utcnow()
        feed = []

        for index, pulse in enumerate((outcomes['otx'][0] or [])[:10]):
            indicators = pulse.get('indicators') or []
            feed.append({
                'id': f"otx-{pulse.get('id') or index}",
                'timestamp': parse_timestamp(pulse.get('created')) or now,
                'type': categorize_threat_type(pulse.get('tags')),
                'source': 'OTX',
                'target': indicators[0].get('indicator') if indicators else 'Multiple',
                'severity': map_severity_from_tags(pulse.get('tags')),
                'description': pulse.get('description') or pulse.get('name') or 'New threat detected',
                'location': {'country': 'Global', 'city': 'Various'},
            })

        shodan_data = outcomes.get('shodan', (None, None))[0] or {}
        for index, match in enumerate((shodan_data.get('matches') or [])[:10]):
            location = match.get('location') or {}
            feed.append({
                'id': f"shodan-{match.get('ip_str')}-{index}",
                'timestamp': parse_timestamp(match.get('timestamp')) or now,
                'type': 'scanning',
                'source': match.get('ip_str'),
                'target': 'Network Scan',
                'severity': 'high' if match.get('vulns') else 'medium',
                'description': f"{match.get('product') or 'Unknown service'} on port {match.get('port')}",
                'location': {
                    'country': location.get('country_name') or 'Unknown',
                    'city': location.get('city') or 'Unknown',
                },
            })

        feed.sort(key=lambda item: item['timestamp'], reverse=True)
        for item in feed:
            item['timestamp'] = item['timestamp'].isoformat()
        return feed[:20]
