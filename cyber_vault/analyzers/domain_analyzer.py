import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

import dns.exception
import dns.resolver
import tldextract
import whois

from cyber_vault.config import get_api_key
from cyber_vault.errors import APIError, InvalidInputError
from cyber_vault.threat_aggregation import get_threat_level
from cyber_vault.utils.http import fetch_json
from cyber_vault.utils.security import InputValidator, MinIntervalLimiter

logger = logging.getLogger(__name__)

WHOISXML_URL = 'https://www.whoisxmlapi.com/whoisserver/WhoisService'
WAYBACK_URL = 'https://web.archive.org/cdx/search/cdx'
DNS_RECORD_TYPES = ['A', 'AAAA', 'MX', 'NS', 'TXT']
SUSPICIOUS_TXT = ['spam', 'malware', 'phishing']

# WHOIS servers and the Wayback CDX API both expect one request per second
_lookup_limiter = MinIntervalLimiter(1.0)


def _first(value):
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _as_text(value) -> str:
    value = _first(value)
    if value is None:
        return 'Unknown'
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _as_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple, set)):
        return sorted({str(item).lower() for item in value})
    return [str(value).lower()]


def format_wayback_date(timestamp: str) -> str:
    """'20240101120000' -> '2024-01-01 12:00'"""
    if not timestamp or len(timestamp) < 14:
        return 'Unknown'
    return f"{timestamp[0:4]}-{timestamp[4:6]}-{timestamp[6:8]} {timestamp[8:10]}:{timestamp[10:12]}"


def demo_whois_record(domain: str) -> Dict[str, Any]:
    return {
        'domain': domain,
        'registrar': 'Demo Registrar Inc.',
        'creation_date': '2020-01-15',
        'expiration_date': '2025-01-15',
        'nameservers': ['ns1.example.com', 'ns2.example.com'],
        'status': ['clientTransferProhibited'],
        'demo': True,
    }


def demo_timeline(domain: str) -> List[Dict[str, str]]:
    snapshots = [
        ('20240101120000', f"http://{domain}", '200'),
        ('20230615080000', f"https://{domain}", '200'),
        ('20230201140000', f"http://{domain}", '404'),
        ('20220810100000', f"http://{domain}", '200'),
    ]
    return [{'timestamp': ts, 'url': url, 'status': status, 'date': format_wayback_date(ts)}
            for ts, url, status in snapshots]


class DomainAnalyzer:
    def __init__(self, resolver: Optional[dns.resolver.Resolver] = None,
                 limiter: Optional[MinIntervalLimiter] = None, whoisxml_key: Optional[str] = None):
        if resolver is None:
            resolver = dns.resolver.Resolver()
            resolver.timeout = 2
            resolver.lifetime = 2
            resolver.nameservers = ['8.8.8.8', '8.8.4.4', '1.1.1.1']
        self.resolver = resolver
        self.limiter = limiter or _lookup_limiter
        self.whoisxml_key = whoisxml_key if whoisxml_key is not None else get_api_key('WHOISXML')

    @staticmethod
    def clean_domain(domain: str) -> str:
        """Reduce a URL or hostname to its registered domain"""
        domain = InputValidator.sanitize_input(domain).lower()
        parsed = tldextract.extract(domain)
        if not parsed.domain or not parsed.suffix:
            raise InvalidInputError('domain', 'not a valid domain name')
        cleaned = f"{parsed.domain}.{parsed.suffix}"
        if not InputValidator.validate_domain(cleaned):
            raise InvalidInputError('domain', 'not a valid domain name')
        return cleaned

    def get_dns_records(self, domain: str) -> Dict[str, List[str]]:
        records = {}
        for record_type in DNS_RECORD_TYPES:
            try:
                answers = self.resolver.resolve(domain, record_type)
                records[record_type] = [str(answer) for answer in answers]
            except dns.resolver.NoAnswer:
                records[record_type] = []
            except dns.resolver.NXDOMAIN:
                records[record_type] = ["Domain not found"]
            except dns.exception.Timeout:
                records[record_type] = ["Timeout"]
            except dns.exception.DNSException as e:
                logger.error(f"DNS {record_type} lookup for {domain} failed: {str(e)}")
                records[record_type] = []
        return records

    def get_whois_info(self, domain: str) -> Dict[str, Any]:
        """WHOIS record from WhoisXML when a key is set, otherwise a direct WHOIS query"""
        self.limiter.wait()
        if self.whoisxml_key:
            return self._whoisxml_record(domain)

        try:
            w = whois.whois(domain)
        except Exception as e:
            # python-whois raises its own parser errors as well as socket errors
            logger.error(f"WHOIS lookup for {domain} failed: {str(e)}")
            return demo_whois_record(domain)

        if not w or not w.get('domain_name'):
            logger.warning(f"No WHOIS record for {domain}, using demo data")
            return demo_whois_record(domain)

        return {
            'domain': str(_first(w.get('domain_name'))).lower(),
            'registrar': _as_text(w.get('registrar')),
            'creation_date': _as_text(w.get('creation_date')),
            'expiration_date': _as_text(w.get('expiration_date')),
            'nameservers': _as_list(w.get('name_servers')),
            'status': _as_list(w.get('status')),
        }

    def _whoisxml_record(self, domain: str) -> Dict[str, Any]:
        try:
            data = fetch_json(WHOISXML_URL, params={
                'apiKey': self.whoisxml_key,
                'domainName': domain,
                'outputFormat': 'JSON',
            }, source='WhoisXML')
        except APIError as e:
            logger.error(f"WhoisXML lookup for {domain} failed: {e.message}")
            return demo_whois_record(domain)

        record = data.get('WhoisRecord') if isinstance(data, dict) else None
        if not record:
            return demo_whois_record(domain)

        status = record.get('status') or []
        return {
            'domain': record.get('domainName') or domain,
            'registrar': record.get('registrarName') or 'Unknown',
            'creation_date': record.get('createdDate') or 'Unknown',
            'expiration_date': record.get('expiresDate') or 'Unknown',
            'nameservers': (record.get('nameServers') or {}).get('hostNames', []),
            'status': status.split() if isinstance(status, str) else status,
        }

    def get_wayback_timeline(self, domain: str, limit: int = 10) -> List[Dict[str, str]]:
        """Archived snapshots of the domain from the Wayback Machine CDX API"""
        self.limiter.wait()
        try:
            rows = fetch_json(WAYBACK_URL, params={
                'url': domain,
                'output': 'json',
                'limit': limit,
                'fl': 'timestamp,original,statuscode',
            }, source='Wayback Machine')
        except APIError as e:
            logger.error(f"Wayback timeline for {domain} failed: {e.message}")
            return demo_timeline(domain)

        timeline = []
        # The first row is the field header
        for row in (rows or [])[1:]:
            if len(row) < 3:
                continue
            timeline.append({
                'timestamp': row[0],
                'url': row[1],
                'status': row[2],
                'date': format_wayback_date(row[0]),
            })
        return timeline

    @staticmethod
    def search_domains(query: str) -> List[str]:
        """Common domain variations worth checking for a brand or keyword"""
        query = InputValidator.sanitize_input(query).lower().replace(' ', '')
        if not query:
            return []
        return [f"{query}.com", f"{query}.net", f"{query}.org", f"www.{query}.com", f"shop.{query}.com"]

    @staticmethod
    def calculate_risk_score(analysis: Dict[str, Any], now: Optional[datetime] = None) -> int:
        score = 0
        now = now or datetime.utcnow()

        dns_records = analysis.get('dns_records') or {}
        if not dns_records.get('A') or dns_records.get('A') == ["Domain not found"]:
            score += 20
        for record in dns_records.get('TXT', []):
            if any(word in record.lower() for word in SUSPICIOUS_TXT):
                score += 15

        whois_info = analysis.get('whois_info') or {}
        if not whois_info.get('demo'):
            try:
                created = datetime.fromisoformat(str(whois_info.get('creation_date'))[:19].rstrip('Z'))
            except ValueError:
                created = None
            # Freshly registered domains are a common phishing signal
            if created is not None and (now - created).days < 30:
                score += 40

        return max(0, min(100, score))

    def analyze_domain(self, domain: str, data_manager=None) -> Dict[str, Any]:
        """WHOIS, DNS and archive history for one domain; recorded in the history when a manager is given"""
        domain = self.clean_domain(domain)
        logger.info(f"Analyzing domain {domain}")

        analysis = {
            'domain': domain,
            'whois_info': self.get_whois_info(domain),
            'dns_records': self.get_dns_records(domain),
            'wayback': self.get_wayback_timeline(domain),
            'analysis_timestamp': datetime.utcnow().isoformat(),
        }
        analysis['risk_score'] = self.calculate_risk_score(analysis)

        if data_manager is not None:
            data_manager.record_lookup(domain, 'domain', analysis['risk_score'],
                                       get_threat_level(analysis['risk_score']), ['whois', 'dns', 'wayback'])
        return analysis
