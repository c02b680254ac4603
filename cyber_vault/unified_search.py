import logging
from typing import Dict, List, Optional, Any

from cyber_vault.clients.base import make_envelope
from cyber_vault.clients.greynoise import GreyNoiseClient
from cyber_vault.clients.nvd import NVDClient
from cyber_vault.clients.otx import OTXClient
from cyber_vault.clients.search_engines import GoogleSearchClient, YandexSearchClient
from cyber_vault.clients.shodan import ShodanClient
from cyber_vault.clients.virustotal import VirusTotalClient
from cyber_vault.errors import APIError
from cyber_vault.threat_aggregation import run_settled
from cyber_vault.utils.security import InputValidator

logger = logging.getLogger(__name__)

# Output order of the envelopes
SOURCES = ['Shodan', 'VirusTotal', 'GreyNoise', 'AlienVault OTX', 'NVD CVE', 'Google Dorking', 'Yandex Dorking']

NOT_CONFIGURED = 'API key not configured'


def _truncate(text: Optional[str], length: int = 200) -> str:
    if not text:
        return 'No description available'
    return text[:length] + '...' if len(text) > length else text


class UnifiedSearch:
    """Fan a free-text query out to every search-capable source"""

    def __init__(self, shodan: Optional[ShodanClient] = None, virustotal: Optional[VirusTotalClient] = None,
                 greynoise: Optional[GreyNoiseClient] = None, otx: Optional[OTXClient] = None,
                 nvd: Optional[NVDClient] = None, google: Optional[GoogleSearchClient] = None,
                 yandex: Optional[YandexSearchClient] = None):
        self.shodan = shodan or ShodanClient()
        self.virustotal = virustotal or VirusTotalClient()
        self.greynoise = greynoise or GreyNoiseClient()
        self.otx = otx or OTXClient()
        self.nvd = nvd or NVDClient()
        self.google = google or GoogleSearchClient()
        self.yandex = yandex or YandexSearchClient()

    def search(self, query: str) -> List[Dict[str, Any]]:
        """
        Query all sources in parallel
        :return: One envelope per source, always in SOURCES order
        """
        query = InputValidator.sanitize_input(query)
        handlers = {
            'Shodan': self.search_shodan,
            'VirusTotal': self.search_virustotal,
            'GreyNoise': self.search_greynoise,
            'AlienVault OTX': self.search_otx,
            'NVD CVE': self.search_nvd,
            'Google Dorking': self.search_google,
            'Yandex Dorking': self.search_yandex,
        }
        outcomes = run_settled({source: (lambda fn=fn: fn(query)) for source, fn in handlers.items()})

        results = []
        for source in SOURCES:
            value, error = outcomes[source]
            if error is not None:
                message = error.message if isinstance(error, APIError) else str(error) or 'Unknown error'
                results.append(make_envelope(source, [], message))
            else:
                results.append(value)
        return results

    def search_shodan(self, query: str) -> Dict[str, Any]:
        if not self.shodan.is_configured:
            return make_envelope('Shodan', [], NOT_CONFIGURED)

        data = self.shodan.search(query)
        items = []
        for index, match in enumerate(data.get('matches', [])):
            location = match.get('location') or {}
            items.append({
                'id': f"shodan-{index}",
                'title': f"{match.get('ip_str')}:{match.get('port')}",
                'description': _truncate(match.get('data')),
                'url': f"https://www.shodan.io/host/{match.get('ip_str')}",
                'metadata': {
                    'country': location.get('country_name'),
                    'city': location.get('city'),
                    'org': match.get('org'),
                    'product': match.get('product'),
                    'version': match.get('version'),
                    'timestamp': match.get('timestamp'),
                },
                'risk': 'high' if match.get('vulns') else 'medium',
            })
        return make_envelope('Shodan', items)

    def search_virustotal(self, query: str) -> Dict[str, Any]:
        if not self.virustotal.is_configured:
            return make_envelope('VirusTotal', [], NOT_CONFIGURED)

        result = self.virustotal.lookup(query)
        if result is None:
            return make_envelope('VirusTotal', [])

        return make_envelope('VirusTotal', [{
            'id': 'virustotal-1',
            'title': query,
            'description': (f"Scanned by {result['total']} engines. {result['malicious']} flagged as malicious, "
                            f"{result['suspicious']} as suspicious."),
            'url': result['permalink'],
            'metadata': {
                'malicious': result['malicious'],
                'suspicious': result['suspicious'],
                'harmless': result['harmless'],
                'undetected': result['undetected'],
                'last_analysis': result['last_analysis_date'],
            },
            'risk': result['risk'],
        }])

    def search_greynoise(self, query: str) -> Dict[str, Any]:
        if not self.greynoise.is_configured:
            return make_envelope('GreyNoise', [], NOT_CONFIGURED)
        # GreyNoise only knows about IP addresses
        if not InputValidator.validate_ipv4(query):
            return make_envelope('GreyNoise', [])

        try:
            data = self.greynoise.get_ip_context(query)
        except APIError as e:
            if e.status == 404:
                return make_envelope('GreyNoise', [])
            raise

        if not data.get('ip'):
            return make_envelope('GreyNoise', [])

        classification = data.get('classification')
        if classification == 'malicious':
            risk = 'critical'
        elif classification == 'suspicious':
            risk = 'high'
        else:
            risk = 'medium'

        metadata = data.get('metadata') or {}
        return make_envelope('GreyNoise', [{
            'id': 'greynoise-1',
            'title': data['ip'],
            'description': f"{classification} IP - {', '.join(data.get('tags') or []) or 'No tags'}",
            'metadata': {
                'classification': classification,
                'first_seen': data.get('first_seen'),
                'last_seen': data.get('last_seen'),
                'actor': data.get('actor'),
                'tags': data.get('tags'),
                'organization': metadata.get('organization'),
                'country': metadata.get('country'),
            },
            'risk': risk,
        }])

    def search_otx(self, query: str) -> Dict[str, Any]:
        if not self.otx.is_configured:
            return make_envelope('AlienVault OTX', [], NOT_CONFIGURED)

        kind = self.otx.indicator_type(query)
        data = self.otx.get_indicator(query)
        pulse_info = data.get('pulse_info') or {}
        count = pulse_info.get('count', 0) or 0

        return make_envelope('AlienVault OTX', [{
            'id': 'alienvault-1',
            'title': query,
            'description': (f"Found in {count} threat intelligence pulse(s)" if count > 0
                            else 'No threat intelligence found'),
            'url': f"https://otx.alienvault.com/indicator/{kind.lower()}/{query}",
            'metadata': {
                'pulse_count': count,
                'references': pulse_info.get('references', []),
                'related': pulse_info.get('related', {}),
                'reputation': data.get('reputation'),
            },
            'risk': 'high' if count > 0 else 'low',
        }])

    def search_nvd(self, query: str) -> Dict[str, Any]:
        items = []
        for index, vuln in enumerate(self.nvd.search(query, 10)):
            cve = vuln.get('cve', {})
            score = NVDClient.cvss_score(vuln)
            items.append({
                'id': f"nvd-cve-{index}",
                'title': cve.get('id'),
                'description': _truncate(NVDClient.english_description(vuln)),
                'url': f"https://nvd.nist.gov/vuln/detail/{cve.get('id')}",
                'metadata': {
                    'cvss_score': score,
                    'published': cve.get('published'),
                    'last_modified': cve.get('lastModified'),
                    'references': [ref.get('url') for ref in cve.get('references', []) or []],
                },
                'risk': NVDClient.severity_from_cvss(score),
            })
        return make_envelope('NVD CVE', items)

    def search_google(self, query: str) -> Dict[str, Any]:
        if not self.google.is_configured:
            return make_envelope('Google Dorking', [], 'API key or Search Engine ID not configured')

        dork = f"{query} (inurl:admin OR inurl:login OR inurl:config OR filetype:sql OR filetype:log)"
        response = self.google.search(dork, count=10)
        items = []
        for index, item in enumerate(response.get('items', []) or []):
            link = item.get('link') or ''
            items.append({
                'id': f"google-{index}",
                'title': item.get('title'),
                'description': item.get('snippet'),
                'url': link,
                'metadata': {
                    'display_link': item.get('displayLink'),
                    'formatted_url': item.get('formattedUrl'),
                },
                'risk': 'medium' if 'admin' in link or 'login' in link else 'low',
            })
        return make_envelope('Google Dorking', items)

    def search_yandex(self, query: str) -> Dict[str, Any]:
        if not self.yandex.is_configured:
            return make_envelope('Yandex Dorking', [], NOT_CONFIGURED)

        dork = f"{query} (inurl:admin | inurl:login | inurl:config)"
        items = []
        for index, result in enumerate(self.yandex.search(dork)):
            url = result.get('url') or ''
            items.append({
                'id': f"yandex-{index}",
                'title': result.get('title'),
                'description': result.get('snippet'),
                'url': url,
                'metadata': {'domain': result.get('domain')},
                'risk': 'medium' if 'admin' in url or 'login' in url else 'low',
            })
        return make_envelope('Yandex Dorking', items)


def unified_search(query: str) -> List[Dict[str, Any]]:
    return UnifiedSearch().search(query)
