import re
import logging
from typing import Dict, List, Optional, Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from cyber_vault.clients.base import BaseClient
from cyber_vault.config import get_extra_setting
from cyber_vault.errors import APIError, APIKeyMissing

logger = logging.getLogger(__name__)

SECURITY_TERMS = '(cybersecurity OR security OR vulnerability OR threat OR malware OR phishing)'

HIGHLIGHT_TAG = re.compile(r'</?hlword>', re.IGNORECASE)


class GoogleSearchClient(BaseClient):
    """Google Custom Search JSON API"""

    service = 'GOOGLE_CSE'
    auth_param = 'key'

    def __init__(self, api_key: Optional[str] = None, engine_id: Optional[str] = None, **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.engine_id = engine_id if engine_id is not None else get_extra_setting(self.service)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.engine_id)

    def search(self, query: str, start_index: int = 1, count: int = 10, site_search: Optional[str] = None,
               date_restrict: Optional[str] = None, sort: Optional[str] = None, gl: Optional[str] = None,
               lr: Optional[str] = None, safe: str = 'active') -> Dict[str, Any]:
        """
        Run a Custom Search query
        :param count: Results wanted; Google returns at most 10 per request
        :return: Raw Custom Search response
        """
        if not self.engine_id:
            raise APIKeyMissing(self.name)

        params = {
            'cx': self.engine_id,
            'q': query,
            'start': start_index,
            'num': min(count, 10),
            'safe': safe,
        }
        optional = {'siteSearch': site_search, 'dateRestrict': date_restrict, 'sort': sort, 'gl': gl, 'lr': lr}
        params.update({key: value for key, value in optional.items() if value})

        return self._request('', params=params, cache_key=str(sorted(params.items())))

    def search_security_content(self, query: str, **options) -> Dict[str, Any]:
        options.setdefault('safe', 'active')
        return self.search(f"{query} {SECURITY_TERMS}", **options)

    def search_by_domain(self, domain: str, query: Optional[str] = None, **options) -> Dict[str, Any]:
        search_query = f"{query} site:{domain}" if query else f"site:{domain}"
        options.setdefault('site_search', domain)
        return self.search(search_query, **options)

    @staticmethod
    def results(response: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Flatten the response items into title/url/domain/snippet rows"""
        return [
            {
                'title': item.get('title'),
                'url': item.get('link'),
                'domain': item.get('displayLink'),
                'snippet': item.get('snippet'),
            }
            for item in response.get('items', []) or []
        ]


class YandexSearchClient(BaseClient):
    """Yandex XML search; the response is XML, not JSON"""

    service = 'YANDEX'

    def __init__(self, api_key: Optional[str] = None, user: Optional[str] = None, **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.user = user if user is not None else (get_extra_setting(self.service) or self.api_key)

    def search(self, query: str, page: int = 0) -> List[Dict[str, Any]]:
        params = {
            'user': self.user,
            'key': self.api_key,
            'query': query,
            'l10n': 'en',
            'sortby': 'rlv',
            'filter': 'none',
            'maxpassages': 3,
            'groupby': 'attr="".mode=flat.groups-on-page=10',
            'page': page,
        }
        xml = self._request('', params=params, headers={'Accept': 'application/xml'},
                            cache_key=f"{query}:{page}", as_text=True)
        return self.parse_results(xml)

    @staticmethod
    def parse_results(xml: str) -> List[Dict[str, Any]]:
        """Extract result documents from a Yandex XML response. An <error> element raises APIError."""
        soup = BeautifulSoup(HIGHLIGHT_TAG.sub('', xml or ''), 'html.parser')

        error = soup.find('error')
        if error is not None:
            raise APIError(error.get_text(strip=True) or 'Yandex search error',
                           code=f"YANDEX_{error.get('code', 'ERROR')}", source='Yandex XML Search')

        results = []
        for doc in soup.find_all('doc'):
            url_tag = doc.find('url')
            url = url_tag.get_text(strip=True) if url_tag else ''
            domain_tag = doc.find('domain')
            title_tag = doc.find('title')
            passages = [p.get_text(' ', strip=True) for p in doc.find_all('passage')]
            headline = doc.find('headline')

            results.append({
                'title': title_tag.get_text(' ', strip=True) if title_tag else url,
                'url': url,
                'domain': domain_tag.get_text(strip=True) if domain_tag else urlparse(url).netloc,
                'snippet': ' '.join(passages) or (headline.get_text(' ', strip=True) if headline else ''),
            })
        return results
