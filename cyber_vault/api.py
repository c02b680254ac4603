"""
JSON API for the dashboard front end.

Every response carries `success` and `timestamp`; failures add `message` and `code`.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from cyber_vault import __version__, dorks, mock_data, threat_map
from cyber_vault.analyzers import DomainAnalyzer
from cyber_vault.clients import (
    GeoLocationClient,
    GoogleSearchClient,
    GreyNoiseClient,
    NVDClient,
    OTXClient,
    ShodanClient,
    VirusTotalClient,
    ZoomEyeClient,
)
from cyber_vault.config import get_api_status_summary, get_database_url
from cyber_vault.data_manager import ThreatDataManager
from cyber_vault.database import get_db
from cyber_vault.errors import APIError, APIKeyMissing, InvalidInputError
from cyber_vault.threat_aggregation import ThreatAggregator
from cyber_vault.unified_search import unified_search
from cyber_vault.utils.security import InputValidator

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 1000


def _timestamp() -> str:
    return datetime.utcnow().isoformat()


def success(data: Any, message: str = '', status: int = 200):
    return jsonify({'success': True, 'data': data, 'message': message, 'timestamp': _timestamp()}), status


def failure(message: str, code: str, status: int):
    return jsonify({'success': False, 'message': message, 'code': code, 'timestamp': _timestamp()}), status


def _int_arg(value: Any, default: int, field: str) -> int:
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(field, 'must be an integer')


def _query_from_request(get_name: str = 'q', post_name: str = 'query') -> str:
    if request.method == 'POST':
        body = request.get_json(silent=True) or {}
        query = body.get(post_name)
    else:
        query = request.args.get(get_name) or request.args.get(post_name)

    if not isinstance(query, str) or not query.strip():
        raise InvalidInputError(post_name, 'is required')
    if len(query) > MAX_QUERY_LENGTH:
        raise InvalidInputError(post_name, 'is too long')
    return query.strip()


def _data_manager() -> ThreatDataManager:
    if 'data_manager' not in g:
        g.data_manager = ThreatDataManager(get_db(current_app.config['DATABASE_URL']))
    return g.data_manager


def _shodan_match(match: Dict[str, Any]) -> Dict[str, Any]:
    location = match.get('location') or {}
    banner = match.get('data') or ''
    return {
        'ip': match.get('ip_str'),
        'port': match.get('port'),
        'org': match.get('org') or 'Unknown',
        'hostnames': match.get('hostnames') or [],
        'location': {
            'country_name': location.get('country_name') or 'Unknown',
            'city': location.get('city') or 'Unknown',
        },
        'data': banner[:200] + '...' if banner else '',
        'product': match.get('product') or 'Unknown',
        'version': match.get('version') or '',
        'timestamp': match.get('timestamp'),
        'transport': match.get('transport') or 'tcp',
    }


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):
        logger.error(f"API error ({error.code}): {error.message}")
        # Network failures carry status 0, which is not an HTTP status
        return failure(error.message, error.code, error.status or 502)

    @app.errorhandler(ValueError)
    def handle_value_error(error: ValueError):
        return failure(str(error), 'INVALID_INPUT', 400)

    @app.errorhandler(404)
    def handle_not_found(error):
        return failure('Resource not found', 'NOT_FOUND', 404)

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return failure(error.description, error.name.upper().replace(' ', '_'), error.code)
        logger.exception(f"Unhandled error: {str(error)}")
        return failure('Internal server error', 'INTERNAL_ERROR', 500)


def register_routes(app: Flask) -> None:
    @app.route('/health')
    def health():
        return success({'status': 'healthy', 'version': __version__})

    @app.route('/api/status')
    def api_status():
        return success(get_api_status_summary())

    @app.route('/api/threat-intel/<ip>')
    def threat_intel(ip):
        report = ThreatAggregator(data_manager=_data_manager()).get_unified_threat_intel(ip)
        return success(report, f"Threat level {report['threat_level']} for {report['ip']}")

    @app.route('/api/search', methods=['GET', 'POST'])
    def search():
        query = _query_from_request()
        results = unified_search(query)
        found = sum(len(result['data']) for result in results)
        return success(results, f"Found {found} results across {len(results)} sources")

    @app.route('/api/search/security', methods=['GET', 'POST'])
    def search_security():
        query = _query_from_request()
        if request.method == 'POST':
            body = request.get_json(silent=True) or {}
            start_index = _int_arg(body.get('startIndex'), 1, 'startIndex')
            count = _int_arg(body.get('count'), 10, 'count')
        else:
            start_index = _int_arg(request.args.get('start'), 1, 'start')
            count = _int_arg(request.args.get('num'), 10, 'num')

        client = GoogleSearchClient()
        if not client.is_configured:
            raise APIKeyMissing(client.name)
        response = client.search_security_content(query, start_index=start_index, count=count)
        total = (response.get('searchInformation') or {}).get('totalResults', 0)
        return success({
            'query': query,
            'total': _int_arg(total, 0, 'totalResults'),
            'results': GoogleSearchClient.results(response),
        })

    @app.route('/api/cyber-search', methods=['GET', 'POST'])
    def cyber_search():
        query = _query_from_request('query')
        if request.method == 'POST':
            filters = (request.get_json(silent=True) or {}).get('filters') or {}
            page = _int_arg(filters.get('page'), 1, 'page')
            per_page = _int_arg(filters.get('perPage'), 20, 'perPage')
            country, service = filters.get('country', ''), filters.get('service', '')
        else:
            page = _int_arg(request.args.get('page'), 1, 'page')
            per_page = _int_arg(request.args.get('perPage'), 20, 'perPage')
            country, service = request.args.get('country', ''), request.args.get('service', '')

        if page < 1:
            raise InvalidInputError('page', 'must be a positive integer')
        per_page = max(1, min(per_page, mock_data.MAX_PER_PAGE))

        results = mock_data.generate_cyber_search_results(query, per_page * 3)
        results = mock_data.filter_results(results, country, service)
        data = mock_data.paginate_results(results, page, per_page, query)
        return success(data, f"Found {data['total']} results for \"{query}\"")

    @app.route('/api/shodan/search', methods=['POST'])
    def shodan_search():
        query = _query_from_request()
        body = request.get_json(silent=True) or {}
        limit = _int_arg(body.get('limit'), 10, 'limit')
        page = _int_arg(body.get('page'), 1, 'page')

        client = ShodanClient()
        data = client.search(query, limit=limit, page=page, facets=body.get('facets'))
        return success({
            'total': data.get('total', 0),
            'matches': [_shodan_match(match) for match in data.get('matches', [])[:10]],
            'facets': data.get('facets', {}),
            'demo': not client.is_configured,
        })

    @app.route('/api/shodan/iot-stats')
    def shodan_iot_stats():
        return success(ShodanClient().get_iot_stats())

    @app.route('/api/greynoise/ip-lookup')
    def greynoise_ip_lookup():
        ip = InputValidator.sanitize_input(request.args.get('ip', ''))
        if not InputValidator.validate_ip(ip):
            raise InvalidInputError('ip', 'not a valid IP address')
        client = GreyNoiseClient()
        if not client.is_configured:
            raise APIKeyMissing(client.name)
        return success(client.lookup_summary(ip))

    @app.route('/api/greynoise/threats')
    def greynoise_threats():
        data = GreyNoiseClient().get_display_threats()
        return success(data['threats'], f"Source: {data['source']}")

    @app.route('/api/otx/threats')
    def otx_threats():
        return success(OTXClient().get_threat_intelligence())

    @app.route('/api/otx/indicators')
    def otx_indicators():
        client = OTXClient()
        indicator = InputValidator.sanitize_input(request.args.get('indicator', ''))
        if indicator:
            if not client.is_configured:
                raise APIKeyMissing(client.name)
            return success(client.get_indicator(indicator))
        limit = _int_arg(request.args.get('limit'), 20, 'limit')
        return success(client.get_recent_indicators(limit))

    @app.route('/api/vulnerabilities')
    def vulnerabilities():
        source = request.args.get('source', 'nvd')
        if source == 'virustotal':
            return success(VirusTotalClient().get_recent_cves())
        nvd = NVDClient()
        return success({
            'vulnerabilities': nvd.get_vulnerability_analysis(),
            'stats': nvd.get_vulnerability_stats(),
        })

    @app.route('/api/threats')
    def threats():
        return success(VirusTotalClient().get_recent_threats())

    @app.route('/api/zoomeye/search', methods=['POST'])
    def zoomeye_search():
        query = _query_from_request()
        body = request.get_json(silent=True) or {}
        search_type = body.get('type', 'host')
        if search_type not in ('host', 'web'):
            raise InvalidInputError('type', 'must be either "host" or "web"')
        page = _int_arg(body.get('page'), 1, 'page')

        client = ZoomEyeClient()
        if search_type == 'host':
            results = client.search_hosts(query, page=page, facets=body.get('facets'))
        else:
            results = client.search_web(query, page=page, facets=body.get('facets'))
        return success(results, f"🔮 The digital séance has revealed {len(results['matches'])} "
                                f"spectral entities for your query: \"{query}\"")

    @app.route('/api/zoomeye/user')
    def zoomeye_user():
        return success(ZoomEyeClient().get_user_info())

    @app.route('/api/dashboard')
    def dashboard():
        return success({
            'metrics': mock_data.generate_dashboard_metrics(),
            'stats': ThreatAggregator(data_manager=_data_manager()).get_dashboard_stats(),
        })

    @app.route('/api/live-feed')
    def live_feed():
        return success(ThreatAggregator().get_live_threat_feed())

    @app.route('/api/threat-map')
    def threat_map_data():
        return success(threat_map.fetch_threat_data())

    @app.route('/api/threat-map/countries')
    def threat_map_countries():
        return success(threat_map.get_country_threat_map())

    @app.route('/api/geolocation/<ip>')
    def geolocation(ip):
        location = GeoLocationClient().lookup(ip)
        if location is None:
            return success(None, f"No location available for {ip.strip()}")
        return success(location, f"Located via {location['provider']}")

    @app.route('/api/dorks')
    def dork_library():
        engine = request.args.get('engine', 'google')
        risk = request.args.get('risk')
        if risk:
            items = dorks.get_dorks_by_risk(engine, risk)
        else:
            items = dorks.get_dorks(engine, request.args.get('category'))
        search_engine = 'yandex' if engine == 'yandex' else 'google'
        items = [dict(item, search_url=dorks.build_search_url(search_engine, item['query'])) for item in items]
        return success(items)

    @app.route('/api/domain/<domain>')
    def domain_analysis(domain):
        return success(DomainAnalyzer().analyze_domain(domain, data_manager=_data_manager()))

    @app.route('/api/history')
    def history():
        hours = _int_arg(request.args.get('hours'), 24, 'hours')
        limit = _int_arg(request.args.get('limit'), 50, 'limit')
        manager = _data_manager()
        return success({
            'lookups': [entry.to_dict() for entry in manager.get_recent_lookups(hours=hours, limit=limit)],
            'statistics': manager.get_statistics(),
        })


def create_app(database_url: Optional[str] = None) -> Flask:
    app = Flask(__name__)
    app.config['DATABASE_URL'] = database_url or get_database_url()
    CORS(app)

    @app.teardown_appcontext
    def close_session(exc):
        manager = g.pop('data_manager', None)
        if manager is not None:
            manager.db.close()

    register_error_handlers(app)
    register_routes(app)
    return app
