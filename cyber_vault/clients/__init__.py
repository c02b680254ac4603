from .base import BaseClient, make_envelope, reset_shared_state
from .shodan import ShodanClient
from .virustotal import VirusTotalClient
from .greynoise import GreyNoiseClient
from .otx import OTXClient
from .nvd import NVDClient
from .abuseipdb import AbuseIPDBClient
from .zoomeye import ZoomEyeClient
from .search_engines import GoogleSearchClient, YandexSearchClient
from .geolocation import GeoLocationClient

__all__ = [
    'BaseClient', 'make_envelope', 'reset_shared_state',
    'ShodanClient', 'VirusTotalClient', 'GreyNoiseClient', 'OTXClient', 'NVDClient',
    'AbuseIPDBClient', 'ZoomEyeClient', 'GoogleSearchClient', 'YandexSearchClient', 'GeoLocationClient',
]
