import os
import logging
from typing import Dict, List, Any
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Service registry. Keys are read from the environment at call time.
API_CONFIG: Dict[str, Dict[str, Any]] = {
    "SHODAN": {
        "name": "Shodan",
        "env_var": "SHODAN_API_KEY",
        "base_url": "https://api.shodan.io",
        "description": "Internet-connected device discovery and analysis",
        "signup_url": "https://account.shodan.io/",
        "required": True,
    },
    "VIRUSTOTAL": {
        "name": "VirusTotal",
        "env_var": "VIRUSTOTAL_API_KEY",
        "base_url": "https://www.virustotal.com/api/v3",
        "description": "Malware analysis and file/URL scanning",
        "signup_url": "https://www.virustotal.com/gui/my-apikey",
        "required": True,
    },
    "ABUSEIPDB": {
        "name": "AbuseIPDB",
        "env_var": "ABUSEIPDB_API_KEY",
        "extra_env_var": "ABUSEIPDB_API_KEY_2",
        "base_url": "https://api.abuseipdb.com/api/v2",
        "description": "IP address reputation and abuse reporting",
        "signup_url": "https://www.abuseipdb.com/api",
        "required": False,
    },
    "GREYNOISE": {
        "name": "GreyNoise",
        "env_var": "GREYNOISE_API_KEY",
        "base_url": "https://api.greynoise.io/v3",
        "description": "Internet background noise and scanning activity analysis",
        "signup_url": "https://viz.greynoise.io/account/api-key",
        "required": False,
    },
    "ALIENVAULT_OTX": {
        "name": "AlienVault OTX",
        "env_var": "ALIENVAULT_OTX_API_KEY",
        "base_url": "https://otx.alienvault.com/api/v1",
        "description": "Threat intelligence and indicators of compromise",
        "signup_url": "https://otx.alienvault.com/api",
        "required": False,
    },
    "NVD": {
        "name": "NVD",
        "env_var": "NVD_API_KEY",
        "base_url": "https://services.nvd.nist.gov/rest/json/cves/2.0",
        "description": "CVE vulnerability records (key optional, raises rate limit)",
        "signup_url": "https://nvd.nist.gov/developers/request-an-api-key",
        "required": False,
    },
    "ZOOMEYE": {
        "name": "ZoomEye",
        "env_var": "ZOOMEYE_API_KEY",
        "base_url": "https://api.zoomeye.org",
        "description": "Cyberspace search engine for hosts and web applications",
        "signup_url": "https://www.zoomeye.org/profile",
        "required": False,
    },
    "GOOGLE_CSE": {
        "name": "Google Custom Search",
        "env_var": "GOOGLE_SEARCH_API_KEY",
        "extra_env_var": "GOOGLE_SEARCH_ENGINE_ID",
        "base_url": "https://www.googleapis.com/customsearch/v1",
        "description": "Threat intelligence and OSINT searches",
        "signup_url": "https://developers.google.com/custom-search/v1/introduction",
        "required": False,
    },
    "YANDEX": {
        "name": "Yandex XML Search",
        "env_var": "YANDEX_SEARCH_API_KEY",
        "extra_env_var": "YANDEX_SEARCH_USER",
        "base_url": "https://yandex.com/search/xml",
        "description": "Yandex web search for dorking queries",
        "signup_url": "https://xml.yandex.com/settings/",
        "required": False,
    },
    "HIBP": {
        "name": "Have I Been Pwned",
        "env_var": "HIBP_API_KEY",
        "base_url": "https://haveibeenpwned.com/api/v3",
        "description": "Data breach detection and password compromise checking",
        "signup_url": "https://haveibeenpwned.com/API/Key",
        "required": False,
    },
    "WHOISXML": {
        "name": "WhoisXML",
        "env_var": "WHOISXML_API_KEY",
        "base_url": "https://www.whoisxmlapi.com/whoisserver/WhoisService",
        "description": "Domain WHOIS records",
        "signup_url": "https://whois.whoisxmlapi.com/",
        "required": False,
    },
    "IPINFO": {
        "name": "IPinfo",
        "env_var": "IPINFO_API_KEY",
        "base_url": "https://ipinfo.io",
        "description": "IP geolocation (falls back to the keyless ip-api.com)",
        "signup_url": "https://ipinfo.io/signup",
        "required": False,
    },
}

# Services that still answer without a key
KEYLESS_SERVICES = {"NVD", "IPINFO"}


def is_valid_api_key(key: str) -> bool:
    """Check that a key is set and is not a template placeholder"""
    if not key or not key.strip():
        return False
    return "your_" not in key and "YOUR_" not in key


def get_api_key(service: str) -> str:
    """Return the first valid key configured for a service, or an empty string"""
    entry = API_CONFIG[service]
    candidates = [os.getenv(entry["env_var"], "")]
    # AbuseIPDB accepts a second key
    if service == "ABUSEIPDB":
        candidates.append(os.getenv(entry["extra_env_var"], ""))
    for key in candidates:
        if is_valid_api_key(key):
            return key.strip()
    return ""


def get_extra_setting(service: str) -> str:
    """Return the secondary setting (engine id, user name) for a service"""
    env_var = API_CONFIG[service].get("extra_env_var")
    if not env_var:
        return ""
    value = os.getenv(env_var, "")
    return value.strip() if is_valid_api_key(value) else ""


def is_configured(service: str) -> bool:
    if service == "GOOGLE_CSE":
        return bool(get_api_key(service)) and bool(get_extra_setting(service))
    return bool(get_api_key(service))


def _describe(service: str) -> Dict[str, Any]:
    entry = API_CONFIG[service]
    return {
        "service": service,
        "name": entry["name"],
        "base_url": entry["base_url"],
        "description": entry["description"],
        "signup_url": entry["signup_url"],
        "required": entry["required"],
        "requires_key": service not in KEYLESS_SERVICES,
        "is_configured": is_configured(service),
    }


def get_configured_apis() -> List[Dict[str, Any]]:
    return [_describe(service) for service in API_CONFIG if is_configured(service)]


def get_unconfigured_apis() -> List[Dict[str, Any]]:
    return [_describe(service) for service in API_CONFIG if not is_configured(service)]


def has_minimum_apis_configured() -> bool:
    """Shodan and VirusTotal are the minimum for live data"""
    return all(is_configured(service) for service, entry in API_CONFIG.items() if entry["required"])


def get_api_status_summary() -> Dict[str, Any]:
    configured = get_configured_apis()
    unconfigured = get_unconfigured_apis()
    total = len(API_CONFIG)

    return {
        "configured": len(configured),
        "unconfigured": len(unconfigured),
        "total": total,
        "percentage": round(len(configured) / total * 100) if total else 0,
        "has_minimum_required": has_minimum_apis_configured(),
        "configured_apis": configured,
        "unconfigured_apis": unconfigured,
    }


def _int_setting(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid value for {name}, using default {default}")
        return default


def get_rate_limit_per_minute() -> int:
    return _int_setting("API_RATE_LIMIT_REQUESTS_PER_MINUTE", 60)


def get_cache_ttl() -> int:
    return _int_setting("API_CACHE_TTL_SECONDS", 300)


def get_request_timeout() -> int:
    return _int_setting("API_REQUEST_TIMEOUT_SECONDS", 30)


def get_max_retries() -> int:
    return max(1, _int_setting("API_MAX_RETRIES", 3))


def get_retry_delay() -> int:
    return _int_setting("API_RETRY_DELAY_SECONDS", 1)


def get_scan_interval() -> int:
    return _int_setting("SCAN_INTERVAL_MINUTES", 15)


def get_high_risk_threshold() -> int:
    return _int_setting("HIGH_RISK_THRESHOLD", 60)


def get_watchlist() -> List[str]:
    raw = os.getenv("WATCHLIST_IPS", "")
    return [ip.strip() for ip in raw.split(",") if ip.strip()]


def get_database_url() -> str:
    """DATABASE_URL wins, then the POSTGRES_* variables, then a local SQLite file"""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    host = os.getenv("POSTGRES_HOST")
    if host:
        user = os.getenv("POSTGRES_USER", "postgres")
        password = os.getenv("POSTGRES_PASSWORD", "postgres")
        port = os.getenv("POSTGRES_PORT", "5432")
        name = os.getenv("POSTGRES_DB", "cyber_vault")
        return f"postgresql://{user}:{password}@{host}:{port}/{name}"

    return "sqlite:///cyber_vault.db"
