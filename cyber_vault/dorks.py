"""Search-engine dork libraries for the Dork Library page. For auditing your own exposure."""
from typing import Dict, List, Optional
from urllib.parse import quote

SEARCH_ENGINES = {
    'google': {'name': 'Google', 'base_url': 'https://www.google.com/search?q=', 'icon': '🔍'},
    'yandex': {'name': 'Yandex', 'base_url': 'https://yandex.com/search/?text=', 'icon': '🌐'},
}

RISK_LEVELS = ['Low', 'Medium', 'High', 'Critical']


def _dork(name: str, query: str, description: str, risk: str, category: str,
          explanation: str, tips: List[str]) -> Dict:
    return {
        'name': name,
        'query': query,
        'description': description,
        'risk': risk,
        'category': category,
        'explanation': explanation,
        'tips': tips,
    }


GOOGLE_DORKS = [
    _dork('Exposed Configuration Files', 'filetype:env "DB_PASSWORD" OR "API_KEY" OR "SECRET"',
          'Find exposed environment configuration files', 'Critical', 'Data Leaks',
          'Searches for .env files containing database passwords, API keys and secrets that should never be public.',
          ['These files often contain critical credentials', 'Use this to audit your own organization']),
    _dork('Open Directory Listings', 'intitle:"Index of" inurl:ftp',
          'Find open FTP directory listings', 'Medium', 'Open Directories',
          'Locates FTP servers with directory browsing enabled, potentially exposing sensitive files.',
          ['Look but do not download files', 'Report open directories to administrators']),
    _dork('Exposed Admin Panels', 'inurl:admin intitle:"admin panel" OR intitle:"admin login"',
          'Find administrative login panels', 'High', 'Admin Interfaces',
          'Searches for web-based admin panels that might be using default credentials or weak security.',
          ['Never attempt to log in to panels you find', 'Admin panels should not be publicly accessible']),
    _dork('Vulnerable WordPress Sites', 'inurl:wp-admin "powered by wordpress" -inurl:https',
          'WordPress sites with exposed admin areas over HTTP', 'Medium', 'Web Applications',
          'Finds WordPress sites with admin panels accessible over unencrypted HTTP connections.',
          ['HTTP admin logins can be intercepted', 'Always use HTTPS for admin areas']),
    _dork('Database Dumps', 'filetype:sql "INSERT INTO" password',
          'Find exposed SQL database dumps', 'Critical', 'Data Leaks',
          'Searches for SQL dump files that might contain user passwords and sensitive data.',
          ['Never download or access the actual files', 'Immediately report to site owners']),
    _dork('IoT Device Web Interfaces', 'inurl:8080 intitle:"camera" OR intitle:"webcam"',
          'Find IoT camera web interfaces', 'Medium', 'IoT Security',
          'Locates network cameras exposing their web interface to the internet.',
          ['Change default credentials on your own devices', 'Keep camera firmware updated']),
    _dork('Backup Files', 'filetype:bak OR filetype:backup OR filetype:old',
          'Find forgotten backup files', 'Medium', 'Data Exposure',
          'Backup copies left on web servers often include source code or configuration.',
          ['Remove backups from web roots', 'Check your own servers regularly']),
]

YANDEX_DORKS = [
    _dork('Government Document Leaks', 'site:*.gov filetype:pdf "confidential" OR "classified"',
          'Find government documents marked confidential', 'Critical', 'Document Leaks',
          'Searches government domains for documents carrying confidentiality markings.',
          ['Report exposures to the publishing agency', 'Do not redistribute findings']),
    _dork('Medical Record Exposures', 'filetype:xls "patient" "diagnosis" "medical record"',
          'Find spreadsheets with patient data', 'Critical', 'Healthcare Data',
          'Looks for spreadsheets that appear to contain medical records.',
          ['Health data is heavily regulated', 'Notify the data owner immediately']),
    _dork('Financial Data Leaks', 'filetype:csv "credit card" OR "social security" OR "account number"',
          'Find CSV files with financial identifiers', 'Critical', 'Financial Data',
          'Searches for CSV exports that mention card or account numbers.',
          ['Never download the files', 'Report to the affected organization']),
    _dork('Email Server Configurations', 'inurl:webmail "postfix" OR "sendmail" config',
          'Find exposed mail server configuration', 'High', 'Email Security',
          'Mail server configuration pages can reveal relays and credentials.',
          ['Restrict admin pages to internal networks', 'Audit your own mail setup']),
    _dork('Network Configuration Files', 'filetype:conf "router" OR "switch" "password" -example',
          'Find router and switch configuration files', 'High', 'Network Security',
          'Device configuration files sometimes include plaintext passwords.',
          ['Rotate any credentials that leak', 'Store configs outside public paths']),
]

HALLOWEEN_DORKS = [
    _dork('Phantom FTP Servers', 'intitle:"Index of" halloween OR ghost OR phantom filetype:exe',
          'Spooky named executables in open directories', 'Low', 'Halloween Special',
          'Finds open directories hosting executables with ghostly names.',
          ['Never run executables you find', 'Good practice for spotting open directories']),
    _dork('Cursed Configuration Files', 'filetype:cfg "demon" OR "evil" OR "dark" OR "shadow"',
          'Discover configuration files with dark themed names', 'Low', 'Halloween Special',
          'Searches for configuration files that developers have given spooky or dark names.',
          ['Usually harmless but interesting finds', 'Shows creative developer naming conventions']),
]

DORK_LIBRARIES = {
    'google': GOOGLE_DORKS,
    'yandex': YANDEX_DORKS,
    'halloween': HALLOWEEN_DORKS,
}


def get_dorks(engine: str = 'google', category: Optional[str] = None) -> List[Dict]:
    """Dorks for one library ('google', 'yandex' or 'halloween'), optionally filtered by category"""
    dorks = DORK_LIBRARIES.get(engine.lower())
    if dorks is None:
        raise ValueError(f"Unknown dork library: {engine}")
    if category:
        return [dork for dork in dorks if dork['category'] == category]
    return list(dorks)


def get_dorks_by_risk(engine: str, risk: str) -> List[Dict]:
    return [dork for dork in get_dorks(engine) if dork['risk'] == risk]


def get_categories(engine: str = 'google') -> List[str]:
    categories = []
    for dork in get_dorks(engine):
        if dork['category'] not in categories:
            categories.append(dork['category'])
    return categories


def build_search_url(engine: str, query: str) -> str:
    search_engine = SEARCH_ENGINES.get(engine.lower())
    if search_engine is None:
        raise ValueError(f"Unknown search engine: {engine}")
    return f"{search_engine['base_url']}{quote(query, safe='')}"
