import argparse
import logging
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich import box
from rich.panel import Panel
from rich.progress import Progress

from cyber_vault import __version__, dorks
from cyber_vault.analyzers import DomainAnalyzer
from cyber_vault.clients import NVDClient, VirusTotalClient
from cyber_vault.config import get_api_status_summary, get_high_risk_threshold
from cyber_vault.data_manager import ThreatDataManager
from cyber_vault.database import get_db
from cyber_vault.errors import APIError
from cyber_vault.threat_aggregation import ThreatAggregator, get_threat_level
from cyber_vault.unified_search import unified_search
from cyber_vault.utils.security import InputValidator

console = Console()

LEVEL_STYLES = {
    'critical': 'bold red',
    'high': 'red',
    'medium': 'yellow',
    'low': 'green',
}


class CyberVaultCLI:
    def __init__(self, database_url: Optional[str] = None):
        self.db = get_db(database_url)
        self.data_manager = ThreatDataManager(self.db)

    def close(self):
        self.db.close()

    def lookup(self, indicator: str):
        """Look up an IP, domain or file hash"""
        indicator = InputValidator.sanitize_input(indicator)
        kind = InputValidator.classify_indicator(indicator)
        if kind == 'ip':
            self.lookup_ip(indicator)
        elif kind == 'hash':
            self.lookup_hash(indicator)
        else:
            self.lookup_domain(indicator)

    def lookup_ip(self, ip: str):
        with Progress() as progress:
            task = progress.add_task(f"[cyan]Querying threat sources for {ip}...", total=100)
            report = ThreatAggregator(data_manager=self.data_manager).get_unified_threat_intel(ip)
            progress.update(task, completed=100)

        level = report['threat_level']
        summary = Table.grid(padding=1)
        summary.add_row("IP Address:", f"[cyan]{report['ip']}")
        summary.add_row("Risk Score:", f"[{LEVEL_STYLES[level]}]{report['risk_score']}")
        summary.add_row("Threat Level:", f"[{LEVEL_STYLES[level]}]{level.upper()}")
        summary.add_row("Checked At:", f"[yellow]{report['timestamp']}")
        console.print(Panel(summary, title="Threat Intelligence", box=box.ROUNDED))

        table = Table(title="Source Results", box=box.MINIMAL_DOUBLE_HEAD)
        table.add_column("Source", style="cyan")
        table.add_column("Finding", style="yellow")

        greynoise = report['greynoise']
        table.add_row("GreyNoise", greynoise.get('classification', 'unknown') if greynoise else "[dim]no data")

        shodan = report['shodan']
        if shodan:
            ports = ", ".join(map(str, shodan.get('ports', []))) or "none"
            table.add_row("Shodan", f"ports {ports}; {len(shodan.get('vulns', []))} vulns")
        else:
            table.add_row("Shodan", "[dim]no data")

        otx = report['otx']
        pulses = ((otx or {}).get('pulse_info') or {}).get('count', 0)
        table.add_row("AlienVault OTX", f"{pulses} pulses" if otx else "[dim]no data")

        abuse = report['abuseipdb']
        table.add_row("AbuseIPDB", f"{abuse['abuse_confidence']}% confidence, {abuse['total_reports']} reports"
                      if abuse else "[dim]no data")

        vt = report['virustotal']
        table.add_row("VirusTotal", f"{vt['malicious']} malicious / {vt['total']} engines" if vt else "[dim]no data")
        console.print(table)

    def lookup_hash(self, digest: str):
        client = VirusTotalClient()
        if not client.is_configured:
            console.print("[red]VirusTotal API key is required for file hash lookups")
            return
        result = client.lookup(digest)
        if result is None:
            console.print(f"[yellow]No VirusTotal record for {digest}")
            return

        table = Table(title=f"VirusTotal: {digest}", box=box.MINIMAL_DOUBLE_HEAD)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow")
        for key in ('malicious', 'suspicious', 'harmless', 'undetected', 'reputation', 'risk'):
            table.add_row(key.capitalize(), str(result[key]))
        console.print(table)

        level = {'critical': 'critical', 'high': 'high'}.get(result['risk'], 'low')
        score = 100 if level == 'critical' else 60 if level == 'high' else 0
        self.data_manager.record_lookup(digest, 'hash', score, level, ['virustotal'])

    def lookup_domain(self, domain: str):
        with Progress() as progress:
            task = progress.add_task(f"[cyan]Analyzing {domain}...", total=100)
            analysis = DomainAnalyzer().analyze_domain(domain, data_manager=self.data_manager)
            progress.update(task, completed=100)

        whois_info = analysis['whois_info']
        info = Table.grid(padding=1)
        info.add_row("Domain:", f"[cyan]{analysis['domain']}")
        info.add_row("Registrar:", f"[yellow]{whois_info.get('registrar')}")
        info.add_row("Created:", f"[yellow]{whois_info.get('creation_date')}")
        info.add_row("Expires:", f"[yellow]{whois_info.get('expiration_date')}")
        info.add_row("Risk Score:", f"[red]{analysis['risk_score']}")
        console.print(Panel(info, title="Domain Analysis", box=box.ROUNDED))

        dns_table = Table(title="DNS Records", box=box.MINIMAL_DOUBLE_HEAD)
        dns_table.add_column("Type", style="cyan")
        dns_table.add_column("Values", style="yellow")
        for record_type, values in analysis['dns_records'].items():
            dns_table.add_row(record_type, "\n".join(values) or "-")
        console.print(dns_table)

        timeline = Table(title="Wayback Snapshots", box=box.MINIMAL_DOUBLE_HEAD)
        timeline.add_column("Date", style="cyan")
        timeline.add_column("URL", style="yellow")
        timeline.add_column("Status")
        for snapshot in analysis['wayback']:
            timeline.add_row(snapshot['date'], snapshot['url'], snapshot['status'])
        console.print(timeline)

    def search(self, query: str):
        with Progress() as progress:
            task = progress.add_task(f"[cyan]Searching all sources for {query}...", total=100)
            results = unified_search(query)
            progress.update(task, completed=100)

        for envelope in results:
            if envelope['status'] == 'error':
                console.print(f"[bold]{envelope['source']}[/bold]: [red]{envelope['error']}")
                continue
            if not envelope['data']:
                console.print(f"[bold]{envelope['source']}[/bold]: [dim]no results")
                continue

            table = Table(title=envelope['source'], box=box.MINIMAL_DOUBLE_HEAD)
            table.add_column("Title", style="cyan")
            table.add_column("Risk")
            table.add_column("Description", style="yellow")
            for item in envelope['data']:
                risk = item.get('risk', 'low')
                table.add_row(str(item.get('title')), f"[{LEVEL_STYLES.get(risk, 'white')}]{risk}",
                              str(item.get('description') or ''))
            console.print(table)

    def show_cves(self, keyword: Optional[str] = None, days: int = 7):
        client = NVDClient()
        if keyword:
            try:
                vulns = [NVDClient.summarize(vuln) for vuln in client.search(keyword, 20)]
            except APIError as e:
                console.print(f"[red]NVD search failed: {e.message}")
                return
        else:
            vulns = [NVDClient.summarize(vuln) for vuln in client.get_recent_vulnerabilities(20, days)]
            if not vulns:
                vulns = client.get_vulnerability_analysis()

        table = Table(title=f"Vulnerabilities{' matching ' + keyword if keyword else ''}",
                      box=box.MINIMAL_DOUBLE_HEAD)
        table.add_column("CVE", style="cyan")
        table.add_column("CVSS", style="red")
        table.add_column("Severity")
        table.add_column("Title", style="yellow")
        table.add_column("Published")
        for vuln in vulns:
            severity = vuln.get('severity', 'low')
            table.add_row(vuln.get('id', ''), f"{vuln.get('cvss', 0):.1f}",
                          f"[{LEVEL_STYLES.get(severity, 'white')}]{severity}",
                          vuln.get('title', ''), vuln.get('published', ''))
        console.print(table)

    def show_status(self):
        summary = get_api_status_summary()

        table = Table(title="API Configuration", box=box.MINIMAL_DOUBLE_HEAD)
        table.add_column("Service", style="cyan")
        table.add_column("Status")
        table.add_column("Required")
        table.add_column("Sign Up", style="dim")
        for api in summary['configured_apis']:
            table.add_row(api['name'], "[green]configured", "yes" if api['required'] else "no", "")
        for api in summary['unconfigured_apis']:
            table.add_row(api['name'], "[red]missing", "yes" if api['required'] else "no", api['signup_url'])
        console.print(table)

        style = "green" if summary['has_minimum_required'] else "red"
        console.print(f"[{style}]{summary['configured']}/{summary['total']} services configured "
                      f"({summary['percentage']}%)")

    def show_dorks(self, engine: str = 'google', category: Optional[str] = None):
        table = Table(title=f"{engine.capitalize()} Dorks", box=box.MINIMAL_DOUBLE_HEAD)
        table.add_column("Name", style="cyan")
        table.add_column("Risk", style="red")
        table.add_column("Category")
        table.add_column("Query", style="yellow")
        for dork in dorks.get_dorks(engine, category):
            table.add_row(dork['name'], dork['risk'], dork['category'], dork['query'])
        console.print(table)
        console.print("[dim]Only audit systems you own or are authorized to test.")

    def show_history(self, hours: int = 24, high_risk: bool = False):
        if high_risk:
            lookups = self.data_manager.get_high_risk_lookups()
            title = f"High Risk Lookups (Score >= {get_high_risk_threshold()})"
        else:
            lookups = self.data_manager.get_recent_lookups(hours=hours)
            title = f"Lookups in the last {hours} hours"

        table = Table(title=title, box=box.MINIMAL_DOUBLE_HEAD)
        table.add_column("Indicator", style="cyan")
        table.add_column("Type")
        table.add_column("Score", style="red")
        table.add_column("Level")
        table.add_column("Sources", style="dim")
        table.add_column("Looked Up", style="yellow")
        for entry in lookups:
            level = entry.threat_level or get_threat_level(int(entry.risk_score or 0))
            table.add_row(entry.indicator, entry.indicator_type, f"{entry.risk_score:.0f}",
                          f"[{LEVEL_STYLES.get(level, 'white')}]{level}",
                          ", ".join(entry.sources_checked or []),
                          entry.looked_up_at.strftime('%Y-%m-%d %H:%M'))
        console.print(table)

        stats = self.data_manager.get_statistics()
        console.print(f"[cyan]Total lookups:[/cyan] {stats['total_lookups']}  "
                      f"[cyan]Average score:[/cyan] {stats['average_risk_score']:.2f}")


def serve(host: str, port: int, debug: bool = False):
    from cyber_vault.api import create_app

    create_app().run(host=host, port=port, debug=debug)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cyber Vault threat intelligence CLI")
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Show debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    lookup_parser = subparsers.add_parser('lookup', help='Look up an IP, domain or file hash')
    lookup_parser.add_argument('indicator', help='IP address, domain or hash')

    search_parser = subparsers.add_parser('search', help='Search every source for a term')
    search_parser.add_argument('query', help='Search query')

    cves_parser = subparsers.add_parser('cves', help='Show recent or matching CVEs')
    cves_parser.add_argument('--keyword', help='Keyword to search the NVD for')
    cves_parser.add_argument('--days', type=int, default=7, help='Look back this many days (default: 7)')

    subparsers.add_parser('status', help='Show which APIs are configured')

    dorks_parser = subparsers.add_parser('dorks', help='List search dorks')
    dorks_parser.add_argument('--engine', default='google', choices=sorted(dorks.DORK_LIBRARIES),
                              help='Dork library (default: google)')
    dorks_parser.add_argument('--category', help='Only show this category')

    history_parser = subparsers.add_parser('history', help='Show lookup history')
    history_parser.add_argument('--hours', type=int, default=24, help='Look back this many hours (default: 24)')
    history_parser.add_argument('--high-risk', action='store_true', help='Only show high risk lookups')

    serve_parser = subparsers.add_parser('serve', help='Run the JSON API')
    serve_parser.add_argument('--host', default='127.0.0.1')
    serve_parser.add_argument('--port', type=int, default=5000)
    serve_parser.add_argument('--debug', action='store_true')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.command is None:
        parser.print_help()
        return
    if args.command == 'serve':
        serve(args.host, args.port, args.debug)
        return

    cli = CyberVaultCLI()
    try:
        if args.command == 'lookup':
            cli.lookup(args.indicator)
        elif args.command == 'search':
            cli.search(args.query)
        elif args.command == 'cves':
            cli.show_cves(args.keyword, args.days)
        elif args.command == 'status':
            cli.show_status()
        elif args.command == 'dorks':
            cli.show_dorks(args.engine, args.category)
        elif args.command == 'history':
            cli.show_history(args.hours, args.high_risk)
    except APIError as e:
        console.print(f"[red]Error: {e.message}")
    finally:
        cli.close()


if __name__ == '__main__':
    main()
