import streamlit as st
import pandas as pd
import plotly.express as px
from typing import Dict, List, Any

from cyber_vault import dorks, mock_data, threat_map
from cyber_vault.analyzers import DomainAnalyzer
from cyber_vault.clients import AbuseIPDBClient, NVDClient, ShodanClient
from cyber_vault.config import get_api_status_summary
from cyber_vault.data_manager import ThreatDataManager
from cyber_vault.database import get_db
from cyber_vault.errors import APIError
from cyber_vault.threat_aggregation import ThreatAggregator
from cyber_vault.unified_search import unified_search
from cyber_vault.utils.security import InputValidator

PAGES = ["Dashboard", "IP Reputation", "Domain Analysis", "Cyber Search", "Vulnerabilities",
         "Dork Library", "API Status"]

RISK_COLORS = {
    'critical': '#dc2626',
    'high': '#ea580c',
    'medium': '#ca8a04',
    'low': '#16a34a',
}

# Add health check endpoint
if st.query_params.get("health") == "check":
    st.write("OK")
    st.stop()


def init_session_state():
    if 'db' not in st.session_state:
        st.session_state.db = get_db()
    if 'data_manager' not in st.session_state:
        st.session_state.data_manager = ThreatDataManager(st.session_state.db)
    if 'aggregator' not in st.session_state:
        st.session_state.aggregator = ThreatAggregator(data_manager=st.session_state.data_manager)
    if 'domain_analyzer' not in st.session_state:
        st.session_state.domain_analyzer = DomainAnalyzer()


def risk_color(level: str) -> str:
    return RISK_COLORS.get((level or '').lower(), '#6b7280')


def search_results_frame(envelopes: List[Dict[str, Any]]) -> pd.DataFrame:
    """Flatten unified-search envelopes into one row per hit"""
    rows = []
    for envelope in envelopes:
        for item in envelope.get('data') or []:
            rows.append({
                'source': envelope['source'],
                'title': item.get('title'),
                'risk': item.get('risk', 'low'),
                'description': item.get('description'),
                'url': item.get('url'),
            })
    return pd.DataFrame(rows, columns=['source', 'title', 'risk', 'description', 'url'])


def source_summary_frame(envelopes: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame([
        {
            'source': envelope['source'],
            'status': envelope['status'],
            'results': len(envelope.get('data') or []),
            'error': envelope.get('error', ''),
        }
        for envelope in envelopes
    ])


def severity_frame(stats: Dict[str, int]) -> pd.DataFrame:
    return pd.DataFrame(
        [{'severity': level, 'count': stats.get(level, 0)} for level in ('critical', 'high', 'medium', 'low')]
    )


def threat_events_frame(events: List[Dict[str, Any]]) -> pd.DataFrame:
    frame = pd.DataFrame(events)
    if not frame.empty:
        frame['timestamp'] = pd.to_datetime(frame['timestamp'])
    return frame


def attack_sources_frame(country_map: Dict[str, Any]) -> pd.DataFrame:
    frame = pd.DataFrame(country_map.get('attack_sources', []))
    if not frame.empty:
        frame['top_ports'] = frame['top_ports'].apply(lambda ports: ', '.join(str(p) for p in ports))
        frame['attack_types'] = frame['attack_types'].apply(', '.join)
    return frame


def display_threat_report(report: Dict[str, Any]):
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Risk Score", report['risk_score'])
    with col2:
        st.metric("Threat Level", report['threat_level'].upper())
    with col3:
        answered = [source for source in ('greynoise', 'shodan', 'otx', 'abuseipdb', 'virustotal')
                    if report.get(source)]
        st.metric("Sources Answered", f"{len(answered)}/5")

    greynoise = report.get('greynoise')
    if greynoise:
        st.subheader("GreyNoise")
        st.write(f"Classification: {greynoise.get('classification', 'unknown')}")
        if greynoise.get('tags'):
            st.write(f"Tags: {', '.join(greynoise['tags'])}")

    shodan = report.get('shodan')
    if shodan:
        st.subheader("Shodan")
        st.write(f"Organization: {shodan.get('org') or 'Unknown'} ({shodan.get('country') or 'Unknown'})")
        st.write(f"Open ports: {', '.join(map(str, shodan.get('ports', []))) or 'none'}")
        if shodan.get('vulns'):
            st.warning(f"Known vulnerabilities: {', '.join(shodan['vulns'])}")

    abuse = report.get('abuseipdb')
    if abuse:
        st.subheader("AbuseIPDB")
        st.progress(min(abuse['abuse_confidence'], 100) / 100,
                    text=f"Abuse confidence {abuse['abuse_confidence']}% ({abuse['total_reports']} reports)")

    virustotal = report.get('virustotal')
    if virustotal:
        st.subheader("VirusTotal")
        detections = pd.DataFrame([
            {'verdict': verdict, 'engines': virustotal[verdict]}
            for verdict in ('malicious', 'suspicious', 'harmless', 'undetected')
        ])
        st.plotly_chart(px.bar(detections, x='verdict', y='engines', title='Engine Verdicts'))

    otx = report.get('otx')
    if otx:
        st.subheader("AlienVault OTX")
        st.write(f"Pulses: {(otx.get('pulse_info') or {}).get('count', 0)}")


def render_dashboard():
    st.header("🎃 Threat Dashboard")
    try:
        stats = st.session_state.aggregator.get_dashboard_stats()
    except APIError as e:
        st.error(f"Error loading dashboard: {e.message}")
        stats = {}

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Exposed Hosts", f"{stats.get('total_queries', 0):,}")
    with col2:
        st.metric("Active Bots", f"{stats.get('active_bots', 0):,}")
    with col3:
        st.metric("Malware Pulses", stats.get('malware_detected', 0))
    with col4:
        st.metric("Lookups (24h)", stats.get('recent_alerts', 0))

    metrics = mock_data.generate_dashboard_metrics()
    st.subheader("Security Score")
    scores = pd.DataFrame([
        {'category': name, 'score': score}
        for name, score in metrics['security_score']['categories'].items()
    ])
    st.plotly_chart(px.bar(scores, x='category', y='score', range_y=[0, 100],
                           title=f"Overall {metrics['security_score']['overall']}"))

    st.subheader("Live Threat Map")
    events = threat_events_frame(threat_map.fetch_threat_data()['threats'])
    if not events.empty:
        fig = px.scatter_geo(events, lat='lat', lon='lng', color='severity', hover_name='threat_type',
                             hover_data=['city', 'country', 'ip'], color_discrete_map=RISK_COLORS)
        st.plotly_chart(fig)
        selected = st.selectbox("Explain a threat type", sorted(events['threat_type'].unique()))
        st.info(threat_map.get_threat_explanation(selected))

    st.subheader("Attack Sources by Country")
    country_map = threat_map.get_country_threat_map()
    col1, col2 = st.columns(2)
    with col1:
        st.metric("Total Attacks", country_map['total_attacks'])
    with col2:
        st.metric("High-Severity Countries", country_map['active_threats'])
    sources = attack_sources_frame(country_map)
    if not sources.empty:
        fig = px.scatter_geo(sources, lat='lat', lon='lon', size='attacks', color='severity',
                             hover_name='country', hover_data=['attack_types', 'top_ports'],
                             color_discrete_map=RISK_COLORS)
        st.plotly_chart(fig)
        st.dataframe(sources[['country', 'attacks', 'severity', 'attack_types', 'top_ports']])

    st.subheader("Live Feed")
    feed = pd.DataFrame(st.session_state.aggregator.get_live_threat_feed())
    if feed.empty:
        st.info("No live feed items available")
    else:
        st.dataframe(feed[['timestamp', 'source', 'type', 'severity', 'description']])

    st.subheader("Monitored Assets")
    st.dataframe(pd.DataFrame(ShodanClient().get_asset_monitoring()))


def render_ip_reputation():
    st.header("🔮 IP Reputation")
    ip_address = st.text_input("Enter IP Address")
    if not ip_address:
        st.subheader("Recently Reported IPs")
        st.dataframe(pd.DataFrame(AbuseIPDBClient().get_blacklist()))
        return

    if not InputValidator.validate_ip(ip_address.strip()):
        st.error("Invalid IP address format")
        return

    with st.spinner(f"Consulting the spirits about {ip_address}..."):
        try:
            report = st.session_state.aggregator.get_unified_threat_intel(ip_address)
        except APIError as e:
            st.error(f"Error looking up IP: {e.message}")
            return
    display_threat_report(report)


def render_domain_analysis():
    st.header("🕸️ Domain Analysis")
    domain = st.text_input("Enter Domain (e.g., example.com or https://example.com)")
    if not domain:
        return

    with st.spinner(f"Analyzing domain {domain}..."):
        try:
            analysis = st.session_state.domain_analyzer.analyze_domain(
                domain, data_manager=st.session_state.data_manager
            )
        except APIError as e:
            st.error(f"Error analyzing domain: {e.message}")
            return

    st.metric("Risk Score", analysis['risk_score'])
    whois_info = analysis['whois_info']
    if whois_info.get('demo'):
        st.warning("WHOIS lookup failed, showing demo data")
    st.json(whois_info)

    st.subheader("DNS Records")
    for record_type, values in analysis['dns_records'].items():
        st.write(f"**{record_type}:** {', '.join(values) or '-'}")

    st.subheader("Wayback Timeline")
    st.dataframe(pd.DataFrame(analysis['wayback']))


def render_cyber_search():
    st.header("👻 Cyber Search")
    query = st.text_input("Search IPs, domains, hashes, CVEs or keywords")
    if not query:
        return

    with st.spinner("Searching every source..."):
        envelopes = unified_search(query)

    st.dataframe(source_summary_frame(envelopes))
    results = search_results_frame(envelopes)
    if results.empty:
        st.info("No results found")
        return

    by_source = results.groupby('source').size().reset_index(name='results')
    st.plotly_chart(px.pie(by_source, names='source', values='results', title='Results by Source'))
    st.dataframe(results)


def render_vulnerabilities():
    st.header("💀 Vulnerabilities")
    nvd = NVDClient()
    stats = nvd.get_vulnerability_stats()
    st.plotly_chart(px.bar(severity_frame(stats), x='severity', y='count', color='severity',
                           color_discrete_map=RISK_COLORS, title="CVEs Published in the Last 7 Days"))

    keyword = st.text_input("Search CVEs by keyword")
    if keyword:
        try:
            vulns = [NVDClient.summarize(vuln) for vuln in nvd.search(keyword, 20)]
        except APIError as e:
            st.error(f"NVD search failed: {e.message}")
            return
    else:
        vulns = nvd.get_vulnerability_analysis()

    for vuln in vulns:
        with st.expander(f"{vuln.get('emoji', '')} {vuln['id']} - {vuln['title']} ({vuln['cvss']})"):
            st.write(vuln['description'])
            st.write(f"Affected: {vuln['affected']}")
            st.write(f"Published: {vuln['published']}")


def render_dork_library():
    st.header("🧙 Dork Library")
    st.warning("Only audit systems you own or are authorized to test.")
    library = st.selectbox("Library", list(dorks.DORK_LIBRARIES))
    categories = ["All"] + dorks.get_categories(library)
    category = st.selectbox("Category", categories)

    engine = 'yandex' if library == 'yandex' else 'google'
    for dork in dorks.get_dorks(library, None if category == "All" else category):
        with st.expander(f"{dork['name']} [{dork['risk']}]"):
            st.code(dork['query'])
            st.write(dork['explanation'])
            for tip in dork['tips']:
                st.write(f"- {tip}")
            st.markdown(f"[Run on {dorks.SEARCH_ENGINES[engine]['name']}]"
                        f"({dorks.build_search_url(engine, dork['query'])})")


def render_api_status():
    st.header("⚙️ API Status")
    summary = get_api_status_summary()
    st.progress(summary['percentage'] / 100,
                text=f"{summary['configured']}/{summary['total']} services configured")
    if not summary['has_minimum_required']:
        st.warning("Shodan and VirusTotal keys are needed for live data. Demo data is shown instead.")

    rows = summary['configured_apis'] + summary['unconfigured_apis']
    st.dataframe(pd.DataFrame(rows)[['name', 'is_configured', 'required', 'description', 'signup_url']])

    st.subheader("Lookup History")
    stats = st.session_state.data_manager.get_statistics()
    st.metric("Total Lookups", stats['total_lookups'])
    levels = pd.DataFrame([{'level': level, 'count': count} for level, count in stats['by_threat_level'].items()])
    st.plotly_chart(px.pie(levels, names='level', values='count', color='level', color_discrete_map=RISK_COLORS))


def main():
    st.title("Cyber Vault")
    init_session_state()

    page = st.sidebar.selectbox("Select a page", PAGES)

    if page == "Dashboard":
        render_dashboard()
    elif page == "IP Reputation":
        render_ip_reputation()
    elif page == "Domain Analysis":
        render_domain_analysis()
    elif page == "Cyber Search":
        render_cyber_search()
    elif page == "Vulnerabilities":
        render_vulnerabilities()
    elif page == "Dork Library":
        render_dork_library()
    elif page == "API Status":
        render_api_status()


if __name__ == "__main__":
    main()
