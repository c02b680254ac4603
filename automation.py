import schedule
import time
import threading
from typing import List, Dict, Optional, Any
import logging

from cyber_vault.config import get_high_risk_threshold, get_scan_interval, get_watchlist
from cyber_vault.data_manager import ThreatDataManager
from cyber_vault.database import get_db
from cyber_vault.errors import APIError
from cyber_vault.threat_aggregation import ThreatAggregator

logger = logging.getLogger(__name__)

# Refreshing the feed also keeps the shared response cache warm for the dashboard
FEED_REFRESH_MINUTES = 5


class ThreatAutomation:
    def __init__(self, database_url: Optional[str] = None, watchlist: Optional[List[str]] = None):
        self.database_url = database_url
        self.watchlist = watchlist if watchlist is not None else get_watchlist()
        self.scan_interval = get_scan_interval()
        self.high_risk_threshold = get_high_risk_threshold()
        self.latest_feed: List[Dict[str, Any]] = []

    def scan_ip(self, ip: str) -> Optional[Dict[str, Any]]:
        """Scan a single IP address and record the result"""
        db = get_db(self.database_url)
        try:
            report = ThreatAggregator(data_manager=ThreatDataManager(db)).get_unified_threat_intel(ip)
        except APIError as e:
            logger.error(f"Error scanning IP {ip}: {e.message}")
            return None
        finally:
            db.close()

        if report['risk_score'] >= self.high_risk_threshold:
            logger.warning(f"High risk IP detected: {ip} "
                           f"(Score: {report['risk_score']}, Level: {report['threat_level']})")
        return report

    def scan_watchlist(self) -> List[Dict[str, Any]]:
        if not self.watchlist:
            logger.info("Watch list is empty, nothing to scan")
            return []

        logger.info(f"Starting scheduled scan of {len(self.watchlist)} IPs")
        reports = []
        for ip in self.watchlist:
            report = self.scan_ip(ip)
            if report is not None:
                reports.append(report)
        logger.info(f"Scheduled scan completed: {len(reports)}/{len(self.watchlist)} IPs scanned")
        return reports

    def refresh_live_feed(self) -> List[Dict[str, Any]]:
        self.latest_feed = ThreatAggregator().get_live_threat_feed()
        critical = [item for item in self.latest_feed if item['severity'] == 'critical']
        logger.info(f"Live feed refreshed: {len(self.latest_feed)} items, {len(critical)} critical")
        for item in critical:
            logger.warning(f"Critical feed item from {item['source']}: {item['description']}")
        return self.latest_feed

    def report_high_risk(self) -> None:
        db = get_db(self.database_url)
        try:
            high_risk = ThreatDataManager(db).get_high_risk_lookups(self.high_risk_threshold)
            logger.info(f"{len(high_risk)} lookups at or above risk score {self.high_risk_threshold}")
        finally:
            db.close()


def run_threaded(job_func):
    """Run function in a thread"""
    job_thread = threading.Thread(target=job_func)
    job_thread.start()


def schedule_jobs(automation: ThreatAutomation, scheduler: schedule.Scheduler = None) -> schedule.Scheduler:
    scheduler = scheduler or schedule.default_scheduler
    scheduler.every(automation.scan_interval).minutes.do(run_threaded, automation.scan_watchlist)
    scheduler.every(FEED_REFRESH_MINUTES).minutes.do(run_threaded, automation.refresh_live_feed)
    scheduler.every(6).hours.do(run_threaded, automation.report_high_risk)
    return scheduler


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('cyber_vault_automation.log'),
            logging.StreamHandler()
        ]
    )

    automation = ThreatAutomation()
    scheduler = schedule_jobs(automation)

    logger.info("Cyber Vault automation started")
    automation.refresh_live_feed()
    automation.scan_watchlist()

    while True:
        scheduler.run_pending()
        time.sleep(60)


if __name__ == "__main__":
    main()
