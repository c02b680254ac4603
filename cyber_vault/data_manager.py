from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cyber_vault.config import get_high_risk_threshold
from cyber_vault.database import LookupHistory

logger = logging.getLogger(__name__)


class ThreatDataManager:
    """Stores indicator lookups and answers history queries for the dashboard"""

    def __init__(self, db: Session):
        self.db = db

    def record_lookup(self, indicator: str, indicator_type: str, risk_score: float,
                      threat_level: str, sources: Optional[List[str]] = None) -> Optional[LookupHistory]:
        """
        Save one lookup result

        Args:
            indicator: The IP, domain or hash that was looked up
            indicator_type: 'ip', 'domain' or 'hash'
            risk_score: Combined 0-100 score
            threat_level: Level derived from the score
            sources: Names of the sources that answered
        """
        entry = LookupHistory(
            indicator=indicator,
            indicator_type=indicator_type,
            risk_score=float(risk_score or 0),
            threat_level=threat_level,
            sources_checked=list(sources or []),
            looked_up_at=datetime.utcnow(),
        )
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving lookup for {indicator}: {str(e)}")
            return None
        return entry

    def get_recent_lookups(self, hours: int = 24, limit: int = 50) -> List[LookupHistory]:
        cutoff = datetime.utcnow() - timedelta(hours=hours)
        return (
            self.db.query(LookupHistory)
            .filter(LookupHistory.looked_up_at >= cutoff)
            .order_by(LookupHistory.looked_up_at.desc())
            .limit(limit)
            .all()
        )

    def get_high_risk_lookups(self, min_score: Optional[float] = None) -> List[LookupHistory]:
        if min_score is None:
            min_score = get_high_risk_threshold()
        return (
            self.db.query(LookupHistory)
            .filter(LookupHistory.risk_score >= min_score)
            .order_by(LookupHistory.risk_score.desc(), LookupHistory.looked_up_at.desc())
            .all()
        )

    def get_statistics(self) -> Dict[str, Any]:
        """Totals, average score and per-level counts over the whole history"""
        total = self.db.query(func.count(LookupHistory.id)).scalar() or 0
        average = self.db.query(func.avg(LookupHistory.risk_score)).scalar()
        by_level = dict(
            self.db.query(LookupHistory.threat_level, func.count(LookupHistory.id))
            .group_by(LookupHistory.threat_level)
            .all()
        )
        unique = self.db.query(func.count(func.distinct(LookupHistory.indicator))).scalar() or 0

        return {
            'total_lookups': total,
            'unique_indicators': unique,
            'average_risk_score': round(float(average), 2) if average is not None else 0.0,
            'high_risk_count': len(self.get_high_risk_lookups()),
            'by_threat_level': {level: by_level.get(level, 0) for level in ('critical', 'high', 'medium', 'low')},
            'last_24h': len(self.get_recent_lookups(hours=24, limit=10000)),
        }
