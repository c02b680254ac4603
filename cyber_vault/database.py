from datetime import datetime
import logging

from sqlalchemy import create_engine, Column, Integer, String, Float, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from cyber_vault.config import get_database_url

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class LookupHistory(Base):
    __tablename__ = 'lookup_history'

    id = Column(Integer, primary_key=True)
    indicator = Column(String, nullable=False, index=True)
    indicator_type = Column(String, nullable=False)
    risk_score = Column(Float, default=0)
    threat_level = Column(String)
    sources_checked = Column(JSON, default=list)
    looked_up_at = Column(DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'indicator': self.indicator,
            'indicator_type': self.indicator_type,
            'risk_score': self.risk_score,
            'threat_level': self.threat_level,
            'sources_checked': self.sources_checked or [],
            'looked_up_at': self.looked_up_at.isoformat() if self.looked_up_at else None,
        }


_engines = {}


def get_engine(url: str = None):
    url = url or get_database_url()
    if url not in _engines:
        # SQLite connections are shared with the Flask and Streamlit worker threads
        connect_args = {'check_same_thread': False} if url.startswith('sqlite') else {}
        _engines[url] = create_engine(url, connect_args=connect_args)
        Base.metadata.create_all(bind=_engines[url])
        logger.info(f"Database ready at {url.split('@')[-1]}")
    return _engines[url]


def get_db(url: str = None):
    """Create tables if missing and return a new session"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(url))
    return SessionLocal()
