"""
Database models for the combination selector
SQLAlchemy ORM; SQLite by default, any SQLAlchemy URL via DATABASE_URL
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    JSON,
    Text,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
import os
from dotenv import load_dotenv

# Load .env before reading DATABASE_URL
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./combination_selector.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class BetCombinationLog(Base):
    """One submitted (or attempted) combination"""

    __tablename__ = "bet_combination_logs"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)

    # Combination identity
    combination_key = Column(Text, nullable=False)
    variation_type = Column(String, default="auto")  # "auto" | "manual"

    # Sizing
    stake = Column(Float, nullable=False)
    potential_return = Column(Float)
    favorite_count = Column(Integer)
    underdog_count = Column(Integer)

    # [{"match_id", "participant_name", "odds_decimal", "is_favorite"}, ...]
    selections = Column(JSON)

    # Submission result reported by the caller
    submitted = Column(Boolean, default=False)
    result = Column(String)  # null=pending, "win" | "loss" once settled

    notes = Column(Text)
