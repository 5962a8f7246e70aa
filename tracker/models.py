# tracker/models.py
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StoredValue(Base):
    """Dauerhafter Key-Value-Speicher (Identität, Consent, Queue-Spillover)."""
    __tablename__ = "stored_values"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
