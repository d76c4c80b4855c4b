"""
Database models for nftmeta.
"""

from sqlalchemy import Column, String, Float, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class MetadataCacheEntry(Base):
    """
    Cached metadata resolution result.

    Each row carries its own TTL so fallback results can expire sooner
    than resolved ones.
    """
    __tablename__ = "metadata_cache"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    stored_at = Column(Float, nullable=False)
    ttl = Column(Float, nullable=False)
