from sqlalchemy import Column, String, BigInteger, Float, Date, Text, Index
from models.base import Base


class SearchAnalyticsRow(Base):
    """
    One Search Analytics row per (date, page, country, device, query).

    Purpose:
    - Destination table for the postgres sink
    - unique_key is the primary key so re-delivered rows overwrite
      instead of duplicating

    Column layout mirrors the BigQuery table schema.
    """
    __tablename__ = "search_analytics"

    unique_key = Column(String(64), primary_key=True)

    date = Column(Date, nullable=False)
    clicks = Column(BigInteger, nullable=False)
    impressions = Column(BigInteger, nullable=False)
    position = Column(Float, nullable=False)  # Average for the date

    page = Column(Text, nullable=True)
    country = Column(String(16), nullable=True)
    device = Column(String(32), nullable=True)
    query = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_search_analytics_date", "date"),
    )
