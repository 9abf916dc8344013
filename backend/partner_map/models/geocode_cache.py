"""Geocode cache model: one row per (provider, query) lookup, success or failure."""

from sqlalchemy import Column, String, Float, Boolean, DateTime, Text, UniqueConstraint, func

from partner_map.models.base import Base, JSONType, UUIDMixin


class GeocodeCache(UUIDMixin, Base):
    __tablename__ = "geocode_cache"

    query = Column(Text, nullable=False)
    provider = Column(String(20), nullable=False, default="nominatim")
    ok = Column(Boolean, nullable=False, default=False)

    # Populated only when ok
    latitude = Column(Float)
    longitude = Column(Float)
    display_name = Column(Text)
    raw = Column(JSONType)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("provider", "query", name="uq_geocode_cache_provider_query"),
    )
