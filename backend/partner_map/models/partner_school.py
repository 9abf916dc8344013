"""Partner school model: one exchange agreement shown on the map."""

from sqlalchemy import Column, String, Float, DateTime, Text, Index, Uuid

from partner_map.models.base import Base, JSONType, TimestampMixin, UUIDMixin

# Fields compared before/after an import write to tell "updated" from "unchanged"
COMPARABLE_FIELDS = (
    "name",
    "continent",
    "country",
    "city",
    "status",
    "mobility_programmes",
    "language_requirements",
    "agreement_scope",
    "degree_programmes_in_agreement",
    "further_info",
)


class PartnerSchool(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "partner_schools"

    # Natural key used for upsert matching across imports
    external_key = Column(Text, unique=True, nullable=False, index=True)

    # Descriptive
    name = Column(Text, nullable=False)
    continent = Column(Text, index=True)
    country = Column(Text, index=True)
    city = Column(Text)
    status = Column(String(20), nullable=False, default="unknown", index=True)  # confirmed, negotiation, unknown
    mobility_programmes = Column(JSONType, nullable=False, default=list)
    language_requirements = Column(JSONType, nullable=False, default=list)  # [{language, level, notes?}]
    agreement_scope = Column(Text)
    degree_programmes_in_agreement = Column(JSONType, nullable=False, default=list)
    further_info = Column(Text)

    # Geocoding
    longitude = Column(Float)
    latitude = Column(Float)
    geocode_precision = Column(String(20), nullable=False, default="none")  # none, city, manual
    geocode_provider = Column(String(20))
    geocode_query = Column(Text)
    geocode_updated_at = Column(DateTime(timezone=True))

    # Provenance (lookup only, no FK)
    source_import_id = Column(Uuid(as_uuid=True), index=True)

    __table_args__ = (
        Index("idx_partner_geo", "longitude", "latitude"),
        Index("idx_partner_geocode_precision", "geocode_precision"),
    )

    @property
    def location(self) -> dict | None:
        """GeoJSON point, always [longitude, latitude]."""
        if self.longitude is None or self.latitude is None:
            return None
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}

    def set_location(self, longitude: float, latitude: float, precision: str) -> None:
        self.longitude = longitude
        self.latitude = latitude
        self.geocode_precision = precision

    def comparable_snapshot(self) -> dict:
        return {field: getattr(self, field) for field in COMPARABLE_FIELDS}
