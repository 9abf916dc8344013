"""Partner geocode job model: one backfill run over unresolved schools."""

from sqlalchemy import Column, String, Integer

from partner_map.models.base import Base, JobMixin, JSONType, UUIDMixin


class PartnerGeocodeJob(UUIDMixin, JobMixin, Base):
    __tablename__ = "partner_geocode_jobs"

    requested_limit = Column(Integer)
    provider = Column(String(20), nullable=False, default="nominatim")

    # Summary
    total_candidates = Column(Integer, default=0, nullable=False)
    processed = Column(Integer, default=0, nullable=False)
    updated = Column(Integer, default=0, nullable=False)
    skipped = Column(Integer, default=0, nullable=False)
    failed = Column(Integer, default=0, nullable=False)

    # Bounded list of {school_id, external_key, message}
    row_errors = Column(JSONType)

    @property
    def summary(self) -> dict:
        return {
            "total_candidates": self.total_candidates or 0,
            "processed": self.processed or 0,
            "updated": self.updated or 0,
            "skipped": self.skipped or 0,
            "failed": self.failed or 0,
        }
