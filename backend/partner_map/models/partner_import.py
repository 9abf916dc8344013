"""Partner import model: one CSV upload and its import run."""

from sqlalchemy import Column, String, Integer, Text

from partner_map.models.base import Base, JobMixin, JSONType, UUIDMixin


class PartnerImport(UUIDMixin, JobMixin, Base):
    __tablename__ = "partner_imports"

    # Uploaded file
    original_file_name = Column(String(255), nullable=False)
    file_url = Column(String(500), nullable=False)
    local_path = Column(Text, nullable=False)
    file_hash = Column(String(64), nullable=False, index=True)  # sha256

    # Summary
    inserted = Column(Integer, default=0, nullable=False)
    updated = Column(Integer, default=0, nullable=False)
    unchanged = Column(Integer, default=0, nullable=False)
    failed_rows = Column(Integer, default=0, nullable=False)

    # Diagnostics, bounded lists of {row, external_key, message}
    row_errors = Column(JSONType)
    warnings = Column(JSONType)

    @property
    def summary(self) -> dict:
        return {
            "inserted": self.inserted or 0,
            "updated": self.updated or 0,
            "unchanged": self.unchanged or 0,
            "failed_rows": self.failed_rows or 0,
        }
