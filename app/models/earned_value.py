"""
Scenario Analytics Platform
Earned value snapshot model.

Ratio columns (cpi, spi) are nullable on purpose: NULL means "undefined"
(zero denominator) and must be rendered as N/A, never as 0.
"""

from datetime import datetime, timezone

from app.models import db


class EarnedValueSnapshot(db.Model):
    """Point-in-time EVM figures for a project."""

    __tablename__ = "earned_value_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    as_of_date = db.Column(db.Date, nullable=False)

    bac = db.Column(db.Float, nullable=False, default=0.0)
    pv = db.Column(db.Float, nullable=False, default=0.0)
    ev = db.Column(db.Float, nullable=False, default=0.0)
    ac = db.Column(db.Float, nullable=False, default=0.0)
    cpi = db.Column(db.Float, nullable=True)
    spi = db.Column(db.Float, nullable=True)
    eac = db.Column(db.Float, nullable=False, default=0.0)
    etc = db.Column(db.Float, nullable=False, default=0.0)
    vac = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "as_of_date": self.as_of_date.isoformat() if self.as_of_date else None,
            "bac": self.bac,
            "pv": self.pv,
            "ev": self.ev,
            "ac": self.ac,
            "cpi": self.cpi,
            "spi": self.spi,
            "eac": self.eac,
            "etc": self.etc,
            "vac": self.vac,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<EarnedValueSnapshot project={self.project_id} as_of={self.as_of_date}>"
