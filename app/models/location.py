"""
Location models.

``LocationDistance`` is the suburb-to-suburb road distance table the
proximity assignment consults. Rows are stored in both directions so a
lookup never has to try the reverse pair.
"""

from app.extensions import db


class LocationDistance(db.Model):
    """Distance in kilometres between two suburbs of the same town."""

    __tablename__ = "location_distance"
    __table_args__ = (
        db.UniqueConstraint(
            "town", "suburb_a", "suburb_b", name="uq_location_distance_pair"
        ),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    town = db.Column(db.String(100), nullable=False, index=True)
    suburb_a = db.Column(db.String(100), nullable=False)
    suburb_b = db.Column(db.String(100), nullable=False)
    distance = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "town": self.town,
            "suburb_a": self.suburb_a,
            "suburb_b": self.suburb_b,
            "distance": self.distance,
        }

    def __repr__(self) -> str:
        return (
            f"<LocationDistance {self.town}: {self.suburb_a} -> "
            f"{self.suburb_b} = {self.distance}km>"
        )
