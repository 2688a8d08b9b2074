"""Read access to specialists' weekly availability."""

from sqlalchemy.orm import Session

from clinic_backend.models.availability import Availability


class AvailabilityStore:
    def __init__(self, db: Session):
        self.db = db

    def get_active_availability(self, specialist_id: int, day_of_week: int) -> Availability | None:
        # Any active record for the day opens it; windows are not intersected.
        return self.db.query(Availability).filter(
            Availability.specialist_id == specialist_id,
            Availability.day_of_week == day_of_week,
            Availability.is_active.is_(True),
        ).order_by(Availability.id.asc()).first()
