"""Read access to the specialty and specialist catalog."""

from sqlalchemy.orm import Session

from clinic_backend.models.specialist import Specialist
from clinic_backend.models.specialty import Specialty


class CatalogStore:
    def __init__(self, db: Session):
        self.db = db

    def get_specialty(self, specialty_id: int) -> Specialty | None:
        return self.db.get(Specialty, specialty_id)

    def get_specialist(self, specialist_id: int, specialty_id: int | None = None) -> Specialist | None:
        query = self.db.query(Specialist).filter(Specialist.id == specialist_id)
        if specialty_id is not None:
            query = query.filter(Specialist.specialty_id == specialty_id)
        return query.first()
