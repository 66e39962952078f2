"""Per-doctor availability slots.

Claiming a slot is a conditional update keyed by slot id, so two requests
racing for the same slot can never both succeed regardless of the backing
database.
"""

from datetime import date, datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from herhealth.core.errors import Conflict, NotFound
from herhealth.models.slot import Slot


def slot_start(slot_date: date, slot_time: str) -> datetime:
    """Combine a slot's calendar date and HH:MM time into one instant."""
    return datetime.combine(slot_date, datetime.strptime(slot_time, "%H:%M").time())


class SlotRegistry:
    def __init__(self, db: Session):
        self.db = db

    def get_slot(self, slot_id: int) -> Slot:
        slot = self.db.get(Slot, slot_id)
        if slot is None:
            raise NotFound("Slot not found.")
        return slot

    def list_slots(self, doctor_id: int) -> list[Slot]:
        return (
            self.db.query(Slot)
            .filter(Slot.doctor_id == doctor_id)
            .order_by(Slot.date.asc(), Slot.time.asc())
            .all()
        )

    def get_available_slots(self, doctor_id: int, days: int | None = None, now: datetime | None = None) -> list[Slot]:
        query = self.db.query(Slot).filter(
            Slot.doctor_id == doctor_id,
            Slot.is_available.is_(True),
        )
        if days is not None:
            today = (now or datetime.now()).date()
            query = query.filter(Slot.date >= today, Slot.date < today + timedelta(days=days))

        return query.order_by(Slot.date.asc(), Slot.time.asc()).all()

    def create_slot(self, doctor_id: int, slot_date: date, slot_time: str) -> Slot:
        existing = self.db.query(Slot).filter(
            Slot.doctor_id == doctor_id,
            Slot.date == slot_date,
            Slot.time == slot_time,
        ).first()
        if existing:
            raise Conflict("This slot already exists.")

        slot = Slot(doctor_id=doctor_id, date=slot_date, time=slot_time, is_available=True)
        self.db.add(slot)
        self.db.flush()
        return slot

    def reserve(self, slot_id: int) -> Slot:
        """Flip a slot to unavailable; fails if it is unknown or already taken."""
        result = self.db.execute(
            update(Slot)
            .where(Slot.id == slot_id, Slot.is_available.is_(True))
            .values(is_available=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            slot = self.get_slot(slot_id)
            self.db.refresh(slot)
            return slot

        self.get_slot(slot_id)
        raise Conflict("Slot is not available.")

    def release(self, slot_id: int) -> Slot:
        slot = self.get_slot(slot_id)
        if not slot.is_available:
            slot.is_available = True
            self.db.flush()
        return slot
