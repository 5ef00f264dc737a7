"""Location hierarchy resolution (room > department > floor > building)."""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from facility_api.core.errors import ValidationError
from facility_api.db.models import Building, Department, Floor, Room


@dataclass(frozen=True)
class LocationRefs:
    building_id: UUID | None = None
    floor_id: UUID | None = None
    department_id: UUID | None = None
    room_id: UUID | None = None


def _get_scoped(db: Session, model, hospital_id: UUID, entity_id: UUID, label: str):
    entity = db.get(model, entity_id)
    if entity is None or entity.hospital_id != hospital_id:
        raise ValidationError(f"{label} not found")
    return entity


def _check_parent(given: UUID | None, actual: UUID, label: str) -> UUID:
    if given is not None and given != actual:
        raise ValidationError(f"{label} does not match the selected location")
    return actual


def resolve_location(
    db: Session,
    hospital_id: UUID,
    *,
    building_id: UUID | None = None,
    floor_id: UUID | None = None,
    department_id: UUID | None = None,
    room_id: UUID | None = None,
) -> LocationRefs:
    """
    Fill in ancestors from the most specific reference given.

    Raises:
        ValidationError: a reference is unknown, belongs to another hospital,
            or contradicts its ancestors
    """
    if room_id is not None:
        room = _get_scoped(db, Room, hospital_id, room_id, "Room")
        department_id = _check_parent(department_id, room.department_id, "Department")

    if department_id is not None:
        department = _get_scoped(db, Department, hospital_id, department_id, "Department")
        floor_id = _check_parent(floor_id, department.floor_id, "Floor")

    if floor_id is not None:
        floor = _get_scoped(db, Floor, hospital_id, floor_id, "Floor")
        building_id = _check_parent(building_id, floor.building_id, "Building")

    if building_id is not None:
        _get_scoped(db, Building, hospital_id, building_id, "Building")

    return LocationRefs(
        building_id=building_id,
        floor_id=floor_id,
        department_id=department_id,
        room_id=room_id,
    )
