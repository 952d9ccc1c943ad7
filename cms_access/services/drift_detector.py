"""Per-entity drift classification against a run's department map.

Everything here is pure: it reads a ``PermissionReference`` and the map the
resolver returned, and never touches the database. That is what lets the
reconciler fan it out over worker threads.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from .identity_resolver import DepartmentInfo
from .permission_sources import PermissionReference

DepartmentMap = Mapping[str, DepartmentInfo]


@dataclass(frozen=True)
class DriftFinding:
    """Invalid department references found on one entity."""
    reference: PermissionReference
    valid: List[Dict[str, Optional[str]]]
    invalid: List[Dict[str, Optional[str]]]

    @property
    def invalid_ids(self) -> List[str]:
        return [d["id"] for d in self.invalid]

    def snapshot(self) -> Dict[str, object]:
        """Permission state at detection time, as stored on the log entry."""
        return {
            "rank_ids": list(self.reference.rank_ids),
            "position_ids": list(self.reference.position_ids),
            "employee_ids": list(self.reference.employee_ids),
            "departments": self.valid + self.invalid,
            "valid_departments": self.valid,
            "invalid_departments": self.invalid,
        }

    def note(self) -> str:
        return "Inactive departments in identity source: " + ", ".join(self.invalid_ids)


def partition_departments(department_ids: Iterable[str], department_map: DepartmentMap):
    """Split ids into (valid, invalid) records.

    Only ids the map explicitly reports as inactive are invalid. Ids the
    identity source did not return are kept as valid with no name.
    """
    valid: List[Dict[str, Optional[str]]] = []
    invalid: List[Dict[str, Optional[str]]] = []
    for department_id in department_ids:
        info = department_map.get(department_id)
        if info is None:
            valid.append({"id": department_id, "name": None})
        elif info.is_active:
            valid.append({"id": department_id, "name": info.name})
        else:
            invalid.append({"id": department_id, "name": info.name})
    return valid, invalid


def detect_drift(reference: PermissionReference, department_map: DepartmentMap) -> Optional[DriftFinding]:
    """A finding when *reference* points at inactive departments, else None."""
    if not reference.has_department_refs:
        return None
    valid, invalid = partition_departments(reference.department_ids, department_map)
    if not invalid:
        return None
    return DriftFinding(reference=reference, valid=valid, invalid=invalid)


def all_reactivated(department_ids: Iterable[str], department_map: DepartmentMap) -> bool:
    """True when every id is known to the identity source and active again.

    An id the source no longer returns does not count as reactivated.
    """
    ids = list(department_ids)
    if not ids:
        return False
    for department_id in ids:
        info = department_map.get(department_id)
        if info is None or not info.is_active:
            return False
    return True
