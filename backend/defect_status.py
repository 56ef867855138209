# backend/defect_status.py

"""
Defect status state machine.

pending -> returned  (terminal)
pending -> resolved  (terminal)

The server is the real guard; this module decides which actions the
dashboard offers and rejects obviously invalid requests early.
"""

from enum import Enum
from typing import Dict, List, Optional, Set, Union


class DefectStatus(str, Enum):
    """Defect lifecycle states"""
    PENDING = "pending"
    RETURNED = "returned"
    RESOLVED = "resolved"


class DefectType(str, Enum):
    """Defect categories offered on the report form"""
    DAMAGED_PACKAGING = "Damaged Packaging"
    BROKEN = "Broken"
    MISSING_PARTS = "Missing Parts"
    WRONG_PRODUCT = "Wrong Product"
    EXPIRED = "Expired"
    QUALITY_ISSUE = "Quality Issue"
    OTHER = "Other"


INITIAL_DEFECT_STATUS = DefectStatus.PENDING

DEFECT_TRANSITIONS: Dict[DefectStatus, Set[DefectStatus]] = {
    DefectStatus.PENDING: {DefectStatus.RETURNED, DefectStatus.RESOLVED},
    DefectStatus.RETURNED: set(),
    DefectStatus.RESOLVED: set(),
}

# Action buttons shown while a defect is pending, in display order
DEFECT_ACTIONS: List[Dict[str, str]] = [
    {
        "status": DefectStatus.RETURNED.value,
        "label": "Return to Supplier",
        "description": "This will mark the defective items as returned to the supplier.",
    },
    {
        "status": DefectStatus.RESOLVED.value,
        "label": "Mark as Resolved",
        "description": "This will mark the defect as resolved internally.",
    },
]


class InvalidStatusTransitionError(Exception):
    """Transition not allowed from the current status"""
    def __init__(self, current: DefectStatus, target: DefectStatus):
        self.error_code = "INVALID_STATUS_TRANSITION"
        self.current = current
        self.target = target
        self.message = (
            f"Cannot change defect status from '{current.value}' to '{target.value}'. "
            f"Only pending defects can be returned or resolved."
        )
        self.field = "status"
        super().__init__(self.message)


def normalize_status(status: Union[DefectStatus, str]) -> DefectStatus:
    """Parse a status string; raises ValueError for unknown values."""
    if isinstance(status, DefectStatus):
        return status
    try:
        return DefectStatus(str(status).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in DefectStatus)
        raise ValueError(f"Unknown defect status '{status}'. Allowed: {allowed}")


def is_terminal(status: Union[DefectStatus, str]) -> bool:
    return not DEFECT_TRANSITIONS[normalize_status(status)]


def transition(current: Union[DefectStatus, str], target: Union[DefectStatus, str]) -> DefectStatus:
    """
    Apply a status change.

    Returns:
        The new status

    Raises:
        InvalidStatusTransitionError: If current status does not allow target
    """
    current_status = normalize_status(current)
    target_status = normalize_status(target)
    if target_status not in DEFECT_TRANSITIONS[current_status]:
        raise InvalidStatusTransitionError(current_status, target_status)
    return target_status


def available_actions(status: Union[DefectStatus, str]) -> List[Dict[str, str]]:
    """Actions the dashboard enables for a defect in this status."""
    allowed = DEFECT_TRANSITIONS[normalize_status(status)]
    return [action for action in DEFECT_ACTIONS if DefectStatus(action["status"]) in allowed]


def normalize_defect_type(defect_type: Optional[str]) -> DefectType:
    """Parse a defect type label; raises ValueError for empty or unknown values."""
    if not defect_type or not defect_type.strip():
        raise ValueError("Please select defect type")
    try:
        return DefectType(defect_type.strip())
    except ValueError:
        allowed = ", ".join(t.value for t in DefectType)
        raise ValueError(f"Unknown defect type '{defect_type}'. Allowed: {allowed}")
