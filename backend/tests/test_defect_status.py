# backend/tests/test_defect_status.py

"""
Unit tests for the defect status state machine and defect type catalogue
"""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from defect_status import (
    DefectStatus,
    DefectType,
    INITIAL_DEFECT_STATUS,
    InvalidStatusTransitionError,
    available_actions,
    is_terminal,
    normalize_defect_type,
    normalize_status,
    transition,
)


class TestTransitions:
    """Test pending -> returned / resolved"""

    def test_initial_status(self):
        assert INITIAL_DEFECT_STATUS == DefectStatus.PENDING

    @pytest.mark.parametrize("target", [DefectStatus.RETURNED, DefectStatus.RESOLVED])
    def test_pending_transitions(self, target):
        assert not is_terminal(DefectStatus.PENDING)
        assert transition("pending", target.value) == target

    @pytest.mark.parametrize("current", ["returned", "resolved"])
    @pytest.mark.parametrize("target", ["pending", "returned", "resolved"])
    def test_terminal_states_reject_everything(self, current, target):
        assert is_terminal(current)
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            transition(current, target)

        assert exc_info.value.error_code == "INVALID_STATUS_TRANSITION"
        assert exc_info.value.current == DefectStatus(current)

    def test_pending_to_pending_rejected(self):
        with pytest.raises(InvalidStatusTransitionError):
            transition("pending", "pending")

    def test_status_strings_normalized(self):
        assert normalize_status("  Returned ") == DefectStatus.RETURNED

    def test_unknown_status(self):
        with pytest.raises(ValueError, match="Unknown defect status"):
            normalize_status("closed")


class TestActions:
    """Test action buttons offered per status"""

    def test_pending_offers_both(self):
        actions = available_actions("pending")

        assert [a["status"] for a in actions] == ["returned", "resolved"]
        assert actions[0]["label"] == "Return to Supplier"
        assert actions[1]["label"] == "Mark as Resolved"

    @pytest.mark.parametrize("status", ["returned", "resolved"])
    def test_terminal_offers_none(self, status):
        assert available_actions(status) == []


class TestDefectTypes:
    """Test defect type catalogue"""

    def test_catalogue(self):
        assert [t.value for t in DefectType] == [
            "Damaged Packaging",
            "Broken",
            "Missing Parts",
            "Wrong Product",
            "Expired",
            "Quality Issue",
            "Other",
        ]

    def test_normalize(self):
        assert normalize_defect_type(" Broken ") == DefectType.BROKEN

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_type(self, value):
        with pytest.raises(ValueError, match="Please select defect type"):
            normalize_defect_type(value)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown defect type"):
            normalize_defect_type("Smelly")
