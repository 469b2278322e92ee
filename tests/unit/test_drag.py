"""
Unit Tests for DragSession
"""
from datetime import timezone

import pytest

from orderboard.drag import (
    Cancelled,
    DragSession,
    DragState,
    DropTarget,
    Move,
    Reorder,
    TargetKind,
)
from orderboard.exceptions import InvalidTransitionError
from orderboard.models import Column


@pytest.fixture
def session():
    session = DragSession()
    session.start("2", Column.CREATED, ["1", "2", "3"])
    return session


class TestDropTarget:
    """Test resolving what the pointer is over"""

    def test_column_target(self):
        """Test a column target resolves to itself"""
        assert DropTarget.column(Column.COMPLETED).resolve_column() == Column.COMPLETED

    def test_order_target_resolves_to_parent(self):
        """Test a card target resolves to the column it sits in"""
        assert DropTarget.order("4", Column.DELIVERING).resolve_column() == Column.DELIVERING

    def test_unknown_target(self):
        """Test targets off the board resolve to None"""
        assert DropTarget(None, "trash").resolve_column() is None
        assert DropTarget(TargetKind.ORDER, "9").resolve_column() is None


class TestStateMachine:
    """Test IDLE <-> ACTIVE transitions"""

    def test_start_activates(self, session):
        """Test start records the source"""
        assert session.state == DragState.ACTIVE
        assert session.is_active
        assert session.order_id == "2"
        assert session.source_column == Column.CREATED

    def test_double_start_rejected(self, session):
        """Test a second start while active is an invalid transition"""
        with pytest.raises(InvalidTransitionError):
            session.start("3", Column.CREATED, ["1", "2", "3"])

    def test_history_recorded(self, session):
        """Test transitions are kept in history"""
        session.end(DropTarget.column(Column.COMPLETED))
        history = [t.to_dict() for t in session.history]

        assert [(h["from"], h["to"], h["reason"]) for h in history] == [
            ("idle", "active", "start"),
            ("active", "idle", "end"),
        ]
        assert history[1]["order_id"] == "2"

    def test_history_timestamps_are_utc(self, session):
        """Test transition times are timezone-aware like order timestamps"""
        assert session.history[0].timestamp.tzinfo == timezone.utc

    def test_end_when_idle_is_ignored(self):
        """Test a stray drop does nothing"""
        session = DragSession()
        assert session.end(DropTarget.column(Column.COMPLETED)) is None
        assert session.cancel() is None
        assert session.history == []


class TestOver:
    """Test hover handling"""

    def test_same_column_card_reorders(self, session):
        """Test hovering a sibling card gives a reorder preview"""
        reorder = session.over(DropTarget.order("1", Column.CREATED))
        assert reorder == Reorder(Column.CREATED, "2", "1")

    def test_cross_column_hover_is_observed_only(self, session):
        """Test hovering another column changes nothing"""
        assert session.over(DropTarget.column(Column.DELIVERING)) is None
        assert session.over(DropTarget.order("4", Column.DELIVERING)) is None

    def test_hover_self_or_nothing(self, session):
        """Test hovering the dragged card or empty space"""
        assert session.over(DropTarget.order("2", Column.CREATED)) is None
        assert session.over(DropTarget.column(Column.CREATED)) is None
        assert session.over(None) is None


class TestEnd:
    """Test drop handling"""

    def test_drop_on_other_column(self, session):
        """Test a cross-column drop yields a move"""
        assert session.end(DropTarget.column(Column.DELIVERING)) == Move("2", Column.CREATED, Column.DELIVERING)
        assert session.state == DragState.IDLE

    def test_drop_on_card_in_other_column(self, session):
        """Test dropping on a card moves into that card's column"""
        move = session.end(DropTarget.order("5", Column.COMPLETED))
        assert move.target == Column.COMPLETED

    def test_drop_in_same_column(self, session):
        """Test dropping back into the source column changes no status"""
        assert session.end(DropTarget.order("1", Column.CREATED)) is None
        assert not session.is_active

    def test_drop_on_nothing(self, session):
        """Test dropping outside any column"""
        assert session.end(None) is None
        assert session.order_id is None


class TestCancel:
    """Test aborting a drag"""

    def test_cancel_returns_captured_order(self, session):
        """Test cancel hands back the column order from drag start"""
        cancelled = session.cancel()

        assert cancelled == Cancelled("2", Column.CREATED, ["1", "2", "3"])
        assert session.state == DragState.IDLE
        assert session.history[-1].reason == "cancel"
