from klanktrainer.content_loader import load_curriculum
from klanktrainer.milestones import MilestoneTracker
from klanktrainer.progress import ProgressStore


def _tracker(stored: int = 0) -> MilestoneTracker:
    store = ProgressStore(":memory:")
    if stored:
        store.add_points(stored)
    return MilestoneTracker(load_curriculum().get_milestone_tiers(), store)


def test_crossing_into_silver_is_reported() -> None:
    tracker = _tracker(600)
    milestone = tracker.check_new_milestone(100)
    assert milestone is not None
    assert milestone.level == "silver"


def test_no_crossing_within_a_tier() -> None:
    assert _tracker(200).check_new_milestone(100) is None
    assert _tracker(0).check_new_milestone(0) is None


def test_reaching_threshold_exactly_counts() -> None:
    milestone = _tracker(100).check_new_milestone(100)
    assert milestone is not None
    assert milestone.level == "bronze"


def test_jumping_several_tiers_reports_highest() -> None:
    milestone = _tracker(0).check_new_milestone(2000)
    assert milestone is not None
    assert milestone.level == "gold"


def test_check_does_not_persist_points() -> None:
    tracker = _tracker(600)
    tracker.check_new_milestone(100)
    assert tracker.store.total_points() == 600


def test_current_and_next_milestone() -> None:
    tracker = _tracker()
    assert tracker.current_milestone() is None
    upcoming = tracker.next_milestone()
    assert upcoming is not None
    assert (upcoming.milestone.level, upcoming.remaining) == ("bronze", 200)

    current = tracker.current_milestone(250)
    assert current is not None and current.level == "bronze"
    upcoming = tracker.next_milestone(250)
    assert upcoming is not None
    assert (upcoming.milestone.level, upcoming.remaining) == ("silver", 390)

    assert tracker.next_milestone(1280) is None
    top = tracker.current_milestone(5000)
    assert top is not None and top.level == "gold"


def test_achieved_milestones_use_stored_total() -> None:
    tracker = _tracker(700)
    assert [tier.level for tier in tracker.achieved_milestones()] == ["bronze", "silver"]
    assert tracker.achieved_milestones(199) == []
