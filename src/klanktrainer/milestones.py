"""Point-tier tracking for cumulative learner progress."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .models import Milestone, NextMilestone
from .progress import ProgressStore

logger = logging.getLogger(__name__)


class MilestoneTracker:
    """Classify point totals against ascending milestone tiers."""

    def __init__(self, tiers: Iterable[Milestone], store: ProgressStore) -> None:
        self.tiers = tuple(sorted(tiers, key=lambda tier: tier.points))
        self.store = store

    def _total(self, total: int | None) -> int:
        return self.store.total_points() if total is None else total

    def current_milestone(self, total: int | None = None) -> Milestone | None:
        """Return the highest tier already reached."""
        points = self._total(total)
        current: Milestone | None = None
        for tier in self.tiers:
            if tier.points <= points:
                current = tier
        return current

    def next_milestone(self, total: int | None = None) -> NextMilestone | None:
        """Return the lowest unreached tier and the points still missing."""
        points = self._total(total)
        for tier in self.tiers:
            if tier.points > points:
                return NextMilestone(milestone=tier, remaining=tier.points - points)
        return None

    def achieved_milestones(self, total: int | None = None) -> list[Milestone]:
        points = self._total(total)
        return [tier for tier in self.tiers if tier.points <= points]

    def check_new_milestone(self, points_to_add: int) -> Milestone | None:
        """Return the highest tier crossed by adding points to the stored total.

        Must run before the points are persisted, since the stored total is the
        lower bound of the crossing window.
        """
        stored = self.store.total_points()
        new_total = stored + points_to_add
        crossed: Milestone | None = None
        for tier in self.tiers:
            if stored < tier.points <= new_total:
                crossed = tier
        if crossed is not None:
            logger.info("Milestone %s reached at %d points", crossed.level, new_total)
        return crossed
