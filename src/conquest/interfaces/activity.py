"""Activity Provider Protocol Interface.

This module defines where finished activities come from when a conquest is
requested by activity id.
"""

from typing import Protocol

from conquest.domain.models import ActivityID, FinishedActivity


class IActivityProvider(Protocol):
    """Protocol for looking up finished activities."""

    def get_finished_activity(self, activity_id: ActivityID) -> FinishedActivity | None:
        """Fetch a finished activity.

        Args:
            activity_id: Activity to fetch

        Returns:
            The activity, or None when it does not exist or is unfinished
        """
        ...
