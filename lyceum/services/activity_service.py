"""
Activity log: an append-only audit trail fed by domain events.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.authorization import Identity
from ..core.entities import ActivityLog, Event
from ..core.enums import SUBMISSION_ACTIVITY, Action, ActivityType, EventType, ItemKind
from ..core.exceptions import ValidationError
from ..core.interfaces import EventHandler
from ..persistence.repositories import RepositoryRegistry
from .access_service import AccessService


logger = logging.getLogger(__name__)

EVENT_ACTIVITY = {
    EventType.CONTENT_VIEWED: ActivityType.CONTENT_VIEW,
    EventType.SUBMISSION_GRADED: ActivityType.SUBMISSION_GRADED,
    EventType.COURSE_ENROLLED: ActivityType.COURSE_ENROLL,
    EventType.PROGRESS_UPDATED: ActivityType.PROGRESS_UPDATE,
}

ENTITY_KEYS = ("submission_id", "content_id", "progress_id", "course_id")


class ActivityService(EventHandler):
    """Writes and reads activity log entries. Entries are never changed."""

    def __init__(self, repositories: RepositoryRegistry, access: AccessService):
        self._repos = repositories
        self._access = access

    def log_activity(self, user_id: str, activity_type: ActivityType, entity_id: Optional[str] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> ActivityLog:
        entry = ActivityLog(user_id, activity_type, entity_id, metadata)
        return self._repos.activity_logs.append(entry)

    def log_session(self, actor: Optional[Identity], activity_type: ActivityType) -> ActivityLog:
        """Record a login or logout of an identified user."""
        if activity_type not in (ActivityType.LOGIN, ActivityType.LOGOUT):
            raise ValidationError("activity_type", "must be login or logout")
        action = Action.LOGIN if activity_type == ActivityType.LOGIN else Action.LOGOUT
        self._access.require(actor, action)
        if actor is None:
            raise ValidationError("actor", "anonymous sessions are not logged")
        return self.log_activity(actor.user_id, activity_type)

    def list_activity(self, actor: Optional[Identity], user_id: Optional[str] = None,
                      activity_type: Optional[ActivityType] = None) -> List[ActivityLog]:
        """A user's own activity, oldest first."""
        if actor is None:
            self._access.require(actor, Action.VIEW_OWN_RECORD)
        user_id = user_id or actor.user_id
        self._access.require(actor, Action.VIEW_OWN_RECORD, owner_id=user_id)
        entries = self._repos.activity_logs.find_by_user(user_id)
        if activity_type is not None:
            entries = [e for e in entries if e.activity_type == activity_type]
        return sorted(entries, key=lambda e: e.timestamp)

    def can_handle(self, event_type: EventType) -> bool:
        return event_type in EVENT_ACTIVITY or event_type == EventType.WORK_SUBMITTED

    def handle_event(self, event: Event) -> None:
        if event.event_type == EventType.WORK_SUBMITTED:
            activity_type = SUBMISSION_ACTIVITY[ItemKind(event.get("kind"))]
        else:
            activity_type = EVENT_ACTIVITY[event.event_type]
        entity_id = next((event.get(key) for key in ENTITY_KEYS if event.get(key)), None)
        self.log_activity(event.get("user_id"), activity_type, entity_id, event.event_data)
