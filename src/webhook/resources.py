"""Trigger configuration and the Graph resource paths each trigger mode subscribes to."""

from pydantic import BaseModel

from src.config import MEETING_ID, TRIGGER_EVENT, USER_ID, WATCH_ALL_MEETINGS
from src.errors import ConfigurationError

EVENT_NEW_TRANSCRIPT = "newTranscript"
EVENT_NEW_USER_TRANSCRIPT = "newUserTranscript"

ALL_TRANSCRIPTS_RESOURCE = "communications/onlineMeetings/getAllTranscripts"


class TriggerConfig(BaseModel):
    """What a webhook registration watches."""

    event: str = EVENT_NEW_TRANSCRIPT
    watch_all_meetings: bool = True
    meeting_id: str = ""
    user_id: str = ""

    @classmethod
    def from_env(cls) -> "TriggerConfig":
        return cls(
            event=TRIGGER_EVENT,
            watch_all_meetings=WATCH_ALL_MEETINGS,
            meeting_id=MEETING_ID,
            user_id=USER_ID,
        )


def resolve_resource_paths(config: TriggerConfig) -> list[str]:
    """Resource paths to subscribe to. Raises ConfigurationError for incomplete config."""
    if config.event == EVENT_NEW_TRANSCRIPT:
        if config.watch_all_meetings:
            return [ALL_TRANSCRIPTS_RESOURCE]
        meeting_id = config.meeting_id.strip()
        if not meeting_id:
            raise ConfigurationError(
                "Meeting ID is required",
                'Provide a meeting ID or enable "Watch All Meetings"',
            )
        return [f"communications/onlineMeetings/{meeting_id}/transcripts"]

    if config.event == EVENT_NEW_USER_TRANSCRIPT:
        user_id = config.user_id.strip()
        if not user_id:
            raise ConfigurationError("User ID is required", "Provide a user ID")
        return [f"users/{user_id}/onlineMeetings/getAllTranscripts"]

    raise ConfigurationError(
        "Invalid event type",
        f'Event type "{config.event}" is not supported',
    )
