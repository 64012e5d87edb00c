from convoflow.services.conversation_view_service import ConversationViewService
from convoflow.services.event_log_service import EventLogService

__all__ = [
    "ConversationViewService",
    "EventLogService",
]
