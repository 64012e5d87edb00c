from convoflow.models.conversation_record import ConversationRecord

__all__ = [
    "ConversationRecord",
]
