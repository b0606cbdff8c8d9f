from app.models.user import User
from app.models.assessment import Assessment
from app.models.conversation import Conversation, NO_MESSAGES_PREVIEW
from app.models.chat_message import ChatMessage, MessageRole

__all__ = [
    "User", "Assessment", "Conversation", "NO_MESSAGES_PREVIEW", "ChatMessage", "MessageRole",
]
