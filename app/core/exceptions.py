"""
Errors raised by the chat core. Routers map ChatError subclasses to HTTP status codes;
InitialContextMissingError is outside that hierarchy: it signals an integration bug, not bad input.
"""


class ChatError(Exception):
    """Base for recoverable chat errors."""


class ValidationError(ChatError):
    """Missing or malformed input. Raised before any I/O."""


class ConversationNotFoundError(ChatError):
    """Conversation does not exist or is not owned by the caller."""

    def __init__(self, conversation_id: str):
        super().__init__("Conversation not found")
        self.conversation_id = conversation_id


class StorageError(ChatError):
    """Persistence failure. The session has been rolled back."""


class GenerationError(ChatError):
    """Response strategy failed to produce a reply."""


class AssessmentLookupError(ChatError):
    """Assessment backend failed (not the same as 'assessment not found')."""


class InitialContextMissingError(RuntimeError):
    """First message of a conversation sent without an assessment snapshot on the conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(
            f"Conversation {conversation_id} has no assessment snapshot; "
            "an initial message requires assessment context"
        )
        self.conversation_id = conversation_id
