from arena.history.store import (
    ChatMessage,
    ChatRecord,
    ConversationStore,
    InMemoryConversationStore,
    add_message,
    create_chat,
    get_conversation_store,
    update_chat,
)

__all__ = [
    "ChatMessage",
    "ChatRecord",
    "ConversationStore",
    "InMemoryConversationStore",
    "add_message",
    "create_chat",
    "get_conversation_store",
    "update_chat",
]
