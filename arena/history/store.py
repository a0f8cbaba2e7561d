"""
Conversation history storage.

Comparison sessions are stored as ChatRecord documents keyed by ID. The
ConversationStore protocol is the seam for persistence backends; the
bundled InMemoryConversationStore keeps records per-process and is what
the HTTP layer uses by default.

ChatHistory operations (create, update, add_message) are plain functions
over any store, so a different backend only has to implement the four
storage primitives.
"""

import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PREVIEW_LENGTH = 100
DEFAULT_PREVIEW = "New chat"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatMessage(BaseModel):
    """One message shown in a stored comparison session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: f"msg-{uuid.uuid4().hex[:12]}")
    type: Literal["user", "assistant"]
    content: str
    timestamp: str = Field(default_factory=_now_iso)
    model: str | None = Field(default=None, description="Target that produced an assistant message")


class ChatRecord(BaseModel):
    """A stored comparison session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    timestamp: str
    preview: str = DEFAULT_PREVIEW
    models: list[str] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)
    message_count: int = Field(default=0, ge=0)
    created_at: str = Field(default_factory=_now_iso)
    last_updated: str = Field(default_factory=_now_iso)


class ConversationStore(Protocol):
    """Storage primitives a history backend must provide."""

    def get(self, chat_id: str) -> ChatRecord | None: ...

    def put(self, record: ChatRecord) -> None: ...

    def delete(self, chat_id: str) -> bool: ...

    def list_all(self) -> list[ChatRecord]: ...

    def clear(self) -> None: ...


class InMemoryConversationStore:
    """
    Thread-safe dict-backed store.

    Records are copied on the way in and out so callers cannot mutate
    stored state by accident.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, ChatRecord] = {}

    def get(self, chat_id: str) -> ChatRecord | None:
        with self._lock:
            record = self._records.get(chat_id)
            return record.model_copy(deep=True) if record else None

    def put(self, record: ChatRecord) -> None:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    def delete(self, chat_id: str) -> bool:
        with self._lock:
            return self._records.pop(chat_id, None) is not None

    def list_all(self) -> list[ChatRecord]:
        """All records, most recently updated first."""
        with self._lock:
            records = [r.model_copy(deep=True) for r in self._records.values()]
        return sorted(records, key=lambda r: r.last_updated, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


# =============================================================================
# HISTORY OPERATIONS
# =============================================================================


def create_chat(
    store: ConversationStore,
    preview: str | None = None,
    models: list[str] | None = None,
    messages: list[ChatMessage] | None = None,
) -> ChatRecord:
    """Create and store a new session."""
    messages = list(messages or [])
    now = _now_iso()
    record = ChatRecord(
        id=f"chat-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
        timestamp=now,
        preview=preview or DEFAULT_PREVIEW,
        models=list(models or []),
        messages=messages,
        message_count=len(messages),
        created_at=now,
        last_updated=now,
    )
    store.put(record)
    return record


def update_chat(store: ConversationStore, chat_id: str, changes: dict) -> ChatRecord:
    """
    Apply field changes to an existing session.

    Raises:
        KeyError: If the session does not exist
    """
    existing = store.get(chat_id)
    if existing is None:
        raise KeyError(chat_id)

    field_names = {info.alias or name: name for name, info in ChatRecord.model_fields.items()}
    field_names.update({name: name for name in ChatRecord.model_fields})

    merged = existing.model_dump()
    for key, value in changes.items():
        name = field_names.get(key)
        if name is not None and name not in ("id", "created_at"):
            merged[name] = value
    record = ChatRecord.model_validate(merged)
    record = record.model_copy(
        update={"message_count": len(record.messages), "last_updated": _now_iso()}
    )
    store.put(record)
    return record


def add_message(store: ConversationStore, chat_id: str, message: ChatMessage) -> ChatRecord:
    """
    Append a message to a session, creating the session if it does not exist.

    A newly created session takes its preview from the message content.
    """
    existing = store.get(chat_id)
    now = _now_iso()

    if existing is None:
        record = ChatRecord(
            id=chat_id,
            timestamp=now,
            preview=message.content[:PREVIEW_LENGTH] or DEFAULT_PREVIEW,
            models=[message.model] if message.model else [],
            messages=[message],
            message_count=1,
            created_at=now,
            last_updated=now,
        )
    else:
        models = list(existing.models)
        if message.model and message.model not in models:
            models.append(message.model)
        messages = [*existing.messages, message]
        record = existing.model_copy(
            update={
                "messages": messages,
                "models": models,
                "message_count": len(messages),
                "last_updated": now,
            }
        )

    store.put(record)
    return record


_store: InMemoryConversationStore | None = None


def get_conversation_store() -> InMemoryConversationStore:
    """
    Get the global conversation store instance.

    Returns:
        Singleton InMemoryConversationStore
    """
    global _store
    if _store is None:
        _store = InMemoryConversationStore()
    return _store
