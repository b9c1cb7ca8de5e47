"""Per-chat conversation state: message log, knowledge index, confirmation gate."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from desktop_agent.knowledge.index import KnowledgeIndex
from desktop_agent.planning.confirmation import ConfirmationGate
from desktop_agent.planning.models import ActionPlan

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Welcome to the Autonomous Desktop Agent! I can help you with document analysis, "
    "index parsing, and intelligent information retrieval. How can I assist you today?"
)

# Message categories
INDEXING = "indexing"
PLAN = "plan"
INFO = "info"
CONFIRMATION = "confirmation"
CANCELLATION = "cancellation"
CLEAR_INDEX = "clear_index"
ERROR = "error"


@dataclass(frozen=True)
class Message:
    """A single entry in the conversation log."""

    id: int
    text: str
    origin: str  # "user" or "agent"
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    category: str | None = None
    plan: ActionPlan | None = None

    @property
    def is_user(self) -> bool:
        return self.origin == "user"


@dataclass
class Session:
    """Conversation state for a single chat.

    ``busy`` is set while a request is being handled so overlapping
    input can be turned away instead of queued.
    """

    messages: list[Message] = field(default_factory=list)
    index: KnowledgeIndex = field(default_factory=KnowledgeIndex)
    gate: ConfirmationGate = field(default_factory=ConfirmationGate)
    busy: bool = False
    _next_id: int = field(default=1, repr=False)

    def __post_init__(self) -> None:
        if not self.messages:
            self.post(WELCOME_TEXT, origin="agent")
        else:
            self._next_id = max(m.id for m in self.messages) + 1

    @property
    def input_blocked(self) -> bool:
        """True while a plan awaits a decision or a request is in flight."""
        return self.busy or self.gate.is_pending

    def post(
        self,
        text: str,
        *,
        origin: str = "agent",
        category: str | None = None,
        plan: ActionPlan | None = None,
    ) -> Message:
        """Append a message to the log and return it."""
        message = Message(
            id=self._next_id,
            text=text,
            origin=origin,
            category=category,
            plan=plan,
        )
        self._next_id += 1
        self.messages.append(message)
        return message

    def find(self, message_id: int) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


# Global session store keyed by session ID (str(chat_id) for Telegram)
_sessions: dict[str, Session] = {}


def get_session(session_id: str | int) -> Session:
    """Get or create a session for a chat."""
    key = str(session_id)
    if key not in _sessions:
        _sessions[key] = Session()
        logger.debug("Created session %s", key)
    return _sessions[key]
