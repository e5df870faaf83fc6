"""
Conversation state.

A Session owns its ordered message history. The history is only ever
appended to; trimming for submission returns a new list and leaves the stored
history intact, so the full conversation is always what gets persisted.
"""
import enum
import logging
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional

from trimmer import trim

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"


class Vendor(str, enum.Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    VERTEX = "vertex"


@dataclass(frozen=True)
class Message:
    content: str
    role: Role = Role.HUMAN
    pin: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "role": self.role.value, "pin": self.pin}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        content = data.get("content")
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise ValueError(f"message content must be text, got {content!r}")
        pin = data.get("pin", False)
        if not isinstance(pin, bool):
            raise ValueError(f"message pin must be true or false, got {pin!r}")
        return cls(content=content, role=Role(data.get("role", Role.HUMAN.value)), pin=pin)


@dataclass
class Session:
    """
    One named conversation.

    Attributes:
        id: Display name of the session.
        vendor: Which vendor API the session targets.
        max_supported_tokens: Token budget of the target model.
        history: Messages, oldest first.
        options: Vendor options (model name, sampling parameters), passed through as-is.
            `max_history`, when set, replaces `max_supported_tokens` as the trimming budget.
    """
    id: str
    vendor: Vendor
    max_supported_tokens: int
    history: List[Message] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.vendor = Vendor(self.vendor)
        if self.max_supported_tokens <= 0:
            raise ValueError(f"max_supported_tokens must be positive, got {self.max_supported_tokens}")

    def append(self, message: Message) -> None:
        self.history.append(message)
        logger.debug("Session %s now has %d messages", self.id, len(self.history))

    def pin(self, index: int, pinned: bool = True) -> Message:
        """Sets the pin flag of the message at `index` and returns the new message."""
        message = replace(self.history[index], pin=pinned)
        self.history[index] = message
        return message

    def set_option(self, key: str, value: Any) -> None:
        self.options[key] = value

    @property
    def budget(self) -> int:
        max_history = self.options.get("max_history")
        if max_history is None:
            return self.max_supported_tokens
        if not isinstance(max_history, int) or isinstance(max_history, bool) or max_history <= 0:
            raise ValueError(f"max_history must be a positive integer, got {max_history!r}")
        return max_history

    def submission_window(self, counter: Callable[[str], int], new_content: str = "",
                          overhead_tokens: int = 0,
                          message_text: Optional[Callable[[Message], str]] = None) -> List[Message]:
        """
        Returns the messages to send this turn, trimmed to `budget`.

        Raises:
            BudgetExceeded: If pinned messages alone do not fit.
        """
        return trim(self.history, new_content, overhead_tokens, self.budget, counter, message_text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vendor": self.vendor.value,
            "max_supported_tokens": self.max_supported_tokens,
            "options": dict(self.options),
            "history": [m.to_dict() for m in self.history],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        return cls(
            id=str(data["id"]),
            vendor=Vendor(data["vendor"]),
            max_supported_tokens=int(data["max_supported_tokens"]),
            history=[Message.from_dict(m) for m in data.get("history") or []],
            options=dict(data.get("options") or {}),
        )
