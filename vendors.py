"""
Vendor adapters.

Each adapter translates between a Session and one vendor's request/response
payloads (plain dicts, ready to be JSON encoded by whatever HTTP client sends
them). Adapters also supply the overhead estimate for trimming: the tokens
reserved for the reply plus the fixed wrapper text around the history, and
`message_text`, the framing each history message carries in the request.

The tokenizer and trimmer know nothing about these classes.
"""
import logging
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Tuple

from session import Message
from session import Role
from session import Session
from session import Vendor

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_TOKENS = 1000


class VendorResponseError(ValueError):
    """The vendor returned a payload without the expected completion text."""


class VendorAdapter:
    vendor: Vendor
    default_model: str
    # model name -> context size in tokens
    context_sizes: Dict[str, int]
    role_mapping: Dict[Role, str]
    # option holding the reply size limit
    max_output_option: str
    # options copied verbatim into the request, as (session key, request key)
    passthrough_options: Tuple[Tuple[str, str], ...] = ()

    def vendor_role(self, role: Role) -> str:
        return self.role_mapping[role]

    def internal_role(self, name: str) -> Role:
        for role, vendor_name in self.role_mapping.items():
            if vendor_name == name:
                return role
        raise ValueError(f"{self.vendor.value} role {name!r} has no internal equivalent")

    def model(self, session: Session) -> str:
        return session.options.get("model") or self.default_model

    def max_supported_tokens(self, model: Optional[str] = None) -> int:
        return self.context_sizes.get(model or self.default_model, self.context_sizes[self.default_model])

    def new_session(self, session_id: str, model: Optional[str] = None,
                    max_supported_tokens: Optional[int] = None) -> Session:
        session = Session(id=session_id,
                          vendor=self.vendor,
                          max_supported_tokens=max_supported_tokens or self.max_supported_tokens(model))
        if model:
            session.set_option("model", model)
        return session

    def reply_tokens(self, session: Session) -> int:
        value = session.options.get(self.max_output_option)
        if value is None:
            return DEFAULT_MAX_OUTPUT_TOKENS
        return int(value)

    def wrapper_text(self, session: Session) -> str:
        return ""

    def message_text(self, message: Message) -> str:
        """The text one history message occupies in the request, framing included."""
        return message.content

    def overhead_tokens(self, session: Session, counter: Callable[[str], int]) -> int:
        return self.reply_tokens(session) + counter(self.wrapper_text(session))

    def submission_window(self, session: Session, counter: Callable[[str], int],
                          new_content: str = "") -> List[Message]:
        overhead = self.overhead_tokens(session, counter)
        logger.info("Trimming %s session %s to %d tokens (%d reserved)", self.vendor.value, session.id,
                    session.budget, overhead)
        if new_content:
            new_content = self.message_text(Message(new_content))
        return session.submission_window(counter, new_content, overhead, self.message_text)

    def _passthrough(self, session: Session) -> Dict[str, Any]:
        return {request_key: session.options[key]
                for key, request_key in self.passthrough_options
                if session.options.get(key) is not None}

    def build_request(self, session: Session, window: Sequence[Message]) -> Dict[str, Any]:
        raise NotImplementedError

    def completion_text(self, payload: Mapping[str, Any]) -> str:
        raise NotImplementedError

    def parse_response(self, payload: Mapping[str, Any]) -> Message:
        try:
            text = self.completion_text(payload)
        except (KeyError, IndexError, TypeError) as e:
            raise VendorResponseError(f"unexpected {self.vendor.value} response: missing {e}") from e
        if not isinstance(text, str):
            raise VendorResponseError(f"unexpected {self.vendor.value} response: completion is {type(text).__name__}")
        return Message(content=text.strip(), role=Role.ASSISTANT)


class OpenAIAdapter(VendorAdapter):
    """Chat completions: a list of role/content messages, optionally led by a system message."""

    vendor = Vendor.OPENAI
    default_model = "gpt-4"
    context_sizes = {
        "gpt-3.5-turbo": 4096,
        "gpt-3.5-turbo-16k": 16384,
        "gpt-4": 8192,
        "gpt-4-32k": 32768,
    }
    role_mapping = {Role.HUMAN: "user", Role.ASSISTANT: "assistant"}
    max_output_option = "max_tokens"
    passthrough_options = (
        ("max_tokens", "max_tokens"),
        ("temperature", "temperature"),
        ("top_p", "top_p"),
        ("n", "n"),
        ("stop", "stop"),
        ("presence_penalty", "presence_penalty"),
        ("frequency_penalty", "frequency_penalty"),
        ("user", "user"),
    )

    def wrapper_text(self, session: Session) -> str:
        return session.options.get("system") or ""

    def message_text(self, message: Message) -> str:
        # chat completions serialize every message as a ChatML block
        return f"<|im_start|>{self.vendor_role(message.role)}\n{message.content}<|im_end|>\n"

    def build_request(self, session: Session, window: Sequence[Message]) -> Dict[str, Any]:
        messages = []
        system = self.wrapper_text(session)
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend({"role": self.vendor_role(m.role), "content": m.content} for m in window)
        request = {"model": self.model(session), "messages": messages}
        request.update(self._passthrough(session))
        return request

    def completion_text(self, payload: Mapping[str, Any]) -> str:
        return payload["choices"][0]["message"]["content"]


class AnthropicAdapter(VendorAdapter):
    """Text completions: the history is flattened into a Human/Assistant transcript."""

    vendor = Vendor.ANTHROPIC
    default_model = "claude-2"
    context_sizes = {
        "claude-2": 100_000,
        "claude-v1": 8_000,
        "claude-v1-100k": 100_000,
        "claude-instant-v1": 8_000,
        "claude-instant-v1-100k": 100_000,
    }
    role_mapping = {Role.HUMAN: "Human", Role.ASSISTANT: "Assistant"}
    max_output_option = "max_tokens_to_sample"
    passthrough_options = (
        ("stop_sequences", "stop_sequences"),
        ("temperature", "temperature"),
        ("top_k", "top_k"),
        ("top_p", "top_p"),
    )
    assistant_cue = "\n\nAssistant:"

    def wrapper_text(self, session: Session) -> str:
        return self.assistant_cue

    def message_text(self, message: Message) -> str:
        return f"\n\n{self.vendor_role(message.role)}: {message.content}"

    def prompt(self, window: Sequence[Message]) -> str:
        turns = "".join(self.message_text(m) for m in window)
        return turns + self.assistant_cue

    def build_request(self, session: Session, window: Sequence[Message]) -> Dict[str, Any]:
        request = {
            "model": self.model(session),
            "prompt": self.prompt(window),
            "max_tokens_to_sample": self.reply_tokens(session),
        }
        request.update(self._passthrough(session))
        return request

    def completion_text(self, payload: Mapping[str, Any]) -> str:
        return payload["completion"]


class VertexAdapter(VendorAdapter):
    """PaLM chat: one instance with user/bot authored messages and an optional context."""

    vendor = Vendor.VERTEX
    default_model = "chat-bison"
    context_sizes = {
        "chat-bison": 8000,
        "codechat-bison": 6000,
    }
    role_mapping = {Role.HUMAN: "user", Role.ASSISTANT: "bot"}
    max_output_option = "max_output_tokens"
    passthrough_options = (
        ("temperature", "temperature"),
        ("max_output_tokens", "maxOutputTokens"),
        ("top_p", "topP"),
        ("top_k", "topK"),
    )

    def wrapper_text(self, session: Session) -> str:
        return session.options.get("context") or ""

    def build_request(self, session: Session, window: Sequence[Message]) -> Dict[str, Any]:
        instance: Dict[str, Any] = {}
        context = self.wrapper_text(session)
        if context:
            instance["context"] = context
        instance["messages"] = [{"author": self.vendor_role(m.role), "content": m.content} for m in window]
        return {"instances": [instance], "parameters": self._passthrough(session)}

    def completion_text(self, payload: Mapping[str, Any]) -> str:
        return payload["predictions"][0]["candidates"][0]["content"]


_ADAPTERS = {
    Vendor.OPENAI: OpenAIAdapter,
    Vendor.ANTHROPIC: AnthropicAdapter,
    Vendor.VERTEX: VertexAdapter,
}


def get_adapter(vendor: Vendor) -> VendorAdapter:
    return _ADAPTERS[Vendor(vendor)]()
