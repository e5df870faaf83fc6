"""
Token-budget history trimming.

Picks which historical messages are sent with a new prompt so that

    overhead + count(new_content) + sum(count(kept messages)) <= budget

where a message is counted as rendered by `message_text` (its bare content
unless the caller supplies the vendor framing).

Pinned messages are always kept. Their cost is reserved up front, and the
remaining room is filled with unpinned messages from newest to oldest. An
unpinned message that does not fit is skipped, but older (smaller) ones are
still considered. Messages are never truncated and never reordered.
"""
import logging
from typing import TYPE_CHECKING
from typing import Callable
from typing import List
from typing import Optional
from typing import Sequence

if TYPE_CHECKING:
    from session import Message

logger = logging.getLogger(__name__)

Counter = Callable[[str], int]


class BudgetExceeded(ValueError):
    """Pinned messages plus the new prompt do not fit in the budget."""

    def __init__(self, required: int, pinned: int, budget: int):
        self.required = required
        self.pinned = pinned
        self.budget = budget
        super().__init__(
            f"prompt needs {required} tokens and pinned messages {pinned} more, "
            f"which exceeds the budget of {budget}; unpin a message or raise the budget"
        )


def trim(history: Sequence["Message"],
         new_content: str,
         overhead_tokens: int,
         budget: int,
         counter: Counter,
         message_text: Optional[Callable[["Message"], str]] = None,
         ) -> List["Message"]:
    """
    Computes the submission window for one turn.

    Args:
        history: Messages, oldest first. Not modified.
        new_content: Text that will be sent after the history ("" if it was
            already appended to the history).
        overhead_tokens: Fixed cost of wrapper text and reply reservation.
        budget: Maximum number of tokens for the whole request.
        counter: Returns the token count of a string.
        message_text: Renders a message the way the request will carry it
            (role prefix included). Defaults to the bare content.

    Returns:
        The kept messages, in their original order.

    Raises:
        BudgetExceeded: If pinned messages and the new prompt alone exceed `budget`.
    """
    if budget <= 0:
        raise ValueError(f"budget must be positive, got {budget}")
    if overhead_tokens < 0:
        raise ValueError(f"overhead_tokens must not be negative, got {overhead_tokens}")

    required = overhead_tokens + counter(new_content)
    render = message_text or (lambda m: m.content)
    costs = [counter(render(m)) for m in history]
    pinned = sum(cost for m, cost in zip(history, costs) if m.pin)

    used = required + pinned
    if used > budget:
        raise BudgetExceeded(required, pinned, budget)

    keep = [m.pin for m in history]
    for i in range(len(history) - 1, -1, -1):
        if keep[i]:
            continue
        if used + costs[i] <= budget:
            keep[i] = True
            used += costs[i]
        else:
            logger.debug("Dropping message %d (%d tokens): %d of %d tokens used", i, costs[i], used, budget)

    window = [m for m, kept in zip(history, keep) if kept]
    logger.debug("Submission window keeps %d of %d messages, %d of %d tokens", len(window), len(history), used,
                 budget)
    return window
