"""Interactive UI components for splitting bill items."""

import logging
from collections.abc import Sequence
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import BillItem, User
from .money import Money, allocate

logger = logging.getLogger(__name__)


def parse_share_spec(spec: str, users: Sequence[User]) -> list[tuple[str, int]]:
    """
    Parse a share specification into (user_id, percentage) pairs.

    Accepted forms:
        "Ada:50, Bayo:50"   explicit percentages
        "Ada, Bayo, Chidi"  even split (34/33/33)

    Names match users by full name (case-insensitive) or by user_id.
    Mixing explicit and implicit percentages is not allowed.

    Raises:
        ValueError: If a name is unknown or the spec is malformed
    """
    lookup: dict[str, str] = {}
    for user in users:
        lookup[user.user_id] = user.user_id
        lookup[user.full_name.lower()] = user.user_id

    parts = [part.strip() for part in spec.split(",") if part.strip()]
    if not parts:
        raise ValueError("No assignees given")

    names: list[str] = []
    percentages: list[int | None] = []
    for part in parts:
        name, sep, pct = part.rpartition(":")
        if not sep:
            name, pct = part, ""
        name = name.strip()
        user_id = lookup.get(name) or lookup.get(name.lower())
        if user_id is None:
            raise ValueError(f"Unknown person: {name}")
        names.append(user_id)
        if pct.strip():
            try:
                percentages.append(int(pct.strip().rstrip("%")))
            except ValueError as e:
                raise ValueError(f"Invalid percentage for {name}: {pct}") from e
        else:
            percentages.append(None)

    if all(p is None for p in percentages):
        even = allocate(100, [1] * len(names), len(names))
        return list(zip(names, even))
    if any(p is None for p in percentages):
        raise ValueError("Give a percentage for everyone or for no one")
    return [(user_id, pct) for user_id, pct in zip(names, percentages) if pct is not None]


class MemberCompleter(Completer):
    """Completes group member names after the last comma."""

    def __init__(self, users: Sequence[User]):
        """Initialize the completer with the people an item can be split between."""
        self.names = [user.full_name for user in users]

    def get_completions(self, document: Document, complete_event: Any):
        """Get prefix-matched completions for the current name."""
        current = document.text_before_cursor.rsplit(",", 1)[-1]
        query = current.strip().lower()
        if ":" in query:
            return
        for name in self.names:
            if name.lower().startswith(query):
                yield Completion(
                    text=name,
                    start_position=-len(current.lstrip()),
                    display=name,
                )


def prompt_item_shares(
    item: BillItem, users: Sequence[User], currency: str = "NGN"
) -> list[tuple[str, int]] | None:
    """
    Ask who shares a bill item, looping until the input is valid.

    Args:
        item: The item being split
        users: People the item can be split between
        currency: Currency for display

    Returns:
        (user_id, percentage) pairs, or None to skip
    """
    line_total = Money(item.line_total, currency)
    print(f"\n🧾 {item.name} × {item.quantity} = {line_total}")
    print("   e.g. 'Ada:60, Bayo:40' or 'Ada, Bayo' to split evenly")
    print("   Tab to complete names, Enter on empty input or Ctrl+C to skip\n")

    session: PromptSession[str] = PromptSession(completer=MemberCompleter(users))

    try:
        while True:
            result = session.prompt("Split between: ", complete_while_typing=True)
            if not result.strip():
                return None

            try:
                shares = parse_share_spec(result, users)
            except ValueError as e:
                print(f"❌ {e}")
                continue

            total = sum(pct for _, pct in shares)
            if total != 100:
                print(f"❌ Shares add up to {total}%, they must total 100%")
                continue

            logger.info(f"User split '{item.name}' between {len(shares)} people")
            return shares

    except KeyboardInterrupt:
        print("\n⏭️  Skipped")
        return None
    except EOFError:
        return None
