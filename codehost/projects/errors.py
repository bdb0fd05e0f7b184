"""Per-record validation error collection."""

from typing import Dict, List


class Errors:
    """Field -> messages mapping attached to a record.

    Entity-level messages are stored under the ``base`` key.
    """

    BASE = "base"

    def __init__(self) -> None:
        self._messages: Dict[str, List[str]] = {}

    def add(self, field: str, message: str) -> None:
        messages = self._messages.setdefault(field, [])
        if message not in messages:
            messages.append(message)

    def add_base(self, message: str) -> None:
        self.add(self.BASE, message)

    def clear(self) -> None:
        self._messages.clear()

    @property
    def messages(self) -> Dict[str, List[str]]:
        return {field: list(msgs) for field, msgs in self._messages.items()}

    def full_messages(self) -> List[str]:
        """Messages prefixed with their humanized field name."""
        result = []
        for field, msgs in self._messages.items():
            for msg in msgs:
                if field == self.BASE:
                    result.append(msg)
                else:
                    result.append(f"{field.replace('_', ' ').capitalize()} {msg}")
        return result

    def __getitem__(self, field: str) -> List[str]:
        return list(self._messages.get(field, []))

    def __contains__(self, field: str) -> bool:
        return bool(self._messages.get(field))

    def __bool__(self) -> bool:
        return any(self._messages.values())

    def __len__(self) -> int:
        return sum(len(msgs) for msgs in self._messages.values())

    def __repr__(self) -> str:
        return f"Errors({self._messages!r})"
