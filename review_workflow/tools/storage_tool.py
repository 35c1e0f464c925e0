"""Storage Tool for collecting structured agent outputs."""

from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

T = TypeVar('T')


class StorageTool(Generic[T]):
    """
    Collects agent tool-call payloads in structured form.

    The agent is treated as a black-box function with a fixed output schema:
    every result it produces arrives through a tool call whose arguments are
    stored here. Payloads missing a required key are rejected back to the
    agent so it can retry, instead of being silently dropped later.
    """

    def __init__(self, required: Iterable[str] = ()):
        self._values: List[T] = []
        self._required = list(required)

    def missing_keys(self, value: Any) -> List[str]:
        if not isinstance(value, dict):
            return list(self._required)
        return [k for k in self._required if value.get(k) in (None, "")]

    def store(self, value: T) -> Dict[str, Any]:
        """
        Tool function called by agent to store one result.

        Returns MCP-compatible response format.
        """
        missing = self.missing_keys(value)
        if missing:
            return {
                "content": [{
                    "type": "text",
                    "text": f"Rejected: missing required fields {', '.join(missing)}"
                }],
                "is_error": True,
            }

        self._values.append(value)
        return {
            "content": [{
                "type": "text",
                "text": f"Stored successfully. Total: {len(self._values)}"
            }]
        }

    @property
    def values(self) -> List[T]:
        """Get copy of stored values."""
        return self._values.copy()

    @property
    def first(self) -> Optional[T]:
        return self._values[0] if self._values else None

    def clear(self):
        """Clear all stored values."""
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)
