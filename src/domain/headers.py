"""
Case-insensitive, multi-valued header collection.

Header names are compared case-insensitively but keep their original
spelling; values keep their original case. Fields are kept in the order
they were added so that the folded view preserves encounter order.
"""

from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

# Headers that only ever carry one field. Adding one of these replaces
# the current value instead of appending a second field.
LIMITED_FIELDS = frozenset([
    'from', 'to', 'cc', 'bcc', 'subject', 'reply-to',
    'sender', 'message-id', 'mime-version',
])

HeaderValue = Union[str, List[str]]


def fold(name: str) -> str:
    """Normalize a header name for comparison."""
    return name.strip().lower()


def to_text(value: Any) -> str:
    """Render a header or option value as text; booleans use JSON spelling."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _as_values(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [to_text(v) for v in value if v is not None]
    return [to_text(value)]


class HeaderMap:
    """
    Ordered multi-map of header fields keyed on the lowercased name.

    Example:
        >>> headers = HeaderMap()
        >>> headers.add('X-Tag', 'a')
        >>> headers.add('x-tag', 'b')
        >>> headers.get_all('X-TAG')
        ['a', 'b']
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._fields: List[Tuple[str, str]] = []
        if initial:
            self.update(initial)

    def add(self, name: str, value: Any) -> None:
        """
        Add a header field, mirroring ``message[name] = value``.

        ``None`` removes the header. Limited fields (``To``, ``Subject``...)
        replace their current value; every other header is appended.
        """
        if value is None:
            self.remove(name)
            return
        if fold(name) in LIMITED_FIELDS:
            self.remove(name)
        for item in _as_values(value):
            self._fields.append((name, item))

    def set(self, name: str, value: Any) -> None:
        """Replace every field named ``name`` with ``value``."""
        self.remove(name)
        if value is not None:
            for item in _as_values(value):
                self._fields.append((name, item))

    def update(self, headers: Mapping[str, Any]) -> None:
        for name, value in headers.items():
            self.add(name, value)

    def merge(self, headers: Mapping[str, Any]) -> None:
        """
        Merge ``headers`` into the collection, replacing on name collision.

        Used for provider-specific headers, which take precedence over
        headers set through the generic channel.
        """
        for name, value in headers.items():
            self.set(name, value)

    def remove(self, name: str) -> None:
        key = fold(name)
        self._fields = [(n, v) for n, v in self._fields if fold(n) != key]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value for ``name``."""
        key = fold(name)
        for field_name, value in self._fields:
            if fold(field_name) == key:
                return value
        return default

    def get_all(self, name: str) -> List[str]:
        key = fold(name)
        return [v for n, v in self._fields if fold(n) == key]

    def folded(self) -> Dict[str, HeaderValue]:
        """
        Build the case-folded view of the collection.

        Each lowercased name maps to its single value, or to the list of
        all its values in encounter order when it appears more than once.
        """
        result: Dict[str, HeaderValue] = {}
        for name, value in self._fields:
            key = fold(name)
            if key in result:
                existing = result[key]
                if isinstance(existing, list):
                    existing.append(value)
                else:
                    result[key] = [existing, value]
            else:
                result[key] = value
        return result

    def names(self) -> List[str]:
        """Distinct folded names in first-seen order."""
        seen: List[str] = []
        for name, _ in self._fields:
            key = fold(name)
            if key not in seen:
                seen.append(key)
        return seen

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        key = fold(name)
        return any(fold(n) == key for n, _ in self._fields)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._fields))

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"HeaderMap({self._fields!r})"
