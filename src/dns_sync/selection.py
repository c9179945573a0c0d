"""
Selection sets for batch operations.

Two independent instances are used: one for DNS records of the open domain
(keyed by record id) and one for domains across accounts (keyed by
"account_id::domain_id"). A selection can only be non-empty while batch
mode is on.
"""

from typing import Iterable, Optional

from .enums import SelectionState

DOMAIN_KEY_SEPARATOR = "::"


def make_domain_key(account_id: str, domain_id: str) -> str:
    return f"{account_id}{DOMAIN_KEY_SEPARATOR}{domain_id}"


def parse_domain_key(key: str) -> Optional[tuple[str, str]]:
    """
    Split a composite domain key into (account_id, domain_id).

    Returns:
        The pair, or None unless the key contains exactly one separator
        with non-empty parts on both sides
    """
    parts = key.split(DOMAIN_KEY_SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


class SelectionSet:
    """
    Set of selected keys plus the batch-mode flag.

    States:
        INACTIVE         batch mode off, nothing selected
        ACTIVE_EMPTY     batch mode on, nothing selected
        ACTIVE_NONEMPTY  batch mode on, at least one key selected
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()
        self._batch_mode = False

    @property
    def batch_mode(self) -> bool:
        return self._batch_mode

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(self._keys)

    @property
    def state(self) -> SelectionState:
        if not self._batch_mode:
            return SelectionState.INACTIVE
        return SelectionState.ACTIVE_NONEMPTY if self._keys else SelectionState.ACTIVE_EMPTY

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def toggle_batch_mode(self) -> bool:
        """Flip batch mode. The selection is emptied either way."""
        self._batch_mode = not self._batch_mode
        self._keys.clear()
        return self._batch_mode

    def toggle_item(self, key: str) -> bool:
        """
        Add or remove one key. Ignored while batch mode is off.

        Returns:
            Whether key is selected afterwards
        """
        if not self._batch_mode:
            return False
        if key in self._keys:
            self._keys.discard(key)
            return False
        self._keys.add(key)
        return True

    def select_all(self, keys: Iterable[str]) -> None:
        """Add every given (visible) key. Ignored while batch mode is off."""
        if self._batch_mode:
            self._keys.update(keys)

    def discard(self, keys: Iterable[str]) -> None:
        self._keys.difference_update(keys)

    def clear_selection(self) -> None:
        self._keys.clear()

    def exit_batch_mode(self) -> None:
        self._batch_mode = False
        self._keys.clear()
