"""
Synced Cache — Key-Value Medium Interface

Defines the synchronous key-value capability the local store is built on
(the role localStorage plays in a browser). All media must implement it.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator


class KeyValueStore(ABC):
    """
    Abstract base class for persistent key-value media.

    Implementations store opaque strings. They may be shared by several cache
    contexts at once and must not assume they are the only writer. Errors
    (quota, connection) propagate to the caller; the local store adapter turns
    them into non-fatal storage failures.
    """

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """
        Retrieve a raw value.

        Args:
            key: Fully-qualified storage key

        Returns:
            Stored string, or None if the key is absent
        """

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Store a raw value, replacing any previous one.

        Args:
            key: Fully-qualified storage key
            value: String to store
        """

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """
        Remove a key. Removing an absent key is not an error.

        Args:
            key: Fully-qualified storage key
        """

    @abstractmethod
    def iter_keys(self, prefix: str = "") -> Iterator[str]:
        """
        Enumerate stored keys.

        Args:
            prefix: Only yield keys starting with this prefix

        Returns:
            Finite iterator over a snapshot of matching keys
        """

    def close(self) -> None:  # noqa: B027
        """Release resources held by the medium. Default: nothing to release."""
