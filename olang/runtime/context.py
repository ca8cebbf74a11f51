"""
olang.runtime.context
=====================

Variable store for one workflow execution.

One ``ExecutionContext`` is created per ``execute_workflow`` call and shared
by every step, including the bodies of ``If`` and ``Run in parallel`` blocks.
Nothing is copied for nested scopes, so a ``Save as`` write is visible to all
later steps immediately.

Parallel siblings write into the same mapping without locking. Siblings that
write different names are safe; siblings that write the same name race and the
last write wins.
"""

from collections.abc import Mapping, MutableMapping, Sequence
from typing import Any, Dict, Iterator, Optional


def resolve_path(root: Any, path: Optional[str]) -> Any:
    """Walk a dotted path through mappings, sequences and attributes.

    Returns ``None`` when any segment is missing.
    """
    if not path:
        return None

    current = root
    for segment in path.strip().split("."):
        segment = segment.strip()
        if current is None or not segment:
            return None
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, segment, None)
    return current


class ExecutionContext(MutableMapping):
    """
    Mutable mapping with dotted-path reads.

    Parameters
    ----------
    initial : dict, optional
        Values copied into the context (the caller's inputs).
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self.shared_state: Dict[str, Any] = dict(initial or {})

    # ------------------------------------------------------------ mapping --

    def __getitem__(self, key: str) -> Any:
        return self.shared_state[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.shared_state[key] = value

    def __delitem__(self, key: str) -> None:
        del self.shared_state[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.shared_state)

    def __len__(self) -> int:
        return len(self.shared_state)

    def __repr__(self) -> str:
        return f"ExecutionContext({self.shared_state!r})"

    def resolve(self, path: Optional[str]) -> Any:
        """Dotted-path lookup; ``None`` when unresolved."""
        if path and path in self.shared_state:
            return self.shared_state[path]
        return resolve_path(self.shared_state, path)

    def snapshot(self) -> Dict[str, Any]:
        """Shallow copy of the current variables."""
        return dict(self.shared_state)
