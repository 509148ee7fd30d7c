from __future__ import annotations

from collections.abc import Iterator


class ResourceLedger:
    """Maps source locations to the resource ids handed back by the control.

    An entry exists only while the point cloud is loaded. Only the reconciler
    writes to it; everyone else reads snapshots.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def __contains__(self, source: object) -> bool:
        return source in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, source: str) -> str | None:
        return self._entries.get(source)

    def sources(self) -> list[str]:
        return list(self._entries)

    def snapshot(self) -> dict[str, str]:
        return dict(self._entries)

    def record(self, source: str, resource_id: str) -> None:
        self._entries[source] = resource_id

    def release(self, source: str) -> str | None:
        return self._entries.pop(source, None)
