from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator


SelectionListener = Callable[[tuple[str, ...]], None]


class SelectionSet:
    """Ordered set of source locations the user wants rendered.

    ``toggle`` is the only mutation. Listeners are notified synchronously with
    the new snapshot after every change.
    """

    def __init__(self, initial: Iterable[str] = ()):
        self._items: list[str] = []
        for source in initial:
            if source not in self._items:
                self._items.append(source)
        self._listeners: list[SelectionListener] = []

    def __contains__(self, source: object) -> bool:
        return source in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"SelectionSet({self._items!r})"

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self._items)

    def toggle(self, source: str) -> bool:
        """Add ``source`` if absent, remove it if present. Returns the new membership."""
        if source in self._items:
            self._items.remove(source)
            active = False
        else:
            self._items.append(source)
            active = True
        self._notify()
        return active

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
