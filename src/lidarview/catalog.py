from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from lidarview.models import BasemapName, Dataset


BASEMAPS: dict[str, str] = {
    BasemapName.dark.value: "https://basemaps.cartocdn.com/gl/dark-matter-gl-style/style.json",
    BasemapName.light.value: "https://basemaps.cartocdn.com/gl/positron-gl-style/style.json",
}

MAP_ATTRIBUTION = (
    'Based on maplibre-gl-lidar | Data: '
    '<a href="https://www.opengeodata.nrw" target="_blank">opengeodata.nrw</a>'
)

DEFAULT_DATASETS: tuple[dict[str, str], ...] = (
    {
        "id": "dataset-1",
        "name": "West-Teil (Dataset 1)",
        "source": "./data/3dm_32_356_5644_1_nw.laz",
    },
    {
        "id": "dataset-2",
        "name": "Ost-Teil (Dataset 2)",
        "source": "./data/3dm_32_356_5645_1_nw.laz",
    },
)

_DATASET_LIST = TypeAdapter(list[Dataset])


class CatalogError(ValueError):
    pass


class DatasetNotFoundError(KeyError):
    pass


class DatasetCatalog(Sequence[Dataset]):
    """Immutable, ordered list of the datasets a viewer can show."""

    def __init__(self, datasets: Sequence[Dataset]):
        items = tuple(datasets)
        if not items:
            raise CatalogError("Dataset catalog is empty.")

        by_id: dict[str, Dataset] = {}
        by_source: dict[str, Dataset] = {}
        for dataset in items:
            if dataset.id in by_id:
                raise CatalogError(f"Duplicate dataset id '{dataset.id}'.")
            if dataset.source in by_source:
                raise CatalogError(f"Duplicate dataset source '{dataset.source}'.")
            by_id[dataset.id] = dataset
            by_source[dataset.source] = dataset

        self._items = items
        self._by_id = by_id
        self._by_source = by_source

    def __getitem__(self, index):  # type: ignore[override]
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Dataset]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"DatasetCatalog({[d.id for d in self._items]!r})"

    def get(self, dataset_id: str) -> Dataset:
        try:
            return self._by_id[dataset_id]
        except KeyError:
            raise DatasetNotFoundError(dataset_id) from None

    def by_source(self, source: str) -> Dataset:
        try:
            return self._by_source[source]
        except KeyError:
            raise DatasetNotFoundError(source) from None

    def default_selection(self, dataset_ids: Sequence[str] = ()) -> list[str]:
        if not dataset_ids:
            return [self._items[0].source]
        return [self.get(dataset_id).source for dataset_id in dataset_ids]


def build_catalog(entries: Sequence[dict[str, Any]]) -> DatasetCatalog:
    try:
        datasets = _DATASET_LIST.validate_python(list(entries))
    except ValidationError as exc:
        raise CatalogError(f"Invalid dataset catalog: {exc}") from exc
    return DatasetCatalog(datasets)


def load_catalog(path: Path | None = None) -> DatasetCatalog:
    """Load a catalog from a JSON file, or return the built-in one.

    The file holds either a list of ``{"id", "name", "source"}`` objects or an
    object with a ``"datasets"`` key holding that list. ``url`` is accepted as
    an alias of ``source``.
    """

    if path is None:
        return build_catalog(DEFAULT_DATASETS)

    if not path.exists():
        raise CatalogError(f"Catalog file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Catalog file is not valid JSON: {path}") from exc

    if isinstance(raw, dict):
        raw = raw.get("datasets", [])
    if not isinstance(raw, list):
        raise CatalogError("Catalog must be a list of datasets.")

    entries: list[dict[str, Any]] = []
    for item in raw:
        if isinstance(item, dict) and "source" not in item and "url" in item:
            item = {**{k: v for k, v in item.items() if k != "url"}, "source": item["url"]}
        entries.append(item)
    return build_catalog(entries)
