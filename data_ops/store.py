"""
In-memory store of named time-series tables.

TableEntry holds one table (the full extraction or a filtered subset) as a
pandas DataFrame. TableStore is a dict-like container keyed by label strings
that can persist itself to a directory, which is how extracted archives are
cached between runs.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from .timeseries import DATASET_COLUMN, variable_names

# Characters unsafe for filenames on Windows
_UNSAFE_CHARS = re.compile(r'[/\\:*?"<>|]')


@dataclass
class TableEntry:
    """A single time-series table stored in memory.

    Attributes:
        label: Unique identifier (e.g., "ch2k" or "indian_ocean").
        data: DataFrame with one row per series.
        description: Human-readable description (e.g. the filter chain).
        source: Origin, "archive" for extracted data, "filtered" for subsets.
    """

    label: str
    data: pd.DataFrame
    description: str = ""
    source: str = "filtered"
    metadata: dict | None = None

    def summary(self) -> dict:
        """Return a compact summary dict of the table."""
        df = self.data
        n_datasets = int(df[DATASET_COLUMN].nunique()) if DATASET_COLUMN in df.columns else 0
        result = {
            "label": self.label,
            "num_rows": len(df),
            "num_datasets": n_datasets,
            "variables": variable_names(df),
            "num_columns": len(df.columns),
            "description": self.description,
            "source": self.source,
        }
        if self.metadata:
            result["metadata"] = self.metadata
        return result


class TableStore:
    """In-memory store mapping labels to TableEntry objects."""

    def __init__(self):
        self._entries: dict[str, TableEntry] = {}

    def put(self, entry: TableEntry) -> None:
        """Store a TableEntry, overwriting any existing entry with the same label."""
        self._entries[entry.label] = entry

    def get(self, label: str) -> Optional[TableEntry]:
        """Retrieve a TableEntry by label, or None if not found."""
        return self._entries.get(label)

    def has(self, label: str) -> bool:
        return label in self._entries

    def remove(self, label: str) -> bool:
        """Remove an entry by label. Returns True if it existed."""
        if label in self._entries:
            del self._entries[label]
            return True
        return False

    def list_entries(self) -> list[dict]:
        """Return summary dicts for all stored entries."""
        return [entry.summary() for entry in self._entries.values()]

    def clear(self) -> None:
        self._entries.clear()

    def save_to_directory(self, dir_path: Path) -> None:
        """Persist all entries to a directory.

        Tables are saved as pickle files (they hold list-valued columns).
        An ``_index.json`` maps original labels to filenames and metadata.
        """
        dir_path = Path(dir_path)
        dir_path.mkdir(parents=True, exist_ok=True)

        index = {}
        for label, entry in self._entries.items():
            filename = f"{_UNSAFE_CHARS.sub('_', label)}.pkl"
            entry.data.to_pickle(dir_path / filename)
            entry_meta = {
                "filename": filename,
                "description": entry.description,
                "source": entry.source,
            }
            if entry.metadata is not None:
                entry_meta["metadata"] = entry.metadata
            index[label] = entry_meta

        with open(dir_path / "_index.json", "w", encoding="utf-8") as f:
            json.dump(index, f, indent=2)

    def load_from_directory(self, dir_path: Path) -> int:
        """Restore entries from a directory written by ``save_to_directory``.

        Returns:
            Number of entries loaded.
        """
        dir_path = Path(dir_path)
        index_path = dir_path / "_index.json"
        if not index_path.exists():
            return 0

        with open(index_path, "r", encoding="utf-8") as f:
            index = json.load(f)

        count = 0
        for label, info in index.items():
            file_path = dir_path / info["filename"]
            if not file_path.exists():
                continue
            entry = TableEntry(
                label=label,
                data=pd.read_pickle(file_path),
                description=info.get("description", ""),
                source=info.get("source", "filtered"),
                metadata=info.get("metadata"),
            )
            self.put(entry)
            count += 1

        return count

    def __len__(self) -> int:
        return len(self._entries)


# Module-level singleton
_store: Optional[TableStore] = None


def get_store() -> TableStore:
    """Return the global TableStore singleton."""
    global _store
    if _store is None:
        _store = TableStore()
    return _store


def reset_store() -> None:
    """Reset the global TableStore (mainly for testing)."""
    global _store
    _store = None
