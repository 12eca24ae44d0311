"""
Intensity-indexed lookup table.

Dynamic filters vary their behavior with local brightness. They keep a
table of records keyed by intensity breakpoints (0-255); a record applies
to all intensities from its key up to the next breakpoint. For O(1)
lookups at run time the table is expanded into a dense array with one
entry per possible intensity.
"""

import bisect
from typing import Dict, Generic, Iterator, List, Optional, TypeVar

from components import ImageRunInfo, Module

__all__ = [
    'TableRecord',
    'IntensityTable',
]

MIN_KEY = 0
MAX_KEY = 255


class TableRecord(Module):
    """Base for table records: anything with an integer intensity key."""

    def __init__(self, key: int = 0, name: str = "", description: str = ""):
        super().__init__(name, description)
        self.key = key

    def __repr__(self):
        return f"<{type(self).__name__} key={self.key}>"


R = TypeVar('R', bound=TableRecord)


class IntensityTable(Module, Generic[R]):
    """
    Sorted mapping from intensity breakpoint to record.

    lookup(i) returns the record with the greatest key <= i. When there is
    no such record the default record is returned, so lookups never miss.
    """

    def __init__(self, default_record: R, records: Optional[List[R]] = None):
        super().__init__()
        self._keys: List[int] = []
        self._records: Dict[int, R] = {}
        self.default_record = default_record
        self._working_table: Optional[List[R]] = None
        for record in records or []:
            self._insert(record)
        self.rebuild_working_table()

    def _insert(self, record: R) -> bool:
        key = int(record.key)
        if not MIN_KEY <= key <= MAX_KEY:
            raise ValueError(f"Table key must be within {MIN_KEY}..{MAX_KEY}, got {key}")
        is_new = key not in self._records
        if is_new:
            bisect.insort(self._keys, key)
        self._records[key] = record
        return is_new

    def add_record(self, record: R) -> bool:
        """
        Insert a record at its key, replacing any record already there.

        Returns:
            True for a new key, False when an existing record was overwritten
        """
        is_new = self._insert(record)
        self.rebuild_working_table()
        return is_new

    def remove_record(self, key: int):
        if key in self._records:
            del self._records[key]
            self._keys.remove(key)
            self.rebuild_working_table()

    def clear(self):
        self._keys.clear()
        self._records.clear()
        self.rebuild_working_table()

    def records(self) -> List[R]:
        """Records in ascending key order (the default record excluded)."""
        return [self._records[key] for key in self._keys]

    def lookup(self, key: int, use_default: bool = True) -> Optional[R]:
        """
        Find the record with the greatest key less than or equal to `key`.

        Args:
            key: Intensity to look up
            use_default: Fall back to the default record on a miss;
                with False a miss returns None
        """
        index = bisect.bisect_right(self._keys, key) - 1
        if index >= 0:
            return self._records[self._keys[index]]
        return self.default_record if use_default else None

    def rebuild_working_table(self):
        self._working_table = [self.lookup(i) for i in range(MAX_KEY + 1)]

    def working_record(self, intensity) -> R:
        """Precomputed lookup; the intensity is clipped to 0-255."""
        if self._working_table is None:
            self.rebuild_working_table()
        index = min(max(int(intensity), MIN_KEY), MAX_KEY)
        return self._working_table[index]

    def init(self, run_info: ImageRunInfo):
        super().init(run_info)
        for record in self._records.values():
            record.init(run_info)
        if self.default_record is not None:
            self.default_record.init(run_info)
        self.rebuild_working_table()

    def __len__(self):
        return len(self._keys)

    def __iter__(self) -> Iterator[R]:
        return iter(self.records())

    def __contains__(self, key) -> bool:
        return key in self._records
