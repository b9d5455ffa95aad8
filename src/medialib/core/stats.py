"""Statistics tracking for updater runs.

A `SyncResult` is what the sync engine reports for one file; `ScanStats`
aggregates those results (plus sweep removals and duplicate groups) over a
single run.
"""

from dataclasses import asdict, dataclass
from enum import Enum


class SyncResult(str, Enum):
    """Outcome of reconciling one file with the catalog."""

    ADDED = "added"
    MODIFIED = "modified"
    SKIPPED = "skipped"  # last write time unchanged since the previous scan
    REMOVED = "removed"  # row existed but the file no longer qualifies
    NOT_IMPORTED = "not_imported"  # no usable stream or duration
    SCAN_ERROR = "scan_error"  # file could not be parsed or written


@dataclass
class ScanStats:
    """Statistics for one updater run.

    Attributes:
        scanned: Files whose metadata was parsed.
        skipped: Files unchanged since the last scan.
        added: New catalog rows.
        modified: Existing rows refreshed from changed files.
        removed: Rows deleted (by the sweep or by the validity gate).
        scan_errors: Files that could not be parsed or written.
        not_imported: Files rejected by the validity gate.
        duplicate_groups: Groups reported by the duplicate detector.
        interrupted: True when stop() was observed before the run finished.

    Example:
        >>> stats = ScanStats()
        >>> stats.record(SyncResult.ADDED)
        >>> stats.changes
        1
    """

    scanned: int = 0
    skipped: int = 0
    added: int = 0
    modified: int = 0
    removed: int = 0
    scan_errors: int = 0
    not_imported: int = 0
    duplicate_groups: int = 0
    interrupted: bool = False

    @property
    def changes(self) -> int:
        return self.added + self.removed + self.modified

    def record(self, result: SyncResult) -> None:
        """Fold one file's sync result into the counters."""
        if result is SyncResult.SKIPPED:
            self.skipped += 1
        elif result is SyncResult.SCAN_ERROR:
            self.scan_errors += 1
        else:
            self.scanned += 1
            if result is SyncResult.ADDED:
                self.added += 1
            elif result is SyncResult.MODIFIED:
                self.modified += 1
            elif result is SyncResult.REMOVED:
                self.removed += 1
                self.not_imported += 1
            elif result is SyncResult.NOT_IMPORTED:
                self.not_imported += 1

    def to_dict(self) -> dict:
        """Convert stats to a plain dictionary for listeners and logs."""
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"ScanStats(scanned={self.scanned}, skipped={self.skipped}, "
            f"changes={self.changes} (added={self.added}, removed={self.removed}, "
            f"modified={self.modified}), scan_errors={self.scan_errors}, "
            f"not_imported={self.not_imported}, duplicate_groups={self.duplicate_groups})"
        )
