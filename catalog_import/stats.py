"""
Import Statistics Module
Immutable counters folded once per batch, and progress events for the caller.
"""

from dataclasses import dataclass, asdict, fields, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from loguru import logger

CREATED = 'created'
UPDATED = 'updated'
FAILED = 'failed'


@dataclass(frozen=True)
class RecordResult:
    """What importing one candidate product did."""

    row_number: int
    name: str
    action: str
    variations_created: int = 0
    variations_updated: int = 0
    variations_deleted: int = 0
    images_processed: int = 0
    images_uploaded: int = 0
    images_failed: int = 0
    categories_created: int = 0
    brands_created: int = 0
    skus: Tuple[str, ...] = ()
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()


# Counters summed straight from record results
_SUMMED = (
    'variations_created',
    'variations_updated',
    'variations_deleted',
    'images_processed',
    'images_uploaded',
    'images_failed',
    'categories_created',
    'brands_created',
)


@dataclass(frozen=True)
class ImportStats:
    """Running totals of an import run. Every update returns a new instance."""

    total_products: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    dropped: int = 0
    variations_created: int = 0
    variations_updated: int = 0
    variations_deleted: int = 0
    images_processed: int = 0
    images_uploaded: int = 0
    images_failed: int = 0
    categories_created: int = 0
    brands_created: int = 0
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> int:
        return self.created + self.updated

    def fold(self, results: Iterable[RecordResult]) -> 'ImportStats':
        """
        Add a batch of record results to the totals.

        Args:
            results: Results returned by the records of one batch

        Returns:
            New stats instance
        """
        results = list(results)
        changes: Dict[str, Any] = {
            'processed': self.processed + len(results),
            'created': self.created + sum(1 for r in results if r.action == CREATED),
            'updated': self.updated + sum(1 for r in results if r.action == UPDATED),
            'failed': self.failed + sum(1 for r in results if r.action == FAILED),
            'errors': self.errors + tuple(e for r in results for e in r.errors),
            'warnings': self.warnings + tuple(w for r in results for w in r.warnings),
        }
        for name in _SUMMED:
            changes[name] = getattr(self, name) + sum(getattr(r, name) for r in results)
        return replace(self, **changes)

    def with_dropped(self, reasons: Iterable[str], warnings: Iterable[str] = ()) -> 'ImportStats':
        """Record candidates dropped by the mapper, with their reasons."""
        reasons = tuple(reasons)
        return replace(
            self,
            dropped=self.dropped + len(reasons),
            errors=self.errors + reasons,
            warnings=self.warnings + tuple(warnings),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['errors'] = list(self.errors)
        data['warnings'] = list(self.warnings)
        data['succeeded'] = self.succeeded
        return data

    def counters(self) -> Dict[str, int]:
        """Numeric counters only, for summaries."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in ('errors', 'warnings')}


@dataclass(frozen=True)
class ProgressEvent:
    """One progress broadcast: stage name, percentage and the stats at that point."""

    stage: str
    percent: float
    stats: ImportStats


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Broadcast progress events to a caller-supplied callback."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.events: List[ProgressEvent] = []

    def emit(self, stage: str, completed: int, total: int, stats: ImportStats) -> ProgressEvent:
        """
        Send a progress event.

        Args:
            stage: Stage name ("products", "images"...)
            completed: Units finished so far
            total: Units in the stage
            stats: Stats to attach

        Returns:
            The emitted event
        """
        percent = round(completed / total * 100, 2) if total else 100.0
        event = ProgressEvent(stage=stage, percent=percent, stats=stats)
        self.events.append(event)
        logger.debug(f"Progress [{stage}]: {percent:.0f}%")
        if self.callback:
            # A broken progress view must not stop the import
            try:
                self.callback(event)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")
        return event
