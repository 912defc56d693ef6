"""
Base adapter class for event feed normalization.

This module provides the abstract base class that record adapters inherit from,
ensuring one normalization pass at the boundary and a consistent report of the
records that could not be normalized.
"""

import numbers
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import pandas as pd
import structlog

from pulse.errors import DataShapeError
from pulse.models.events import Event, NormalizationReport, SkippedRecord
from pulse.utils.timeutils import ensure_utc

logger = structlog.get_logger()

# Numbers at or above this are epoch milliseconds rather than seconds.
_EPOCH_MS_THRESHOLD = 1e11


class BaseAdapter(ABC):
    """
    Abstract base class for event feed adapters.

    Adapters turn heterogeneous raw documents into strict ``Event`` objects and
    report skipped records. Engine code only ever sees the adapter's output.

    Attributes:
        source_name: Identifier for the data source (e.g., "event_store")
    """

    def __init__(self, source_name: str):
        self.source_name = source_name
        self.logger = logger.bind(adapter=source_name)

    @abstractmethod
    def ingest(self, *args, **kwargs) -> tuple[list[Event], NormalizationReport]:
        """
        Normalize source records into events with a normalization report.

        Returns:
            Tuple of (events, normalization report)
        """

    def _first_present(self, record: dict, keys: tuple[str, ...]) -> Any:
        """Value of the first key in the fallback chain that is not missing."""
        for key in keys:
            value = record.get(key)
            if not self._is_missing(value):
                return value
        return None

    def _safe_str(self, value, default: str = "") -> str:
        """
        Safely convert value to string, handling None and NaN.

        Args:
            value: Value to convert
            default: Default value if conversion fails

        Returns:
            String representation or default
        """
        if self._is_missing(value):
            return default
        return str(value).strip()

    def _safe_float(self, value, default: Optional[float] = None) -> Optional[float]:
        """
        Safely convert value to float, handling None and NaN.

        Args:
            value: Value to convert
            default: Default value if conversion fails

        Returns:
            Float value or default
        """
        if self._is_missing(value) or isinstance(value, bool):
            return default
        try:
            return float(value)
        except (ValueError, TypeError):
            return default

    def _safe_datetime(
        self, value, default: Optional[datetime] = None
    ) -> Optional[datetime]:
        """
        Safely convert value to a UTC datetime.

        Accepts datetimes, ISO strings, epoch seconds or milliseconds, pandas
        Timestamps, and document-store timestamp objects exposing
        ``to_datetime()`` or ``toDate()``.

        Args:
            value: Value to convert
            default: Default value if conversion fails

        Returns:
            Timezone-aware UTC datetime or default
        """
        if self._is_missing(value) or isinstance(value, bool):
            return default

        for method in ("to_datetime", "toDate"):
            converter = getattr(value, method, None)
            if callable(converter) and not isinstance(value, pd.Timestamp):
                try:
                    value = converter()
                except (ValueError, TypeError):
                    return default
                break

        if isinstance(value, pd.Timestamp):
            value = value.to_pydatetime()
        if isinstance(value, datetime):
            return ensure_utc(value)

        try:
            if isinstance(value, numbers.Real):
                unit = "ms" if abs(value) >= _EPOCH_MS_THRESHOLD else "s"
                result = pd.to_datetime(value, unit=unit, utc=True, errors="coerce")
            else:
                result = pd.to_datetime(value, utc=True, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return default

        if pd.isna(result):
            return default
        return ensure_utc(result.to_pydatetime())

    def _is_missing(self, value) -> bool:
        """
        Check if a value is missing (None, NaN, NaT, empty string).

        Args:
            value: Value to check

        Returns:
            True if value is missing
        """
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        try:
            return bool(pd.isna(value))
        except (TypeError, ValueError):
            # Containers make pd.isna return an array; they are not missing.
            return False

    def _build_report(
        self,
        total_records: int,
        events: list[Event],
        skipped: list[SkippedRecord],
    ) -> NormalizationReport:
        """
        Summarize one normalization batch.

        Args:
            total_records: Number of input records processed
            events: Events successfully created
            skipped: Records that failed normalization

        Returns:
            NormalizationReport for the batch
        """
        report = NormalizationReport(
            source=self.source_name,
            total_records=total_records,
            accepted_records=len(events),
            skipped=skipped,
        )

        self.logger.info(
            "normalization_report_generated",
            total_records=total_records,
            accepted_records=len(events),
            skipped_records=len(skipped),
            acceptance_rate=round(report.acceptance_rate, 4),
        )
        return report

    def _skip(self, exc: DataShapeError, index: int) -> SkippedRecord:
        """Log a malformed record and turn it into a SkippedRecord."""
        self.logger.warning(
            "record_skipped",
            index=index,
            field=exc.field,
            reason=str(exc),
        )
        return SkippedRecord(index=index, field=exc.field, reason=str(exc))
