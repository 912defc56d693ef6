"""
Event Feed Adapter.

This adapter normalizes raw documents from the product's event store (user
actions, mindmap activity, AI token usage, job results) into strict ``Event``
objects. Field-name drift between producers (``userId`` vs ``user_id``,
``tokensIn`` vs ``promptTokens``...) is resolved here, once, so engine code
reads a single canonical attribute name.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Optional

import pandas as pd
import structlog

from pulse.errors import DataShapeError
from pulse.models.enums import EventType
from pulse.models.events import Event, NormalizationReport, Scalar, SkippedRecord

from .base_adapter import BaseAdapter

logger = structlog.get_logger()


class EventFeedAdapter(BaseAdapter):
    """
    Adapts raw event-store documents into canonical events.

    Accepts dicts (one per document) or a pandas DataFrame (one row per
    document). Records missing an entity id or a parseable timestamp are
    skipped and reported; every other record becomes an ``Event``, with
    unknown types mapped to ``EventType.OTHER``.
    """

    # Field name fallbacks for identity fields, first present wins
    IDENTITY_FIELDS = {
        "entity_id": ("entityId", "entity_id", "userId", "user_id", "uid"),
        "timestamp": ("timestamp", "createdAt", "created_at", "time"),
        "type": ("type", "eventType", "event_type", "action", "name"),
    }

    # Canonical attribute name -> raw field fallbacks
    ATTRIBUTE_FALLBACKS = {
        "tokens_in": ("tokensIn", "tokens_in", "promptTokens", "prompt_tokens"),
        "tokens_out": ("tokensOut", "tokens_out", "completionTokens", "completion_tokens"),
        "cost_usd": ("costUsd", "cost_usd", "cost"),
        "generation_time_ms": (
            "generationTimeMs",
            "generation_time_ms",
            "durationMs",
            "duration_ms",
        ),
        "sentiment_score": ("sentimentScore", "sentiment_score", "sentiment"),
        "model": ("model", "modelName", "model_name"),
        "feature": ("feature", "featureName", "feature_name"),
        "plan": ("plan", "planType", "plan_type"),
    }

    NUMERIC_ATTRIBUTES = frozenset(
        {"tokens_in", "tokens_out", "cost_usd", "generation_time_ms", "sentiment_score"}
    )

    # Raw type names -> canonical type
    TYPE_MAPPINGS = {
        "signup": EventType.SIGNUP,
        "sign_up": EventType.SIGNUP,
        "user_created": EventType.SIGNUP,
        "user_signup": EventType.SIGNUP,
        "registration": EventType.SIGNUP,
        "creation": EventType.CREATION,
        "mindmap_generation": EventType.CREATION,
        "mindmap_create": EventType.CREATION,
        "mindmap_creation": EventType.CREATION,
        "mindmap_created": EventType.CREATION,
        "ai_generation": EventType.CREATION,
        "edit": EventType.EDIT,
        "mindmap_edit": EventType.EDIT,
        "mindmap_update": EventType.EDIT,
        "export": EventType.EXPORT,
        "mindmap_export": EventType.EXPORT,
        "collaboration": EventType.COLLABORATION,
        "mention": EventType.COLLABORATION,
        "reply": EventType.COLLABORATION,
        "share": EventType.COLLABORATION,
        "shared_access": EventType.COLLABORATION,
        "comment": EventType.COLLABORATION,
        "file_conversion": EventType.FILE_CONVERSION,
        "file_upload": EventType.FILE_CONVERSION,
        "token_burn": EventType.TOKEN_BURN,
        "token_usage": EventType.TOKEN_BURN,
        "ai_job": EventType.AI_JOB,
        "ai_jobs": EventType.AI_JOB,
        "job": EventType.AI_JOB,
        "login": EventType.LOGIN,
        "session_start": EventType.LOGIN,
        "view": EventType.VIEW,
        "page_view": EventType.VIEW,
        "error": EventType.ERROR,
        "payment_failed": EventType.PAYMENT_FAILED,
        "charge_failed": EventType.PAYMENT_FAILED,
    }

    # Raw status values that mark a job/conversion/export outcome
    SUCCESS_STATUSES = frozenset({"success", "succeeded", "completed", "complete", "done", "ok"})
    FAILURE_STATUSES = frozenset({"failed", "failure", "error", "errored", "timeout", "cancelled"})

    def __init__(self, source_name: str = "event_store"):
        super().__init__(source_name=source_name)
        self._consumed = frozenset(
            key for chain in self.IDENTITY_FIELDS.values() for key in chain
        ) | frozenset(
            key for chain in self.ATTRIBUTE_FALLBACKS.values() for key in chain
        ) | {"attributes", "data", "status", "success"}

    def ingest(
        self, records: Iterable[Any], **kwargs
    ) -> tuple[list[Event], NormalizationReport]:
        """
        Normalize raw records into events.

        Args:
            records: Raw documents (mappings) or already-normalized Events
            **kwargs: Unused, accepted for adapter interface parity

        Returns:
            Tuple of (events, normalization report)
        """
        events: list[Event] = []
        skipped: list[SkippedRecord] = []
        total = 0

        for index, record in enumerate(records):
            total += 1
            if isinstance(record, Event):
                events.append(record)
                continue
            try:
                events.append(self.normalize(record, index=index))
            except DataShapeError as exc:
                skipped.append(self._skip(exc, index))

        return events, self._build_report(total, events, skipped)

    def ingest_dataframe(
        self, df: pd.DataFrame
    ) -> tuple[list[Event], NormalizationReport]:
        """
        Normalize a DataFrame export of the event store (one row per document).

        NaN cells are treated as absent fields.
        """
        self.logger.info("event_dataframe_ingestion_started", rows=len(df))
        rows = (
            {key: value for key, value in row.items() if not self._is_missing(value)}
            for row in df.to_dict(orient="records")
        )
        return self.ingest(rows)

    def normalize(self, record: Any, index: Optional[int] = None) -> Event:
        """
        Map one raw document onto an Event.

        Raises:
            DataShapeError: If the record is not a mapping, or lacks an entity
                id or a parseable timestamp
        """
        if not isinstance(record, Mapping):
            raise DataShapeError(
                f"record is {type(record).__name__}, expected a mapping",
                field="record",
                index=index,
            )

        entity_id = self._safe_str(self._first_present(record, self.IDENTITY_FIELDS["entity_id"]))
        if not entity_id:
            raise DataShapeError("missing entity id", field="entityId", index=index)

        raw_ts = self._first_present(record, self.IDENTITY_FIELDS["timestamp"])
        if raw_ts is None:
            raise DataShapeError("missing timestamp", field="timestamp", index=index)
        timestamp = self._safe_datetime(raw_ts)
        if timestamp is None:
            raise DataShapeError(
                f"unparseable timestamp {raw_ts!r}", field="timestamp", index=index
            )

        raw_type = self._safe_str(self._first_present(record, self.IDENTITY_FIELDS["type"]))
        return Event(
            entity_id=entity_id,
            type=self.map_type(raw_type),
            timestamp=timestamp,
            attributes=self._attributes(record),
        )

    def map_type(self, raw_type: str) -> EventType:
        """Canonical event type for a raw type name; unknown names map to OTHER."""
        key = raw_type.strip().lower().replace("-", "_").replace(" ", "_")
        return self.TYPE_MAPPINGS.get(key, EventType.OTHER)

    def _attributes(self, record: Mapping) -> dict[str, Scalar]:
        """Merge nested attributes with top-level scalars and resolve canonical keys."""
        merged: dict[str, Any] = {}
        for nested_key in ("data", "attributes"):
            nested = record.get(nested_key)
            if isinstance(nested, Mapping):
                merged.update(nested)
        for key, value in record.items():
            if key not in self._consumed:
                merged.setdefault(key, value)
        # Status fields may live at the top level or in the nested payload
        for key in ("status", "success"):
            if key in record:
                merged.setdefault(key, record[key])

        attributes: dict[str, Scalar] = {}
        for key, value in merged.items():
            if self._is_scalar(value) and not self._is_missing(value):
                attributes[key] = value.item() if hasattr(value, "item") else value

        for canonical, chain in self.ATTRIBUTE_FALLBACKS.items():
            value = self._first_present({**record, **merged}, chain)
            if value is None:
                continue
            for raw_key in chain:
                if raw_key != canonical:
                    attributes.pop(raw_key, None)
            if canonical in self.NUMERIC_ATTRIBUTES:
                number = self._safe_float(value)
                if number is not None:
                    attributes[canonical] = number
            else:
                attributes[canonical] = self._safe_str(value)

        success = self._outcome(merged)
        if success is not None:
            attributes["success"] = success
        return attributes

    def _outcome(self, merged: Mapping) -> Optional[bool]:
        """Success flag from an explicit boolean or a status string."""
        flag = merged.get("success")
        if isinstance(flag, bool):
            return flag
        status = self._safe_str(merged.get("status")).lower()
        if status in self.SUCCESS_STATUSES:
            return True
        if status in self.FAILURE_STATUSES:
            return False
        return None

    @staticmethod
    def _is_scalar(value: Any) -> bool:
        return isinstance(value, (str, int, float, bool)) or (
            hasattr(value, "item") and pd.api.types.is_scalar(value)
        )
