"""Read access to locally authored contact activities."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import pydantic
import structlog

from contact_timeline.exceptions import ValidationError
from contact_timeline.models import RawInternalActivity

logger = structlog.get_logger()


@dataclass(frozen=True)
class ActivityQueryResult:
    """Snapshot of a contact's activities as held by the activity store."""

    activities: Sequence[RawInternalActivity | Mapping[str, Any]] = field(default_factory=list)
    is_loading: bool = False
    is_error: bool = False


@dataclass(frozen=True)
class ActivityReadResult:
    """Validated activities for one contact."""

    activities: list[RawInternalActivity] = field(default_factory=list)
    is_loading: bool = False
    is_error: bool = False


@runtime_checkable
class ActivityStore(Protocol):
    """The activity persistence collaborator (notes, tasks, calls, sent emails)."""

    def get_activities(self, contact_id: str) -> ActivityQueryResult:
        ...


class ActivitySourceAdapter:
    """Thin, failure-tolerant read of an :class:`ActivityStore`.

    A store failure becomes ``is_error=True`` with no activities; records that
    fail validation are skipped individually.
    """

    def __init__(self, store: ActivityStore) -> None:
        self._store = store

    def read(self, contact_id: str | None) -> ActivityReadResult:
        if not contact_id:
            return ActivityReadResult()

        try:
            result = self._store.get_activities(contact_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("activity_read_failed", contact_id=contact_id, error=str(exc))
            return ActivityReadResult(is_error=True)

        activities: list[RawInternalActivity] = []
        for record in result.activities:
            if isinstance(record, RawInternalActivity):
                activities.append(record)
                continue
            try:
                activities.append(RawInternalActivity.model_validate(record))
            except pydantic.ValidationError as exc:
                logger.warning(
                    "activity_record_skipped",
                    contact_id=contact_id,
                    record_id=record.get("id") if isinstance(record, Mapping) else None,
                    error=str(exc),
                )

        return ActivityReadResult(
            activities=activities,
            is_loading=result.is_loading,
            is_error=result.is_error,
        )


class JsonActivityStore:
    """Activity store backed by a JSON file.

    The file holds either an object mapping contact ids to activity lists, or
    a flat list of activities each carrying a ``contact_id``.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._by_contact: dict[str, list[dict[str, Any]]] | None = None

    def get_activities(self, contact_id: str) -> ActivityQueryResult:
        if self._by_contact is None:
            self._by_contact = self._load()
        return ActivityQueryResult(activities=list(self._by_contact.get(contact_id, [])))

    def _load(self) -> dict[str, list[dict[str, Any]]]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Cannot read activities file {self._path}: {exc}") from exc

        if isinstance(data, dict):
            return {str(k): list(v or []) for k, v in data.items()}
        if isinstance(data, list):
            by_contact: dict[str, list[dict[str, Any]]] = {}
            for record in data:
                if isinstance(record, dict) and record.get("contact_id"):
                    by_contact.setdefault(str(record["contact_id"]), []).append(record)
            return by_contact
        raise ValidationError(f"Unsupported activities file layout in {self._path}")
