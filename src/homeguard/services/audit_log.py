"""
Audit Log - Append-Only Pipeline Trail

Provides:
- AuditSink contract consumed by the core
- AuditLog: thread-safe in-memory trail with optional JSON Lines file
- record_audit(): fire-and-forget append used by every core component
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union
import json
import logging
import threading

from ..domain.enums import AuditEventKind

logger = logging.getLogger(__name__)


# =============================================================================
# Audit Sink Contract
# =============================================================================

class AuditSink(ABC):
    """Append-only audit sink."""

    @abstractmethod
    def append(
        self,
        kind: AuditEventKind,
        message: str,
        related_id: Optional[str] = None,
    ) -> None:
        """Append one record. Implementations may raise on I/O failure."""
        pass


def record_audit(
    sink: Optional[AuditSink],
    kind: AuditEventKind,
    message: str,
    related_id: Optional[str] = None,
) -> None:
    """Append to ``sink`` without letting a sink failure reach the caller."""
    if sink is None:
        return
    try:
        sink.append(kind, message, related_id)
    except Exception as e:
        logger.warning(f"[AUDIT] Failed to append {kind.value} for {related_id}: {e}")


# =============================================================================
# Audit Entry
# =============================================================================

@dataclass
class AuditEntry:
    """A single audit record."""
    kind: AuditEventKind
    message: str
    related_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "message": self.message,
            "related_id": self.related_id,
        }

    def __str__(self) -> str:
        related = f" ({self.related_id})" if self.related_id else ""
        return f"{self.timestamp.isoformat()} {self.kind.value}: {self.message}{related}"


# =============================================================================
# In-Memory Audit Log
# =============================================================================

class AuditLog(AuditSink):
    """In-memory audit trail, optionally mirrored to a JSON Lines file.

    The in-memory buffer is bounded; the file (if any) keeps everything.
    """

    DEFAULT_MAX_ENTRIES = 10_000

    def __init__(
        self,
        log_path: Optional[Union[str, Path]] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self._entries: deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._log_path: Optional[Path] = None

        if log_path:
            self._log_path = Path(log_path)
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"[AUDIT] Mirroring audit trail to {self._log_path}")

    @property
    def log_path(self) -> Optional[Path]:
        return self._log_path

    def append(
        self,
        kind: AuditEventKind,
        message: str,
        related_id: Optional[str] = None,
    ) -> None:
        entry = AuditEntry(kind=kind, message=message, related_id=related_id)
        with self._lock:
            self._entries.append(entry)
            if self._log_path:
                with open(self._log_path, 'a', encoding='utf-8') as f:
                    f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        logger.debug(f"[AUDIT] {entry}")

    def get_recent(self, count: int) -> list[AuditEntry]:
        """Most recent ``count`` entries, oldest first."""
        if count <= 0:
            return []
        with self._lock:
            return list(self._entries)[-count:]

    def query(
        self,
        kind: Optional[AuditEventKind] = None,
        related_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Entries matching all given filters, oldest first."""
        with self._lock:
            entries = list(self._entries)
        return [
            e for e in entries
            if (kind is None or e.kind == kind)
            and (related_id is None or e.related_id == related_id)
        ]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
