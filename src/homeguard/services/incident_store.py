"""
Incident Repository

Persistence contract for incidents plus the in-memory implementation used
by the server and tests.
"""

from abc import ABC, abstractmethod
from typing import Optional
import threading

from ..domain.models import Incident


class IncidentRepository(ABC):
    """Incident storage keyed by id, with a correlation key index."""

    @abstractmethod
    def get_by_key(self, correlation_key: str) -> Optional[Incident]:
        pass

    @abstractmethod
    def get_by_id(self, incident_id: str) -> Optional[Incident]:
        pass

    @abstractmethod
    def save(self, incident: Incident) -> None:
        pass

    @abstractmethod
    def register_key(self, correlation_key: str, incident_id: str) -> None:
        pass

    @abstractmethod
    def list_all(self) -> list[Incident]:
        pass


class InMemoryIncidentRepository(IncidentRepository):
    """Dict-backed repository.

    Stores and returns deep copies so no caller shares an instance with the
    store. Single-writer-per-key is left to IncidentLifecycleManager.
    """

    def __init__(self):
        self._incidents: dict[str, Incident] = {}
        self._keys: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_by_key(self, correlation_key: str) -> Optional[Incident]:
        with self._lock:
            incident_id = self._keys.get(correlation_key)
            if incident_id is None:
                return None
            incident = self._incidents.get(incident_id)
            return incident.model_copy(deep=True) if incident else None

    def get_by_id(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            incident = self._incidents.get(incident_id)
            return incident.model_copy(deep=True) if incident else None

    def save(self, incident: Incident) -> None:
        with self._lock:
            self._incidents[incident.incident_id] = incident.model_copy(deep=True)

    def register_key(self, correlation_key: str, incident_id: str) -> None:
        with self._lock:
            self._keys[correlation_key] = incident_id

    def list_all(self) -> list[Incident]:
        with self._lock:
            incidents = [i.model_copy(deep=True) for i in self._incidents.values()]
        return sorted(incidents, key=lambda i: i.created_at)

    def __len__(self) -> int:
        with self._lock:
            return len(self._incidents)
