"""
Observer pattern: automation events and their observers.

The service owns one EventBus and publishes the events of a unit of work only
after its transaction commits.
"""
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List

logger = logging.getLogger("clinicflow.events")


class EventType(str, Enum):
    trigger_unmatched = "trigger_unmatched"
    no_active_workflows = "no_active_workflows"
    workflow_suppressed = "workflow_suppressed"
    client_enrolled = "client_enrolled"
    step_executed = "step_executed"
    step_waiting = "step_waiting"
    step_failed = "step_failed"
    enrollment_status_changed = "enrollment_status_changed"
    enrollment_completed = "enrollment_completed"


@dataclass
class AutomationEvent:
    event_type: EventType
    org_id: str
    timestamp: int
    workflow_id: str = ""
    enrollment_id: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "org_id": self.org_id,
            "workflow_id": self.workflow_id,
            "enrollment_id": self.enrollment_id,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class AutomationObserver(ABC):
    """Base observer for automation events."""

    @abstractmethod
    def update(self, event: AutomationEvent) -> None:
        ...


class LogObserver(AutomationObserver):
    """Writes every event to the ``clinicflow.events`` logger and keeps a bounded history."""

    LEVELS = {
        EventType.step_failed: logging.WARNING,
        EventType.trigger_unmatched: logging.INFO,
        EventType.no_active_workflows: logging.INFO,
        EventType.workflow_suppressed: logging.INFO,
    }

    def __init__(self, history: int = 500):
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history)

    def update(self, event: AutomationEvent) -> None:
        entry = event.to_dict()
        self._history.append(entry)
        level = self.LEVELS.get(event.event_type, logging.DEBUG)
        logger.log(level, "%s org=%s workflow=%s enrollment=%s %s",
                   event.event_type.value, event.org_id, event.workflow_id or "-",
                   event.enrollment_id or "-", event.data)

    def get_logs(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def clear_logs(self) -> None:
        self._history.clear()


class MetricsObserver(AutomationObserver):
    """Counts events by type. Safe to share between request threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset_metrics()

    def update(self, event: AutomationEvent) -> None:
        key = event.event_type.value
        with self._lock:
            self._metrics["total_events"] += 1
            self._metrics["events_by_type"][key] = self._metrics["events_by_type"].get(key, 0) + 1
            if event.workflow_id:
                self._workflows.add(event.workflow_id)

            if event.event_type == EventType.client_enrolled:
                self._metrics["enrollments_created"] += 1
            elif event.event_type == EventType.workflow_suppressed:
                self._metrics["enrollments_suppressed"] += 1
            elif event.event_type == EventType.step_failed:
                self._metrics["steps_failed"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            metrics = dict(self._metrics)
            metrics["events_by_type"] = dict(self._metrics["events_by_type"])
            metrics["workflows_seen"] = len(self._workflows)
        return metrics

    def reset_metrics(self) -> None:
        with self._lock:
            self._metrics: Dict[str, Any] = {
                "total_events": 0,
                "events_by_type": {},
                "enrollments_created": 0,
                "enrollments_suppressed": 0,
                "steps_failed": 0,
            }
            self._workflows = set()


class EventBus:
    """
    Subject of the observer pattern.

    Keeps the list of observers and notifies them of events.
    """

    def __init__(self):
        self._observers: List[AutomationObserver] = []

    def attach(self, observer: AutomationObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def detach(self, observer: AutomationObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def publish(self, event: AutomationEvent) -> None:
        for observer in self._observers:
            observer.update(event)

    def publish_all(self, events: Iterable[AutomationEvent]) -> None:
        for event in events:
            self.publish(event)
