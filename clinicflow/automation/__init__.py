from .classifier import DEFAULT_RULES, TriggerClassifier, TriggerRule
from .events import AutomationEvent, AutomationObserver, EventBus, EventType, LogObserver, MetricsObserver
from .service import AutomationService
from .unit import EngineOptions, UnitOfWork

__all__ = [
    "DEFAULT_RULES",
    "TriggerClassifier",
    "TriggerRule",
    "AutomationEvent",
    "AutomationObserver",
    "EventBus",
    "EventType",
    "LogObserver",
    "MetricsObserver",
    "AutomationService",
    "EngineOptions",
    "UnitOfWork",
]
