import logging
from typing import Any, Callable, Dict, List

from ..errors import CustomActionError
from .base import CustomActionHandler

logger = logging.getLogger(__name__)

ActionFn = Callable[[str, str, Dict[str, Any]], Dict[str, Any]]


class CustomActionRegistry(CustomActionHandler):
    """
    Name -> callable registry for tenant-defined actions.

    Actions without a registered handler are passed through as succeeded,
    flagged ``handled: False`` in the result.
    """

    def __init__(self, handlers: Dict[str, ActionFn] = None):
        self._handlers: Dict[str, ActionFn] = dict(handlers or {})

    def register(self, action: str, fn: ActionFn) -> "CustomActionRegistry":
        self._handlers[action] = fn
        return self

    def known_actions(self) -> List[str]:
        return sorted(self._handlers)

    def run(self, org_id: str, client_id: str, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        fn = self._handlers.get(action)
        if fn is None:
            logger.info("No handler for custom action %r; passing through", action)
            return {"action": action, "handled": False}

        try:
            result = fn(org_id, client_id, params) or {}
        except CustomActionError:
            raise
        except (ValueError, KeyError, TypeError) as exc:
            raise CustomActionError(f"custom action {action!r} failed: {exc}") from exc
        return {"action": action, "handled": True, **result}
