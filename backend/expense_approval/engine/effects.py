"""Effect Runner - Side effects of a committed transition"""
from typing import Any, Dict, List, Protocol

from ..domain.models import NotificationEffect
from ..domain.enums import NotificationKind
from ..domain.errors import DomainError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    """Anything that can dispatch a workflow notification"""

    def notify(self, recipient_id: str, summary: Dict[str, Any], kind: NotificationKind) -> Any:
        ...


class EffectRunner:
    """
    Run the pending effects a transition produced

    Runs only after the expense is saved. Delivery is best-effort: a
    failure is logged and never propagates to the caller.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def run(self, effects: List[NotificationEffect]) -> int:
        """Dispatch every effect, returning how many succeeded"""
        delivered = 0
        for effect in effects:
            try:
                self.notifier.notify(effect.recipient_id, effect.summary, effect.kind)
                delivered += 1
            except DomainError as e:
                logger.warning(
                    f"Notification {effect.kind.value} failed: {e.message}",
                    extra={
                        "expense_id": effect.summary.get("id"),
                        "user_id": effect.recipient_id,
                        "error_code": e.error_code
                    }
                )
            except Exception as e:
                logger.error(
                    f"Unexpected error sending {effect.kind.value} notification: {e}",
                    extra={"expense_id": effect.summary.get("id"), "user_id": effect.recipient_id},
                    exc_info=True
                )
        return delivered
