"""Dispatcher intent telemetry decorator."""
from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable

from .models import Command, InboundMessage

logger = logging.getLogger(__name__)


def track_intent(func: Callable) -> Callable:
    """Decorator to track intent handler usage and latency.

    Wraps ``LinkService`` handler methods of the form
    ``handler(self, msg, command) -> Reply``. The handler's collector is read
    from ``self.telemetry``; when it is ``None`` the call is passed through.
    """

    @functools.wraps(func)
    def wrapper(self, msg: InboundMessage, command: Command, *args, **kwargs) -> Any:
        telemetry = getattr(self, "telemetry", None)
        if telemetry is None:
            return func(self, msg, command, *args, **kwargs)

        start_time = time.time()
        success = False
        try:
            result = func(self, msg, command, *args, **kwargs)
            success = bool(getattr(result, "success", True))
            return result
        except Exception as e:
            telemetry.track_error(
                type(e).__name__,
                command=command.intent.value,
                sender_id=msg.sender_id,
                error_details=str(e),
            )
            raise
        finally:
            duration_ms = (time.time() - start_time) * 1000
            try:
                telemetry.track_command(
                    command.intent.value,
                    msg.sender_id,
                    msg.channel_id,
                    success=success,
                    duration_ms=duration_ms,
                )
            except Exception:
                logger.exception("Failed to record telemetry for %s", command.intent.value)

    return wrapper
