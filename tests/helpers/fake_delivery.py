"""Scriptable delivery client for tests.

Stands in for ``DeliveryClient`` without touching the network. Each call to
``send`` consumes the next scripted result: an exception instance is raised,
anything else is returned as the provider message id. Once the script is
exhausted every call succeeds.
"""

import threading
from typing import List, Optional, Sequence, Union

from mailrelay.notifications.models import Envelope

ScriptedResult = Union[str, BaseException, None]


class FakeDeliveryClient:
    """Records envelopes and replays scripted outcomes.

    Attributes:
        sent: Envelopes for every call that succeeded
        attempts: Envelopes for every call, successful or not
    """

    def __init__(self, script: Optional[Sequence[ScriptedResult]] = None):
        self._script: List[ScriptedResult] = list(script or [])
        self._lock = threading.Lock()
        self.sent: List[Envelope] = []
        self.attempts: List[Envelope] = []
        self.closed = False

    def queue_results(self, *results: ScriptedResult) -> None:
        with self._lock:
            self._script.extend(results)

    def send(self, envelope: Envelope) -> Optional[str]:
        with self._lock:
            self.attempts.append(envelope)
            result = self._script.pop(0) if self._script else f"<msg-{len(self.attempts)}@fake>"
            if isinstance(result, BaseException):
                raise result
            self.sent.append(envelope)
            return result

    def close(self) -> None:
        self.closed = True
