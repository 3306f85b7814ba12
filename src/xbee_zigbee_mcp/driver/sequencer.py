"""Command sequencer: the run loop that interleaves sends and waits.

Multi-step exchanges with the radio are expressed as flat lists of
commands. The loop drains them in order and suspends at each
:class:`WaitFrame` until a received frame satisfies its predicate.
Handlers that run mid-drain push follow-up work onto the front of the
queue so it runs before anything queued earlier.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Union

from ..errors import TransportError, WaitTimeoutError
from ..models.property import PendingProperty
from ..protocol.at import AtCommand
from ..protocol.describe import delivery_status_str
from ..protocol.frames import Frame, FrameType

logger = logging.getLogger(__name__)

_MISSING = object()


class WaitPredicate:
    """An immutable set of ``field == value`` conditions on a frame.

    A frame matches when every named attribute exists on it and equals
    the expected value.
    """

    __slots__ = ("_fields",)

    def __init__(self, **fields: Any) -> None:
        if not fields:
            raise ValueError("A wait predicate needs at least one field")
        self._fields: Mapping[str, Any] = MappingProxyType(dict(fields))

    @property
    def fields(self) -> Mapping[str, Any]:
        return self._fields

    def matches(self, frame: Frame) -> bool:
        for name, expected in self._fields.items():
            actual = getattr(frame, name, _MISSING)
            if actual is _MISSING or actual != expected:
                return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WaitPredicate):
            return NotImplemented
        return dict(self._fields) == dict(other._fields)

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._fields.items())))

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._fields.items())
        return f"WaitPredicate({inner})"

    @classmethod
    def transmit_status(cls, frame_id: int) -> WaitPredicate:
        return cls(frame_type=FrameType.ZIGBEE_TRANSMIT_STATUS, frame_id=frame_id)

    @classmethod
    def at_response(cls, command: AtCommand | str) -> WaitPredicate:
        return cls(frame_type=FrameType.AT_COMMAND_RESPONSE, command=command)

    @classmethod
    def zdo_response(cls, cluster_id: int, zdo_seq: int) -> WaitPredicate:
        return cls(
            frame_type=FrameType.ZIGBEE_EXPLICIT_RX,
            cluster_id=cluster_id,
            zdo_seq=zdo_seq,
        )


@dataclass(frozen=True)
class SendFrame:
    frame: Frame


@dataclass(frozen=True)
class WaitFrame:
    predicate: WaitPredicate


@dataclass(frozen=True)
class Invoke:
    func: Callable[..., Any]
    args: tuple = field(default=())

    def __call__(self) -> Any:
        return self.func(*self.args)


@dataclass(frozen=True)
class ResolveProperty:
    """Complete a pending write.

    ``delivery_status`` returns the write's transmit status (``None`` if
    none arrived); anything but 0 fails the write instead of resolving it.
    """

    pending: PendingProperty
    delivery_status: Callable[[], int | None] | None = None


Command = Union[SendFrame, WaitFrame, Invoke, ResolveProperty]
Commands = Union[Command, Iterable["Commands"]]


def flatten(commands: Commands) -> list[Command]:
    """Flatten arbitrarily nested lists of commands, preserving order."""
    if isinstance(commands, (SendFrame, WaitFrame, Invoke, ResolveProperty)):
        return [commands]
    result: list[Command] = []
    for item in commands:
        result.extend(flatten(item))
    return result


class RunLoop:
    """Ordered work queue drained cooperatively, one wait at a time.

    Args:
        send: Called with each frame of a :class:`SendFrame`.
        wait_timeout: Seconds after which an outstanding wait is
            abandoned by :meth:`expire_wait`. ``None`` waits forever.
        on_timeout: Called with the :class:`WaitTimeoutError` of an
            abandoned wait.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        send: Callable[[Frame], None],
        wait_timeout: float | None = None,
        on_timeout: Callable[[WaitTimeoutError], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._send = send
        self._queue: deque[Command] = deque()
        self._clock = clock
        self.wait_timeout = wait_timeout
        self.on_timeout = on_timeout
        self.outstanding_wait: WaitPredicate | None = None
        self._wait_started: float = 0.0
        self.running = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def idle(self) -> bool:
        return not self._queue and self.outstanding_wait is None

    def pending(self) -> list[Command]:
        return list(self._queue)

    def enqueue_back(self, commands: Commands) -> None:
        self._queue.extend(flatten(commands))
        self.drive()

    def enqueue_front(self, commands: Commands) -> None:
        self._queue.extendleft(reversed(flatten(commands)))
        self.drive()

    def clear(self) -> None:
        """Drop all queued work and any outstanding wait."""
        self._queue.clear()
        self.outstanding_wait = None

    def drive(self) -> None:
        """Execute queued commands until the queue empties or a wait is set.

        A call made while already draining (from an :class:`Invoke`) or
        while a wait is outstanding returns immediately.
        """
        if self.outstanding_wait is not None:
            logger.debug("Queue stalled waiting for %r", self.outstanding_wait)
            return
        if self.running:
            return
        self.running = True
        try:
            while self._queue and self.outstanding_wait is None:
                self._execute(self._queue.popleft())
        finally:
            self.running = False

    def _execute(self, command: Command) -> None:
        if isinstance(command, SendFrame):
            self._send(command.frame)
        elif isinstance(command, WaitFrame):
            self.outstanding_wait = command.predicate
            self._wait_started = self._clock()
        elif isinstance(command, Invoke):
            logger.debug("Invoke %s", getattr(command.func, "__name__", command.func))
            command()
        elif isinstance(command, ResolveProperty):
            self._resolve(command)
        else:
            raise TypeError(f"Unknown command: {command!r}")

    def _resolve(self, command: ResolveProperty) -> None:
        pending = command.pending
        status = 0 if command.delivery_status is None else command.delivery_status()
        if status == 0:
            pending.resolve()
            return
        reason = "no transmit status" if status is None else delivery_status_str(status)
        logger.warning("Write of %r was not delivered: %s", pending.prop.name, reason)
        pending.fail(TransportError(f"Write of {pending.prop.name!r} was not delivered: {reason}"))

    def on_frame(self, frame: Frame) -> bool:
        """Offer a received frame to the outstanding wait, then drain.

        Returns:
            True if the frame satisfied the outstanding wait.
        """
        matched = False
        if self.outstanding_wait is not None and self.outstanding_wait.matches(frame):
            logger.debug("Wait satisfied: %r", self.outstanding_wait)
            self.outstanding_wait = None
            matched = True
        self.drive()
        return matched

    def expire_wait(self, now: float | None = None) -> bool:
        """Abandon the outstanding wait if it is older than ``wait_timeout``.

        Returns:
            True if a wait was abandoned.
        """
        if self.wait_timeout is None or self.outstanding_wait is None:
            return False
        if now is None:
            now = self._clock()
        if now - self._wait_started < self.wait_timeout:
            return False
        error = WaitTimeoutError(
            f"No frame matching {self.outstanding_wait!r} within {self.wait_timeout}s"
        )
        logger.error("%s", error)
        self.outstanding_wait = None
        if self.on_timeout is not None:
            self.on_timeout(error)
        self.drive()
        return True
