from __future__ import annotations

from typing import Iterator, Sequence

from chatstress.metrics import OutcomeKind

TRANSIENT_FAULT_PATTERNS: tuple[str, ...] = (
    "connection reset",
    "connection was reset",
    "connection closed",
    "unexpected end of stream",
    # httpx wording for the same faults
    "server disconnected",
    "peer closed connection",
)


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def is_transient_message(message: str | None, patterns: Sequence[str] = TRANSIENT_FAULT_PATTERNS) -> bool:
    if not message:
        return False
    lowered = message.lower()
    return any(pattern in lowered for pattern in patterns)


def classify_error(
    exc: BaseException,
    patterns: Sequence[str] = TRANSIENT_FAULT_PATTERNS,
) -> OutcomeKind:
    """Map a failed call to an outcome kind by its error text.

    The exception and everything in its cause/context chain are checked,
    since transport errors usually wrap the socket error that carries the
    recognisable message.
    """
    for err in _chain(exc):
        if is_transient_message(str(err), patterns):
            return OutcomeKind.TRANSIENT_NETWORK_FAULT
    return OutcomeKind.OTHER_FAILURE


def error_label(exc: BaseException) -> str:
    return type(exc).__name__
