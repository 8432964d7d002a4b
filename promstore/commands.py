"""Mapping from update commands to Redis hash operations."""
from enum import IntEnum
from typing import Callable, Union

from promstore.errors import InvalidCommand


class Command(IntEnum):
    """How an update is applied to its hash field."""
    INCREMENT_INTEGER = 1
    INCREMENT_FLOAT = 2
    SET = 3


def to_command(code: Union[Command, int]) -> Command:
    """Coerce a raw command code, failing fast on anything unknown."""
    if isinstance(code, bool):
        raise InvalidCommand(f"Unknown command: {code!r}")
    try:
        return Command(code)
    except (ValueError, TypeError):
        raise InvalidCommand(f"Unknown command: {code!r}") from None


def dispatch(client, code: Union[Command, int]) -> Callable:
    """Return the bound Redis operation ``op(key, field, value)`` for a command."""
    command = to_command(code)
    if command is Command.INCREMENT_INTEGER:
        return _integer_increment(client)
    if command is Command.INCREMENT_FLOAT:
        return client.hincrbyfloat
    return client.hset


def _integer_increment(client) -> Callable:
    def hincrby(key: str, field: str, value) -> int:
        if not float(value).is_integer():
            raise InvalidCommand(f"INCREMENT_INTEGER requires an integral value, got {value!r}")
        return client.hincrby(key, field, int(value))

    return hincrby


def is_first_write(command: Command, result, value) -> bool:
    """
    Guess whether an operation created its field.

    Increments compare the post-operation value to the delta; ``HSET``
    reports ``1`` when it added a new field.
    """
    if command is Command.SET:
        return int(result) == 1
    return float(result) == float(value)
