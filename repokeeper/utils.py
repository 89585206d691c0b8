#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic, Literal, TextIO, TypeVar

from rich.console import Console

from repokeeper.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

T = TypeVar("T")

_logger = get_logger(__name__)


class _Unset:
    """
    A marker class to indicate that a value is unset and thus should
    not be considered. This is different to None.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<UNSET>"

    def __bool__(self) -> Literal[False]:
        return False

    def __copy__(self):
        return UNSET

    def __deepcopy__(self, memo: dict[int, Any]):
        return UNSET


UNSET = _Unset()


def is_unset(value: Any) -> bool:
    """
    Returns whether the given value is an instance of Unset.
    """
    return value is UNSET


def is_set_and_valid(value: Any) -> bool:
    return not is_unset(value) and value is not None


def unwrap(value: T | None, error_message: str = "unexpected None when unwrapping value") -> T:
    """
    Will unwrap the given value or raise a ValueError if it is None

    :param value: the optional value to unwrap
    :param error_message: the error message when failing to unwrap
    :return: the value or a ValueError if it is None
    """
    if value is None:
        raise ValueError(error_message)
    else:
        return value


def expect_type(value: Any, expected_type: type[T]) -> T:
    if isinstance(value, expected_type):
        return value
    else:
        raise ValueError(f"unexpected value of type '{type(value)}' while '{expected_type}' was expected")


@dataclass
class Change(Generic[T]):
    from_value: T | None
    to_value: T | None


def normalize_identity(value: str) -> str:
    """
    Canonical form of an identity value (login, slug, branch name, url) used for matching.
    Only matching uses the canonical form, the value as given is kept for any request.
    """
    return value.casefold()


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def is_different_ignoring_order(value: Any, other_value: Any) -> bool:
    """
    Checks whether two values are considered to be different.
    Note: two lists are considered to be equal if they contain the same elements,
    regardless of the order or of repeated elements.
    """
    if isinstance(value, list) and isinstance(other_value, list):
        return {_canonical(x) for x in value} != {_canonical(x) for x in other_value}
    elif isinstance(value, dict) and isinstance(other_value, dict):
        if value.keys() != other_value.keys():
            return True

        return any(is_different_ignoring_order(item_value, other_value[key]) for key, item_value in value.items())

    return value != other_value


def is_different_identity_set(values: Iterable[str] | None, other_values: Iterable[str] | None) -> bool:
    """
    Compares two collections of identities (logins / slugs) as case-insensitive sets.
    """
    if values is None or other_values is None:
        return values is not other_values

    return {normalize_identity(x) for x in values} != {normalize_identity(x) for x in other_values}


def associate_by_key(input_list: Sequence[T], key_func: Callable[[T], str]) -> dict[str, T]:
    result = {}
    for item in input_list:
        key = key_func(item)

        if key in result:
            raise RuntimeError(f"duplicate item found with key '{key}'")

        result[key] = item

    return result


def deep_merge_dict(source: dict[str, Any], destination: dict[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        if isinstance(value, dict):
            node = destination.setdefault(key, {})
            deep_merge_dict(value, node)
        else:
            destination[key] = value

    return destination


def debug_times(category: str):
    import functools

    def decorator_timed(func):
        @functools.wraps(func)
        async def wrapper_timed(*args, **kwargs):
            start = datetime.now()
            _logger.debug(f"{category}: starting ...")
            value = await func(*args, **kwargs)
            end = datetime.now()
            _logger.debug(f"{category}: complete after {(end - start).total_seconds()}s")
            return value

        return wrapper_timed

    return decorator_timed


class IndentingPrinter:
    def __init__(
        self,
        output: TextIO | Console,
        initial_offset: int = 0,
        spaces_per_level: int = 2,
    ):
        if isinstance(output, Console):
            self._console = output
        else:
            # a very large width keeps rich from wrapping long lines
            self._console = Console(file=output, width=9999)

        self._initial_offset = " " * initial_offset
        self._level = 0
        self._spaces_per_level = spaces_per_level
        self._indented_line = False

    @property
    def console(self) -> Console:
        return self._console

    @property
    def current_indentation(self) -> str:
        return self._initial_offset + " " * (self._level * self._spaces_per_level)

    def print(self, text: str = "", highlight: bool = False) -> None:
        for line in text.splitlines(keepends=True):
            self._print_indentation()

            if line.endswith("\n"):
                self._console.print(line[:-1], end="", highlight=highlight)
                self.print_line_break()
            else:
                self._console.print(line, end="", highlight=highlight)

    def println(self, text: str = "", highlight: bool = False) -> None:
        self.print(text, highlight=highlight)
        self.print_line_break()

    def print_line_break(self) -> None:
        self._console.print("")
        self._indented_line = False

    def _print_indentation(self) -> None:
        if not self._indented_line:
            self._console.print(self.current_indentation, end="")
            self._indented_line = True

    def level_up(self) -> None:
        self._level += 1

    def level_down(self) -> None:
        if self._level == 0:
            raise RuntimeError("tried to call level_down on level 0")

        self._level -= 1
