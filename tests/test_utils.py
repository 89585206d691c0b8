#  *******************************************************************************
#  Copyright (c) 2023-2024 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

import copy
from io import StringIO

import pytest

from repokeeper.utils import (
    UNSET,
    IndentingPrinter,
    associate_by_key,
    deep_merge_dict,
    is_different_identity_set,
    is_different_ignoring_order,
    is_set_and_valid,
    is_unset,
    normalize_identity,
    unwrap,
)


def test_unset():
    assert is_unset(UNSET) is True
    assert is_unset(None) is False
    assert bool(UNSET) is False
    assert copy.deepcopy({"a": UNSET})["a"] is UNSET

    assert is_set_and_valid(UNSET) is False
    assert is_set_and_valid(None) is False
    assert is_set_and_valid(False) is True


def test_unwrap():
    assert unwrap(1) == 1

    with pytest.raises(ValueError):
        unwrap(None)


def test_is_different_ignoring_order():
    assert is_different_ignoring_order(1, 2) is True
    assert is_different_ignoring_order(None, None) is False
    assert is_different_ignoring_order(1, None) is True
    assert is_different_ignoring_order(None, 1) is True

    assert is_different_ignoring_order([], []) is False
    assert is_different_ignoring_order([1], [1]) is False
    assert is_different_ignoring_order([1, 2], [2, 1]) is False
    assert is_different_ignoring_order([1, 1, 2], [2, 1]) is False
    assert is_different_ignoring_order(["Hello"], ["World"]) is True
    assert is_different_ignoring_order(["Hello", "World"], ["World", "Hello"]) is False

    assert is_different_ignoring_order({"a": 1}, {"a": 1}) is False
    assert is_different_ignoring_order({"a": 1}, {"b": 1}) is True
    assert is_different_ignoring_order({"a": 1, "b": 2}, {"b": 2, "a": 1}) is False

    assert is_different_ignoring_order([{"a": 1, "b": 2}, {"c": 3}], [{"c": 3}, {"b": 2, "a": 1}]) is False
    assert is_different_ignoring_order([{"a": 1}], [{"a": 2}]) is True

    assert is_different_ignoring_order(UNSET, UNSET) is False
    assert is_different_ignoring_order(1, UNSET) is True
    assert is_different_ignoring_order(False, UNSET) is True


def test_is_different_identity_set():
    assert is_different_identity_set(["user-1", "Team-A"], ["team-a", "USER-1"]) is False
    assert is_different_identity_set(["user-1"], ["user-1", "user-2"]) is True
    assert is_different_identity_set([], []) is False
    assert is_different_identity_set(None, None) is False
    assert is_different_identity_set(None, []) is True


def test_normalize_identity():
    assert normalize_identity("Test-Team") == "test-team"
    assert normalize_identity("main") == "main"
    assert normalize_identity("Straße") == normalize_identity("STRASSE")


def test_associate_by_key():
    assert associate_by_key(["a", "b"], lambda x: x.upper()) == {"A": "a", "B": "b"}

    with pytest.raises(RuntimeError):
        associate_by_key(["a", "A"], lambda x: x.lower())


def test_deep_merge_dict():
    src = {
        "first": {"Matt": 10, "Arnie": 2},
        "second": {"Peter": 2},
    }
    dst = {
        "first": {"Matt": 1},
        "third": {"Maria": 3},
    }

    assert deep_merge_dict(src, dst) == {
        "first": {"Matt": 10, "Arnie": 2},
        "second": {"Peter": 2},
        "third": {"Maria": 3},
    }


def test_indenting_printer():
    output = StringIO()
    printer = IndentingPrinter(output, spaces_per_level=2)

    printer.println("a")
    printer.level_up()
    printer.println("b\nc")
    printer.level_down()
    printer.print("d")

    assert output.getvalue() == "a\n  b\n  c\nd"

    with pytest.raises(RuntimeError):
        printer.level_down()
