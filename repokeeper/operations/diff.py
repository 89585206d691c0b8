#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import TYPE_CHECKING

from repokeeper.logging import get_logger, is_debug_enabled
from repokeeper.models import LivePatch, LivePatchType
from repokeeper.models.repository import CATEGORIES, Repository
from repokeeper.utils import is_set_and_valid, normalize_identity

if TYPE_CHECKING:
    from collections.abc import Iterator

_logger = get_logger(__name__)

CATEGORY_ORDER = tuple(CATEGORIES)


class Verdict(Enum):
    UP_TO_DATE = 1
    NOT_UP_TO_DATE = 2
    DOES_NOT_EXIST = 3


class DiffStatus:
    def __init__(self):
        self.additions = 0
        self.differences = 0
        self.deletions = 0

    def count(self, patch: LivePatch) -> None:
        match patch.patch_type:
            case LivePatchType.ADD:
                self.additions += 1
            case LivePatchType.CHANGE:
                self.differences += 1
            case LivePatchType.REMOVE:
                self.deletions += 1


@dataclasses.dataclass
class ChangeSet:
    """
    The differences between the expected and the current state of a repository.

    The patches for the repository settings come first, the patches of each category keep the
    order in which they were generated: additions, then changes, then removals.
    """

    repository: list[LivePatch] = dataclasses.field(default_factory=list)
    categories: dict[str, list[LivePatch]] = dataclasses.field(
        default_factory=lambda: {category: [] for category in CATEGORY_ORDER}
    )
    # canonical names of the branches that currently exist
    existing_branches: set[str] = dataclasses.field(default_factory=set)

    def patches_of(self, category: str) -> list[LivePatch]:
        return self.categories[category]

    def all_patches(self) -> Iterator[LivePatch]:
        yield from self.repository

        for category in CATEGORY_ORDER:
            yield from self.categories[category]

    def is_empty(self) -> bool:
        return next(self.all_patches(), None) is None

    def status(self) -> DiffStatus:
        diff_status = DiffStatus()
        for patch in self.all_patches():
            diff_status.count(patch)
        return diff_status


@dataclasses.dataclass(frozen=True)
class Observation:
    resource_exists: bool
    resource_up_to_date: bool
    change_set: ChangeSet | None = None

    @property
    def verdict(self) -> Verdict:
        if not self.resource_exists:
            return Verdict.DOES_NOT_EXIST
        elif self.resource_up_to_date:
            return Verdict.UP_TO_DATE
        else:
            return Verdict.NOT_UP_TO_DATE


def _existing_branches(current_object: Repository | None) -> set[str]:
    if current_object is None or not is_set_and_valid(current_object.branches):
        return set()

    return {normalize_identity(branch) for branch in current_object.branches}


def aggregate(expected_object: Repository, current_object: Repository | None) -> ChangeSet:
    """
    Compares the expected state of a repository with its current state across all categories.

    If the repository does not exist, the resulting change set creates the repository
    and every sub-resource it defines.
    """
    change_set = ChangeSet(existing_branches=_existing_branches(current_object))

    expected_object.generate_settings_patches(current_object, change_set.repository.append)

    for category in expected_object.categories_to_compare(current_object):
        expected_object.generate_category_patches(category, current_object, change_set.categories[category].append)

    if is_debug_enabled():
        diff_status = change_set.status()
        _logger.debug(
            "repository '%s': %d to add, %d to change, %d to delete",
            expected_object.name,
            diff_status.additions,
            diff_status.differences,
            diff_status.deletions,
        )

    return change_set


def is_up_to_date(expected_object: Repository, current_object: Repository | None) -> bool:
    """
    Returns whether the current state of a repository matches its expected state,
    stops at the first category that differs.
    """
    if current_object is None:
        return False

    patches: list[LivePatch] = []

    expected_object.generate_settings_patches(current_object, patches.append)
    if len(patches) > 0:
        return False

    for category in expected_object.categories_to_compare(current_object):
        expected_object.generate_category_patches(category, current_object, patches.append)
        if len(patches) > 0:
            _logger.debug("repository '%s' differs in category '%s'", expected_object.name, category)
            return False

    return True


def observe(expected_object: Repository, current_object: Repository | None) -> Observation:
    if current_object is None:
        return Observation(resource_exists=False, resource_up_to_date=False)

    up_to_date = is_up_to_date(expected_object, current_object)
    change_set = None if up_to_date else aggregate(expected_object, current_object)
    return Observation(resource_exists=True, resource_up_to_date=up_to_date, change_set=change_set)
