#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from rich.markup import escape

from repokeeper.logging import get_logger
from repokeeper.models import LivePatch, LivePatchType
from repokeeper.models.branch_protection_rule import BranchProtectionRule
from repokeeper.models.ruleset import RepositoryRuleset
from repokeeper.utils import is_set_and_valid, normalize_identity, unwrap

from .diff import CATEGORY_ORDER, DiffStatus

if TYPE_CHECKING:
    from repokeeper.utils import IndentingPrinter

    from .diff import ChangeSet

_logger = get_logger(__name__)

# creations before updates before removals, never drop access before it is granted otherwise
_PATCH_TYPE_ORDER = {
    LivePatchType.ADD: 0,
    LivePatchType.CHANGE: 1,
    LivePatchType.REMOVE: 2,
}


@dataclasses.dataclass(frozen=True)
class PendingProtection:
    """A branch protection that can not be applied yet as its branch does not exist."""

    branch: str
    patch: LivePatch[BranchProtectionRule]


@dataclasses.dataclass(frozen=True)
class Plan:
    steps: list[LivePatch]
    pending: list[PendingProtection] = dataclasses.field(default_factory=list)

    def is_empty(self) -> bool:
        return len(self.steps) == 0

    def status(self) -> DiffStatus:
        diff_status = DiffStatus()
        for step in self.steps:
            diff_status.count(step)
        return diff_status


def _as_addition_if_unidentified(patch: LivePatch) -> LivePatch:
    # a ruleset can only be updated using its remote id
    if patch.patch_type == LivePatchType.CHANGE and isinstance(patch.current_object, RepositoryRuleset):
        if not is_set_and_valid(patch.current_object.id):
            expected_object = unwrap(patch.expected_object)
            _logger.debug("ruleset '%s' has no id, creating it instead", expected_object.name)
            return LivePatch.of_addition(expected_object, patch.parent_object, expected_object.apply_live_patch)

    return patch


def build_plan(change_set: ChangeSet) -> Plan:
    """
    Orders the patches of a change set into the steps to execute.

    The settings of the repository come first, followed by the patches of each category in
    a fixed order, within a category creations come before updates and updates before removals.
    Patches that make the repository read-only are executed last. Protections of branches that
    do not exist yet are not executed but reported as pending.
    """
    steps: list[LivePatch] = []
    pending: list[PendingProtection] = []
    readonly_steps: list[LivePatch] = []

    for patch in change_set.repository:
        if patch.changes_object_to_readonly is True:
            readonly_steps.append(patch)
        else:
            steps.append(patch)

    for category in CATEGORY_ORDER:
        patches = [_as_addition_if_unidentified(patch) for patch in change_set.patches_of(category)]

        # sorting is stable, the relative order of the patches of the same type is kept
        for patch in sorted(patches, key=lambda x: _PATCH_TYPE_ORDER[x.patch_type]):
            if isinstance(patch.model_object, BranchProtectionRule) and patch.patch_type != LivePatchType.REMOVE:
                branch = patch.model_object.branch
                if normalize_identity(branch) not in change_set.existing_branches:
                    _logger.debug("branch '%s' does not exist yet, deferring its protection", branch)
                    pending.append(PendingProtection(branch, patch))
                    continue

            steps.append(patch)

    steps.extend(readonly_steps)
    return Plan(steps, pending)


class PlanPrinter:
    """
    Renders a plan for display.
    """

    def __init__(self, printer: IndentingPrinter):
        self.printer = printer

    def print_legend(self) -> None:
        self.printer.println("\nActions are indicated with the following symbols:")
        self.printer.println("  [green]+[/] create")
        self.printer.println("  [yellow]~[/] modify")
        self.printer.println("  [red]-[/] delete")
        self.printer.println("  [blue]?[/] pending")

    def print_plan(self, plan: Plan) -> None:
        self.print_legend()

        for step in plan.steps:
            self.printer.println()
            match step.patch_type:
                case LivePatchType.ADD:
                    self._print_dict(step.model_object.to_model_dict(), step, "+", "green")
                case LivePatchType.REMOVE:
                    self._print_dict(step.model_object.to_model_dict(), step, "-", "red")
                case LivePatchType.CHANGE:
                    self._print_changes(step)

        for entry in plan.pending:
            self.printer.println()
            header = entry.patch.model_object.get_model_header(entry.patch.parent_object)
            self.printer.println(f"[blue]?[/] {header}: branch '{entry.branch}' does not exist yet")

        diff_status = plan.status()
        self.printer.println(
            f"\n[bold]Plan[/]: {diff_status.additions} to add, "
            f"{diff_status.differences} to change, "
            f"{diff_status.deletions} to delete, "
            f"{len(plan.pending)} pending.",
            highlight=True,
        )

    def _print_dict(self, data: dict[str, Any], patch: LivePatch, action: str, color: str) -> None:
        prefix = f"[{color}]{action}[/] "
        header = patch.model_object.get_model_header(patch.parent_object)

        self.printer.println(f"{prefix}{header} {{")
        self.printer.level_up()
        self._print_values(data, prefix)
        self.printer.level_down()
        self.printer.println(f"{prefix}}}")

    def _print_values(self, data: dict[str, Any], prefix: str) -> None:
        max_key_length = max((len(key) for key in data), default=0)

        for key, value in data.items():
            if isinstance(value, dict):
                self.printer.println(f"{prefix}{key.ljust(max_key_length)} = {{")
                self.printer.level_up()
                self._print_values(value, prefix)
                self.printer.level_down()
                self.printer.println(f"{prefix}}}")
            else:
                self.printer.println(f"{prefix}{key.ljust(max_key_length)} = {escape(repr(value))}")

    def _print_changes(self, patch: LivePatch) -> None:
        prefix = "[yellow]~[/] "
        header = patch.model_object.get_model_header(patch.parent_object)
        changes = unwrap(patch.changes)

        self.printer.println(f"{prefix}{header} {{")
        self.printer.level_up()

        max_key_length = max((len(key) for key in changes), default=0)
        for key, change in sorted(changes.items()):
            from_value = escape(repr(change.from_value))
            to_value = escape(repr(change.to_value))
            self.printer.println(f"{prefix}{key.ljust(max_key_length)} = {from_value} [yellow]->[/] {to_value}")

        if patch.changes_object_to_readonly:
            self.printer.println(f"{prefix}(makes the repository read-only, executed last)")

        self.printer.level_down()
        self.printer.println(f"{prefix}}}")
