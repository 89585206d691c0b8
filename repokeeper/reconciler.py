#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

from typing import TYPE_CHECKING

from repokeeper.config import ReconcilerConfig
from repokeeper.logging import get_logger, print_error, print_exception, print_info, print_warn
from repokeeper.models.repository import Repository
from repokeeper.operations.apply import ApplyResult, apply_plan
from repokeeper.operations.diff import Observation, aggregate, observe
from repokeeper.operations.plan import Plan, PlanPrinter, build_plan
from repokeeper.utils import unwrap

if TYPE_CHECKING:
    import asyncio

    from repokeeper.providers.github import GitHubProvider
    from repokeeper.utils import IndentingPrinter

_logger = get_logger(__name__)


class RepositoryReconciler:
    """
    Reconciles the expected state of a single repository with its state on GitHub.

    Each call validates the expected state, retrieves a fresh snapshot of the current state
    and works on that snapshot only, nothing is kept between calls.
    """

    def __init__(
        self,
        org_id: str,
        provider: GitHubProvider,
        config: ReconcilerConfig | None = None,
        printer: IndentingPrinter | None = None,
    ):
        self.org_id = org_id
        self.provider = provider
        self.config = config if config is not None else provider.config
        self.printer = printer

    async def _load_current(self, expected_object: Repository) -> Repository | None:
        expected_object.check()

        return await Repository.load_from_provider(
            self.org_id,
            expected_object.name,
            self.provider,
            expected_object.managed_categories(),
            self.config.fetch_concurrency,
        )

    async def observe(self, expected_object: Repository) -> Observation:
        """
        Returns whether the repository exists and is up to date. A repository that does not
        exist is not an error.
        """
        current_object = await self._load_current(expected_object)
        observation = observe(expected_object, current_object)
        _logger.info("repository '%s/%s': %s", self.org_id, expected_object.name, observation.verdict.name)
        return observation

    async def plan(self, expected_object: Repository) -> Plan:
        current_object = await self._load_current(expected_object)
        return build_plan(aggregate(expected_object, current_object))

    async def converge(self, expected_object: Repository, cancel_event: asyncio.Event | None = None) -> ApplyResult:
        """
        Applies the changes needed to bring the repository to its expected state,
        creating it if it does not exist.
        """
        plan = await self.plan(expected_object)

        if self.printer is not None:
            PlanPrinter(self.printer).print_plan(plan)

        if plan.is_empty():
            _logger.info("repository '%s/%s': no changes required", self.org_id, expected_object.name)

        result = await apply_plan(plan, self.org_id, self.provider, self.config, cancel_event, self.printer)

        if self.printer is not None:
            self._report(expected_object, result)

        return result

    def _report(self, expected_object: Repository, result: ApplyResult) -> None:
        console = unwrap(self.printer).console
        repo = f"{self.org_id}/{expected_object.name}"

        if result.cancelled:
            print_warn(f"converging '{repo}' was cancelled after {len(result.applied)} step(s)", console)
        elif result.failed is not None:
            print_error(f"failed to apply '{result.failed!r}' to '{repo}'", console)
            if result.cause is not None:
                print_exception(result.cause, console)
        else:
            print_info(f"applied {len(result.applied)} step(s) to '{repo}'", console)

        for entry in result.pending:
            print_warn(f"protection of branch '{entry.branch}' is pending until the branch exists", console)
