#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import asyncio
import dataclasses
from typing import TYPE_CHECKING

import aiohttp
from rich.progress import Progress

from repokeeper.config import ReconcilerConfig
from repokeeper.logging import get_logger
from repokeeper.models import LivePatch, LivePatchType
from repokeeper.providers.github.exception import (
    BadCredentialsException,
    FailureKind,
    GitHubException,
    InsufficientPermissionsException,
    classify_failure,
)

if TYPE_CHECKING:
    from repokeeper.providers.github import GitHubProvider
    from repokeeper.utils import IndentingPrinter

    from .plan import PendingProtection, Plan

_logger = get_logger(__name__)

# failures of a remote call, anything else is a programming error and propagates
_REMOTE_FAILURES = (
    RuntimeError,
    GitHubException,
    BadCredentialsException,
    InsufficientPermissionsException,
    aiohttp.ClientError,
    TimeoutError,
)


@dataclasses.dataclass
class ApplyResult:
    applied: list[LivePatch] = dataclasses.field(default_factory=list)
    failed: LivePatch | None = None
    cause: BaseException | None = None
    cancelled: bool = False
    pending: list[PendingProtection] = dataclasses.field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.failed is None and not self.cancelled


async def _apply_step(
    step: LivePatch,
    org_id: str,
    provider: GitHubProvider,
    config: ReconcilerConfig,
    cancel_event: asyncio.Event | None,
) -> BaseException | None:
    """
    Applies a single step, retrying transient failures.
    Returns the failure if the step could not be applied, None otherwise.
    """
    attempt = 0
    while True:
        try:
            await step.apply(org_id, provider)
            return None
        except _REMOTE_FAILURES as ex:
            kind = classify_failure(ex)

            if kind == FailureKind.NOT_FOUND and step.patch_type == LivePatchType.REMOVE:
                _logger.info("%r: already removed", step)
                return None

            attempt += 1
            if kind != FailureKind.TRANSIENT or attempt >= config.max_attempts:
                return ex

            delay = config.backoff_delay(attempt - 1)
            _logger.warning(
                "%r: transient failure (attempt %d of %d), retrying in %.1fs: %s",
                step,
                attempt,
                config.max_attempts,
                delay,
                ex,
            )
            await asyncio.sleep(delay)

            if cancel_event is not None and cancel_event.is_set():
                return ex


async def apply_plan(
    plan: Plan,
    org_id: str,
    provider: GitHubProvider,
    config: ReconcilerConfig | None = None,
    cancel_event: asyncio.Event | None = None,
    printer: IndentingPrinter | None = None,
) -> ApplyResult:
    """
    Executes the steps of a plan sequentially in plan order.

    Stops at the first step that fails permanently, or keeps failing transiently after the
    configured number of attempts. Steps applied before are not rolled back. When the cancel
    event is set, no further step is started and the result is marked as cancelled.
    """
    if config is None:
        config = ReconcilerConfig()

    result = ApplyResult(pending=list(plan.pending))

    with Progress(console=printer.console if printer is not None else None, disable=printer is None) as progress:
        task = progress.add_task(printer.current_indentation if printer is not None else "", total=len(plan.steps))

        for step in plan.steps:
            if cancel_event is not None and cancel_event.is_set():
                _logger.info("cancelled, %d of %d step(s) applied", len(result.applied), len(plan.steps))
                result.cancelled = True
                break

            failure = await _apply_step(step, org_id, provider, config, cancel_event)
            progress.advance(task)

            if failure is not None and cancel_event is not None and cancel_event.is_set():
                _logger.info("cancelled while retrying %r", step)
                result.cancelled = True
                break

            if failure is not None:
                _logger.error("failed to apply %r: %s", step, failure)
                result.failed = step
                result.cause = failure
                break

            _logger.info("applied %r", step)
            result.applied.append(step)

    return result
