#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import contextlib
from asyncio import CancelledError
from typing import TYPE_CHECKING

from repokeeper.config import ReconcilerConfig
from repokeeper.logging import get_logger

if TYPE_CHECKING:
    from typing import Any

    from .stats import RequestStatistics

_logger = get_logger(__name__)


class GitHubProvider:
    """
    The facade to the GitHub REST API used by the model objects to read and write the state of a repository.
    """

    def __init__(self, token: str | None, config: ReconcilerConfig | None = None):
        self._token = token
        self._config = config if config is not None else ReconcilerConfig()

        if token is not None:
            self._init_clients()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exception_type, exception_value, exception_traceback):
        await self.close()

    @property
    def config(self) -> ReconcilerConfig:
        return self._config

    @property
    def statistics(self) -> RequestStatistics:
        return self.rest_api.statistics

    async def close(self) -> None:
        if self._token is not None:
            with contextlib.suppress(CancelledError):
                await self.rest_api.close()

    def _init_clients(self):
        from .auth import token_auth
        from .rest import RestApi

        self.rest_api = RestApi(token_auth(self._token), self._config.api_url, self._config.api_version)

    async def get_repo_data(self, org_id: str, repo_name: str) -> dict[str, Any] | None:
        return await self.rest_api.repo.get_repo_data(org_id, repo_name)

    async def add_repo(self, org_id: str, data: dict[str, Any]) -> None:
        await self.rest_api.repo.add_repo(org_id, data)

    async def update_repo(self, org_id: str, repo_name: str, data: dict[str, Any]) -> None:
        await self.rest_api.repo.update_repo(org_id, repo_name, data)

    async def get_repo_collaborators(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        return await self.rest_api.repo.get_collaborators(org_id, repo_name)

    async def add_repo_collaborator(self, org_id: str, repo_name: str, login: str, role: str) -> None:
        await self.rest_api.repo.add_collaborator(org_id, repo_name, login, role)

    async def remove_repo_collaborator(self, org_id: str, repo_name: str, login: str) -> None:
        await self.rest_api.repo.remove_collaborator(org_id, repo_name, login)

    async def get_repo_teams(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        return await self.rest_api.repo.get_teams(org_id, repo_name)

    async def add_repo_team(self, org_id: str, repo_name: str, team_slug: str, role: str) -> None:
        await self.rest_api.repo.update_team_permission(org_id, repo_name, team_slug, role)

    async def update_repo_team(self, org_id: str, repo_name: str, team_slug: str, role: str) -> None:
        await self.rest_api.repo.update_team_permission(org_id, repo_name, team_slug, role)

    async def remove_repo_team(self, org_id: str, repo_name: str, team_slug: str) -> None:
        await self.rest_api.repo.remove_team(org_id, repo_name, team_slug)

    async def get_repo_webhooks(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        return await self.rest_api.repo.get_webhooks(org_id, repo_name)

    async def add_repo_webhook(self, org_id: str, repo_name: str, data: dict[str, Any]) -> None:
        await self.rest_api.repo.add_webhook(org_id, repo_name, data)

    async def update_repo_webhook(
        self, org_id: str, repo_name: str, webhook_id: int, url: str, webhook: dict[str, Any]
    ) -> None:
        if len(webhook) > 0:
            await self.rest_api.repo.update_webhook(org_id, repo_name, webhook_id, webhook)

    async def update_repo_webhook_config(
        self, org_id: str, repo_name: str, webhook_id: int, url: str, config: dict[str, Any]
    ) -> None:
        if len(config) > 0:
            await self.rest_api.repo.update_webhook_config(org_id, repo_name, webhook_id, config)

    async def delete_repo_webhook(self, org_id: str, repo_name: str, webhook_id: int, url: str) -> None:
        await self.rest_api.repo.delete_webhook(org_id, repo_name, webhook_id, url)

    async def get_branches(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        return await self.rest_api.repo.get_branches(org_id, repo_name)

    async def get_branch_protection(self, org_id: str, repo_name: str, branch: str) -> dict[str, Any] | None:
        return await self.rest_api.repo.get_branch_protection(org_id, repo_name, branch)

    async def update_branch_protection(self, org_id: str, repo_name: str, branch: str, data: dict[str, Any]) -> None:
        await self.rest_api.repo.update_branch_protection(org_id, repo_name, branch, data)

    async def delete_branch_protection(self, org_id: str, repo_name: str, branch: str) -> None:
        await self.rest_api.repo.delete_branch_protection(org_id, repo_name, branch)

    async def update_signed_commits(self, org_id: str, repo_name: str, branch: str, enabled: bool) -> None:
        await self.rest_api.repo.update_signed_commits(org_id, repo_name, branch, enabled)

    async def get_repo_rulesets(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        return await self.rest_api.repo.get_rulesets(org_id, repo_name, self._config.fetch_concurrency)

    async def add_repo_ruleset(self, org_id: str, repo_name: str, data: dict[str, Any]) -> None:
        await self.rest_api.repo.add_ruleset(org_id, repo_name, data)

    async def update_repo_ruleset(
        self, org_id: str, repo_name: str, ruleset_id: int, name: str, ruleset: dict[str, Any]
    ) -> None:
        if len(ruleset) > 0:
            await self.rest_api.repo.update_ruleset(org_id, repo_name, ruleset_id, ruleset)

    async def delete_repo_ruleset(self, org_id: str, repo_name: str, ruleset_id: int, name: str) -> None:
        await self.rest_api.repo.delete_ruleset(org_id, repo_name, ruleset_id, name)
