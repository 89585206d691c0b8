#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

import asyncio
from typing import Any

from repokeeper.logging import get_logger
from repokeeper.providers.github.exception import GitHubException
from repokeeper.providers.github.rest import RestApi, RestClient

_logger = get_logger(__name__)


class RepoClient(RestClient):
    def __init__(self, rest_api: RestApi):
        super().__init__(rest_api)

    async def _delete(self, url_path: str, description: str) -> None:
        status, body = await self.requester.request_raw("DELETE", url_path)

        if status != 204:
            raise RuntimeError(f"failed to delete {description}") from GitHubException(url_path, status, body)

    async def get_repo_data(self, org_id: str, repo_name: str) -> dict[str, Any] | None:
        _logger.debug("retrieving repo data for '%s/%s'", org_id, repo_name)

        try:
            return await self.requester.request_json("GET", f"/repos/{org_id}/{repo_name}")
        except GitHubException as ex:
            if ex.status == 404:
                return None

            raise RuntimeError(f"failed retrieving data for repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def add_repo(self, org_id: str, data: dict[str, Any]) -> None:
        repo_name = data["name"]
        _logger.debug("creating repo '%s/%s'", org_id, repo_name)

        try:
            await self.requester.request_json("POST", f"/orgs/{org_id}/repos", data)
            _logger.debug("created repo with name '%s'", repo_name)
        except GitHubException as ex:
            raise RuntimeError(f"failed to create repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def update_repo(self, org_id: str, repo_name: str, data: dict[str, Any]) -> None:
        _logger.debug("updating repo settings for repo '%s/%s'", org_id, repo_name)

        if len(data) == 0:
            return

        try:
            await self.requester.request_json("PATCH", f"/repos/{org_id}/{repo_name}", data)
            _logger.debug("updated %d repo setting(s) for repo '%s/%s'", len(data), org_id, repo_name)
        except GitHubException as ex:
            raise RuntimeError(f"failed to update settings for repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def get_collaborators(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        _logger.debug("retrieving collaborators for repo '%s/%s'", org_id, repo_name)

        try:
            params = {"affiliation": "direct"}
            return await self.requester.request_paged_json(
                "GET", f"/repos/{org_id}/{repo_name}/collaborators", params=params
            )
        except GitHubException as ex:
            if ex.status == 404:
                return []

            raise RuntimeError(f"failed retrieving collaborators for repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def add_collaborator(self, org_id: str, repo_name: str, login: str, permission: str) -> None:
        _logger.debug("granting '%s' to collaborator '%s' for repo '%s/%s'", permission, login, org_id, repo_name)

        try:
            data = {"permission": permission}
            await self.requester.request_json("PUT", f"/repos/{org_id}/{repo_name}/collaborators/{login}", data)
            _logger.debug("granted '%s' to collaborator '%s'", permission, login)
        except GitHubException as ex:
            raise RuntimeError(f"failed to grant '{permission}' to collaborator '{login}':\n{ex}") from ex

    async def remove_collaborator(self, org_id: str, repo_name: str, login: str) -> None:
        _logger.debug("removing collaborator '%s' from repo '%s/%s'", login, org_id, repo_name)
        await self._delete(f"/repos/{org_id}/{repo_name}/collaborators/{login}", f"collaborator '{login}'")
        _logger.debug("removed collaborator '%s'", login)

    async def get_teams(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        _logger.debug("retrieving teams for repo '%s/%s'", org_id, repo_name)

        try:
            return await self.requester.request_paged_json("GET", f"/repos/{org_id}/{repo_name}/teams")
        except GitHubException as ex:
            if ex.status == 404:
                return []

            raise RuntimeError(f"failed retrieving teams for repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def update_team_permission(self, org_id: str, repo_name: str, team_slug: str, permission: str) -> None:
        _logger.debug("granting '%s' to team '%s' for repo '%s/%s'", permission, team_slug, org_id, repo_name)

        try:
            data = {"permission": permission}
            await self.requester.request_json(
                "PUT", f"/orgs/{org_id}/teams/{team_slug}/repos/{org_id}/{repo_name}", data
            )
            _logger.debug("granted '%s' to team '%s'", permission, team_slug)
        except GitHubException as ex:
            raise RuntimeError(f"failed to grant '{permission}' to team '{team_slug}':\n{ex}") from ex

    async def remove_team(self, org_id: str, repo_name: str, team_slug: str) -> None:
        _logger.debug("removing team '%s' from repo '%s/%s'", team_slug, org_id, repo_name)
        await self._delete(f"/orgs/{org_id}/teams/{team_slug}/repos/{org_id}/{repo_name}", f"team '{team_slug}'")
        _logger.debug("removed team '%s'", team_slug)

    async def get_webhooks(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        _logger.debug("retrieving webhooks for repo '%s/%s'", org_id, repo_name)

        try:
            return await self.requester.request_paged_json("GET", f"/repos/{org_id}/{repo_name}/hooks")
        except GitHubException as ex:
            if ex.status == 404:
                return []

            raise RuntimeError(f"failed retrieving webhooks for repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def update_webhook(self, org_id: str, repo_name: str, webhook_id: int, webhook: dict[str, Any]) -> None:
        _logger.debug("updating repo webhook '%d' for repo '%s/%s'", webhook_id, org_id, repo_name)

        try:
            await self.requester.request_json("PATCH", f"/repos/{org_id}/{repo_name}/hooks/{webhook_id}", webhook)
            _logger.debug("updated repo webhook '%d'", webhook_id)
        except GitHubException as ex:
            raise RuntimeError(f"failed to update repo webhook {webhook_id}:\n{ex}") from ex

    async def update_webhook_config(self, org_id: str, repo_name: str, webhook_id: int, config: dict[str, Any]) -> None:
        _logger.debug("updating config of repo webhook '%d' for repo '%s/%s'", webhook_id, org_id, repo_name)

        try:
            await self.requester.request_json("PATCH", f"/repos/{org_id}/{repo_name}/hooks/{webhook_id}/config", config)
            _logger.debug("updated config of repo webhook '%d'", webhook_id)
        except GitHubException as ex:
            raise RuntimeError(f"failed to update config of repo webhook {webhook_id}:\n{ex}") from ex

    async def add_webhook(self, org_id: str, repo_name: str, data: dict[str, Any]) -> None:
        url = data["config"]["url"]
        _logger.debug("adding repo webhook with url '%s' for repo '%s/%s'", url, org_id, repo_name)

        # mandatory field "name" = "web"
        data["name"] = "web"

        try:
            await self.requester.request_json("POST", f"/repos/{org_id}/{repo_name}/hooks", data)
            _logger.debug("added repo webhook with url '%s'", url)
        except GitHubException as ex:
            raise RuntimeError(f"failed to add repo webhook with url '{url}':\n{ex}") from ex

    async def delete_webhook(self, org_id: str, repo_name: str, webhook_id: int, url: str) -> None:
        _logger.debug("deleting repo webhook with url '%s' for repo '%s/%s'", url, org_id, repo_name)
        await self._delete(f"/repos/{org_id}/{repo_name}/hooks/{webhook_id}", f"repo webhook with url '{url}'")
        _logger.debug("removed repo webhook with url '%s'", url)

    async def get_branches(self, org_id: str, repo_name: str) -> list[dict[str, Any]]:
        _logger.debug("retrieving branches for repo '%s/%s'", org_id, repo_name)

        try:
            return await self.requester.request_paged_json("GET", f"/repos/{org_id}/{repo_name}/branches")
        except GitHubException as ex:
            if ex.status == 404:
                return []

            raise RuntimeError(f"failed getting branches for repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def get_branch_protection(self, org_id: str, repo_name: str, branch: str) -> dict[str, Any] | None:
        _logger.debug("retrieving protection of branch '%s' for repo '%s/%s'", branch, org_id, repo_name)

        try:
            return await self.requester.request_json("GET", f"/repos/{org_id}/{repo_name}/branches/{branch}/protection")
        except GitHubException as ex:
            # the branch is not protected
            if ex.status == 404:
                return None

            raise RuntimeError(
                f"failed retrieving protection of branch '{branch}' for repo '{org_id}/{repo_name}':\n{ex}"
            ) from ex

    async def update_branch_protection(self, org_id: str, repo_name: str, branch: str, data: dict[str, Any]) -> None:
        _logger.debug("updating protection of branch '%s' for repo '%s/%s'", branch, org_id, repo_name)

        try:
            await self.requester.request_json("PUT", f"/repos/{org_id}/{repo_name}/branches/{branch}/protection", data)
            _logger.debug("updated protection of branch '%s'", branch)
        except GitHubException as ex:
            raise RuntimeError(f"failed to update protection of branch '{branch}':\n{ex}") from ex

    async def delete_branch_protection(self, org_id: str, repo_name: str, branch: str) -> None:
        _logger.debug("deleting protection of branch '%s' for repo '%s/%s'", branch, org_id, repo_name)
        await self._delete(
            f"/repos/{org_id}/{repo_name}/branches/{branch}/protection", f"protection of branch '{branch}'"
        )
        _logger.debug("removed protection of branch '%s'", branch)

    async def update_signed_commits(self, org_id: str, repo_name: str, branch: str, enabled: bool) -> None:
        _logger.debug(
            "%s required signatures on branch '%s' for repo '%s/%s'",
            "enabling" if enabled else "disabling",
            branch,
            org_id,
            repo_name,
        )

        url_path = f"/repos/{org_id}/{repo_name}/branches/{branch}/protection/required_signatures"

        if enabled is True:
            try:
                await self.requester.request_json("POST", url_path)
            except GitHubException as ex:
                raise RuntimeError(f"failed to enable required signatures on branch '{branch}':\n{ex}") from ex
        else:
            await self._delete(url_path, f"required signatures of branch '{branch}'")

    async def get_rulesets(self, org_id: str, repo_name: str, concurrency: int = 10) -> list[dict[str, Any]]:
        _logger.debug("retrieving rulesets for repo '%s/%s'", org_id, repo_name)

        # the list only contains a summary of each ruleset
        sem = asyncio.Semaphore(concurrency)

        async def _get_ruleset(ruleset_id: str) -> dict[str, Any]:
            async with sem:
                return await self.get_ruleset(org_id, repo_name, ruleset_id)

        try:
            params = {"includes_parents": "false"}
            response = await self.requester.request_paged_json(
                "GET", f"/repos/{org_id}/{repo_name}/rulesets", params=params
            )
        except GitHubException as ex:
            if ex.status == 404:
                return []

            raise RuntimeError(f"failed retrieving rulesets for repo '{org_id}/{repo_name}':\n{ex}") from ex

        try:
            async with asyncio.TaskGroup() as task_group:
                tasks = [task_group.create_task(_get_ruleset(str(ruleset["id"]))) for ruleset in response]
        except ExceptionGroup as eg:
            # the first failure cancelled the remaining retrievals
            raise eg.exceptions[0]

        return [task.result() for task in tasks]

    async def get_ruleset(self, org_id: str, repo_name: str, ruleset_id: str) -> dict[str, Any]:
        _logger.debug("retrieving ruleset '%s' for repo '%s/%s'", ruleset_id, org_id, repo_name)

        try:
            params = {"includes_parents": "false"}
            return await self.requester.request_json(
                "GET", f"/repos/{org_id}/{repo_name}/rulesets/{ruleset_id}", params=params
            )
        except GitHubException as ex:
            raise RuntimeError(f"failed retrieving ruleset for repo '{org_id}/{repo_name}':\n{ex}") from ex

    async def update_ruleset(self, org_id: str, repo_name: str, ruleset_id: int, ruleset: dict[str, Any]) -> None:
        _logger.debug("updating repo ruleset '%d' for repo '%s/%s'", ruleset_id, org_id, repo_name)

        try:
            await self.requester.request_json("PUT", f"/repos/{org_id}/{repo_name}/rulesets/{ruleset_id}", ruleset)
            _logger.debug("updated repo ruleset '%d'", ruleset_id)
        except GitHubException as ex:
            raise RuntimeError(f"failed to update repo ruleset {ruleset_id}:\n{ex}") from ex

    async def add_ruleset(self, org_id: str, repo_name: str, data: dict[str, Any]) -> None:
        name = data["name"]
        _logger.debug("adding repo ruleset with name '%s' for repo '%s/%s'", name, org_id, repo_name)

        try:
            await self.requester.request_json("POST", f"/repos/{org_id}/{repo_name}/rulesets", data)
            _logger.debug("added repo ruleset with name '%s'", name)
        except GitHubException as ex:
            raise RuntimeError(f"failed to add repo ruleset with name '{name}':\n{ex}") from ex

    async def delete_ruleset(self, org_id: str, repo_name: str, ruleset_id: int, name: str) -> None:
        _logger.debug("deleting repo ruleset with name '%s' for repo '%s/%s'", name, org_id, repo_name)
        await self._delete(f"/repos/{org_id}/{repo_name}/rulesets/{ruleset_id}", f"repo ruleset with name '{name}'")
        _logger.debug("removed repo ruleset with name '%s'", name)
