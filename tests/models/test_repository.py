#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

import asyncio
from collections.abc import Mapping
from typing import Any

import pretend  # type: ignore
import pytest

from repokeeper.models import FetchError, LivePatch, LivePatchType, MalformedInputError, ModelObject
from repokeeper.models.branch_protection_rule import BranchProtectionRule
from repokeeper.models.permission import CollaboratorPermission
from repokeeper.models.repository import CATEGORIES, Repository, category_of
from repokeeper.models.webhook import RepositoryWebhook
from repokeeper.utils import UNSET, Change

from . import ModelTest, current_repository


class RepositoryTest(ModelTest):
    def create_model(self, data: Mapping[str, Any]) -> ModelObject:
        return Repository.from_model_data(data)

    @property
    def model_data(self):
        return self.load_json_resource("repokeeper-repo.json")

    @property
    def provider_data(self):
        return self.load_json_resource("github-repo.json")

    def collect_patches(self, expected: Repository, current: Repository | None) -> list[LivePatch]:
        patches: list[LivePatch] = []
        Repository.generate_live_patch(expected, current, None, patches.append)
        return patches

    def test_load_from_model(self):
        repo = Repository.from_model_data(self.model_data)

        assert repo.name == "test-repo"
        assert repo.description == "desc"
        assert repo.archived is False
        assert repo.private is True
        assert repo.is_template is False
        assert repo.branches is UNSET

        assert len(repo.collaborators) == 2
        assert isinstance(repo.collaborators[0], CollaboratorPermission)
        assert repo.teams[0].slug == "TEST-TEAM-1"
        assert isinstance(repo.webhooks[0], RepositoryWebhook)
        assert repo.branch_protection_rules[0].branch == "main"
        assert repo.rulesets[0].name == "test-ruleset-1"

    def test_load_from_provider(self):
        repo = Repository.from_provider_data(self.org_id, self.provider_data)

        assert repo.name == "test-repo"
        assert repo.description == "desc"
        assert repo.private is True
        assert repo.archived is False

        for category in CATEGORIES:
            assert repo.get_collection(category) is UNSET

    def test_missing_description_is_empty(self):
        data = self.provider_data
        data["description"] = None

        repo = Repository.from_provider_data(self.org_id, data)
        expected = Repository.from_model_data({"name": "test-repo", "description": None})

        assert repo.description == ""
        assert expected.get_difference_from(repo) == {}

    def test_managed_categories(self):
        repo = Repository.from_model_data({"name": "test-repo", "webhooks": [], "collaborators": []})

        assert repo.managed_categories() == ["permissions_users", "webhooks"]

    def test_category_of(self):
        repo = Repository.from_model_data(self.model_data)

        assert category_of(repo.teams[0]) == "permissions_teams"
        assert category_of(repo.rulesets[0]) == "rulesets"
        assert category_of(repo) is None

    def test_to_provider(self):
        repo = Repository.from_model_data(self.model_data)

        provider_data = repo.to_provider_data(self.org_id)

        assert provider_data == {
            "name": "test-repo",
            "description": "desc",
            "archived": False,
            "private": True,
            "is_template": False,
        }

    def test_check(self):
        Repository.from_model_data(self.model_data).check()

    def test_check_duplicate_keys(self):
        data = self.model_data
        data["collaborators"].append({"login": "Test-User-1", "role": "pull"})

        with pytest.raises(MalformedInputError) as exc_info:
            Repository.from_model_data(data).check()

        assert len(exc_info.value.failures) == 1
        assert "defined more than once" in exc_info.value.failures[0]

    def test_check_invalid_sub_resources(self):
        data = self.model_data
        data["webhooks"][0]["content_type"] = "xml"
        data["teams"][0]["role"] = "owner"

        with pytest.raises(MalformedInputError) as exc_info:
            Repository.from_model_data(data).check()

        assert len(exc_info.value.failures) == 2

    def test_up_to_date(self):
        patches = self.collect_patches(Repository.from_model_data(self.model_data), current_repository())

        assert patches == []

    def test_create(self):
        patches = self.collect_patches(Repository.from_model_data(self.model_data), None)

        assert [x.patch_type for x in patches] == [LivePatchType.ADD] * 8
        assert isinstance(patches[0].model_object, Repository)
        assert all(x.parent_object is patches[0].model_object for x in patches[1:])

    def test_create_archived(self):
        data = self.model_data
        data["archived"] = True

        patches = self.collect_patches(Repository.from_model_data(data), None)

        assert patches[0].patch_type == LivePatchType.ADD
        assert patches[0].model_object.archived is UNSET
        assert patches[0].changes_object_to_readonly is False

        assert patches[1].patch_type == LivePatchType.CHANGE
        assert patches[1].changes == {"archived": Change(False, True)}
        assert patches[1].changes_object_to_readonly is True

    def test_archive(self):
        data = self.model_data
        data["archived"] = True
        data["description"] = "archived repo"

        patches = self.collect_patches(Repository.from_model_data(data), current_repository())

        assert len(patches) == 2
        assert patches[0].changes == {"description": Change("desc", "archived repo")}
        assert patches[0].changes_object_to_readonly is False
        assert patches[1].changes == {"archived": Change(False, True)}
        assert patches[1].changes_object_to_readonly is True

    def test_archived_repository_skips_protections(self):
        data = self.model_data
        del data["archived"]
        data["rulesets"] = []
        data["branch_protection_rules"] = []

        current = current_repository()
        current.archived = True

        assert self.collect_patches(Repository.from_model_data(data), current) == []

    def test_unarchive(self):
        data = self.model_data
        data["branch_protection_rules"] = []

        current = current_repository()
        current.archived = True

        patches = self.collect_patches(Repository.from_model_data(data), current)

        assert [(x.patch_type, type(x.model_object)) for x in patches] == [
            (LivePatchType.CHANGE, Repository),
            (LivePatchType.REMOVE, BranchProtectionRule),
        ]
        assert patches[0].changes == {"archived": Change(True, False)}
        assert patches[0].changes_object_to_readonly is False

    def test_category_not_retrieved(self):
        current = Repository.from_provider_data(self.org_id, self.provider_data)

        with pytest.raises(RuntimeError):
            self.collect_patches(Repository.from_model_data(self.model_data), current)

    def test_delete_not_supported(self):
        with pytest.raises(RuntimeError):
            Repository.generate_live_patch(None, current_repository(), None, lambda x: None)

    async def test_apply(self):
        async def add_repo(org_id, data):
            pass

        async def update_repo(org_id, repo_name, data):
            pass

        provider = pretend.stub(
            add_repo=pretend.call_recorder(add_repo),
            update_repo=pretend.call_recorder(update_repo),
        )

        expected = Repository.from_model_data({"name": "test-repo", "private": False, "archived": True})

        for patch in self.collect_patches(expected, current_repository()):
            await patch.apply(self.org_id, provider)

        for patch in self.collect_patches(expected, None):
            await patch.apply(self.org_id, provider)

        assert provider.update_repo.calls == [
            pretend.call(self.org_id, "test-repo", {"private": False}),
            pretend.call(self.org_id, "test-repo", {"archived": True}),
            pretend.call(self.org_id, "test-repo", {"archived": True}),
        ]
        assert provider.add_repo.calls == [pretend.call(self.org_id, {"name": "test-repo", "private": False})]


class _StubProvider:
    def __init__(self, repo_data, branches=None, fail_on=None):
        self.repo_data = repo_data
        self.branches = branches if branches is not None else []
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def _record(self, name: str, result):
        self.calls.append(name)
        if name == self.fail_on:
            raise RuntimeError(f"failure in {name}")
        return result

    async def get_repo_data(self, org_id, repo_name):
        return await self._record("repo", self.repo_data)

    async def get_repo_collaborators(self, org_id, repo_name):
        return await self._record("collaborators", ModelTest.load_json_resource("github-collaborators.json"))

    async def get_repo_teams(self, org_id, repo_name):
        return await self._record("teams", ModelTest.load_json_resource("github-teams.json"))

    async def get_repo_webhooks(self, org_id, repo_name):
        return await self._record("webhooks", [ModelTest.load_json_resource("github-webhook.json")])

    async def get_branches(self, org_id, repo_name):
        return await self._record("branches", self.branches)

    async def get_branch_protection(self, org_id, repo_name, branch):
        return await self._record(f"protection:{branch}", ModelTest.load_json_resource("github-branch-protection.json"))

    async def get_repo_rulesets(self, org_id, repo_name):
        return await self._record("rulesets", [ModelTest.load_json_resource("github-ruleset.json")])


class RepositoryLoadTest(ModelTest):
    def create_model(self, data: Mapping[str, Any]) -> ModelObject:
        return Repository.from_model_data(data)

    @property
    def model_data(self):
        return self.load_json_resource("repokeeper-repo.json")

    @property
    def provider_data(self):
        return self.load_json_resource("github-repo.json")

    async def test_load_everything(self):
        provider = _StubProvider(
            self.provider_data,
            branches=[{"name": "main", "protected": True}, {"name": "feature", "protected": False}],
        )

        repo = await Repository.load_from_provider(self.org_id, "test-repo", provider)

        assert repo is not None
        assert repo.branches == ["main", "feature"]
        assert len(repo.collaborators) == 2
        assert len(repo.teams) == 2
        assert len(repo.webhooks) == 1
        assert [x.branch for x in repo.branch_protection_rules] == ["main"]
        assert repo.rulesets[0].id == 123
        assert "protection:feature" not in provider.calls

        patches: list[LivePatch] = []
        Repository.generate_live_patch(Repository.from_model_data(self.model_data), repo, None, patches.append)
        assert patches == []

    async def test_load_requested_categories(self):
        provider = _StubProvider(self.provider_data)

        repo = await Repository.load_from_provider(self.org_id, "test-repo", provider, ["webhooks"])

        assert repo is not None
        assert provider.calls == ["repo", "webhooks"]
        assert repo.collaborators is UNSET
        assert repo.rulesets is UNSET
        assert len(repo.webhooks) == 1

    async def test_load_missing_repository(self):
        provider = _StubProvider(None)

        assert await Repository.load_from_provider(self.org_id, "test-repo", provider) is None
        assert provider.calls == ["repo"]

    async def test_load_failure(self):
        provider = _StubProvider(self.provider_data, fail_on="teams")

        with pytest.raises(FetchError) as exc_info:
            await Repository.load_from_provider(self.org_id, "test-repo", provider)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert str(exc_info.value.__cause__) == "failure in teams"

    async def test_load_failure_of_repository(self):
        provider = _StubProvider(self.provider_data, fail_on="repo")

        with pytest.raises(FetchError):
            await Repository.load_from_provider(self.org_id, "test-repo", provider)

    async def test_load_failure_cancels_other_protections(self):
        class _BlockingProvider(_StubProvider):
            def __init__(self, repo_data):
                branches = [{"name": "main", "protected": True}, {"name": "develop", "protected": True}]
                super().__init__(repo_data, branches=branches, fail_on="protection:develop")
                self.started = asyncio.Event()
                self.cancelled: list[str] = []

            async def get_branch_protection(self, org_id, repo_name, branch):
                if branch == "main":
                    self.started.set()
                    try:
                        await asyncio.Event().wait()
                    except asyncio.CancelledError:
                        self.cancelled.append(branch)
                        raise

                await self.started.wait()
                return await super().get_branch_protection(org_id, repo_name, branch)

        provider = _BlockingProvider(self.provider_data)

        with pytest.raises(FetchError) as exc_info:
            await Repository.load_from_provider(self.org_id, "test-repo", provider, ["branch_protection_rules"])

        assert str(exc_info.value.__cause__) == "failure in protection:develop"
        assert provider.cancelled == ["main"]
