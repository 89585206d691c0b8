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
from typing import TYPE_CHECKING, Any

import asyncer
from jsonbender import F, OptionalS  # type: ignore

from repokeeper.logging import get_logger
from repokeeper.models import (
    FailureType,
    FetchError,
    LivePatch,
    LivePatchHandler,
    LivePatchType,
    MalformedInputError,
    ModelObject,
    ValidationContext,
)
from repokeeper.models.branch_protection_rule import BranchProtectionRule
from repokeeper.models.permission import CollaboratorPermission, TeamPermission
from repokeeper.models.ruleset import RepositoryRuleset
from repokeeper.models.webhook import RepositoryWebhook
from repokeeper.utils import UNSET, Change, debug_times, is_unset, unwrap

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from repokeeper.providers.github import GitHubProvider

_logger = get_logger(__name__)

# sub-resource categories in the order they are compared and planned,
# category name -> (attribute of the repository, model type of its entries)
CATEGORIES: dict[str, tuple[str, type[ModelObject]]] = {
    "permissions_users": ("collaborators", CollaboratorPermission),
    "permissions_teams": ("teams", TeamPermission),
    "webhooks": ("webhooks", RepositoryWebhook),
    "branch_protection_rules": ("branch_protection_rules", BranchProtectionRule),
    "rulesets": ("rulesets", RepositoryRuleset),
}

# categories that can not be modified while a repository is archived
_WRITABLE_ONLY_IF_ACTIVE = ("branch_protection_rules", "rulesets")


def category_of(model_object: ModelObject) -> str | None:
    """Returns the category of a sub-resource, or None for the repository itself."""
    for category, (_, model_type) in CATEGORIES.items():
        if isinstance(model_object, model_type):
            return category

    return None


def _single_cause(ex: BaseException) -> BaseException:
    while isinstance(ex, BaseExceptionGroup) and len(ex.exceptions) == 1:
        ex = ex.exceptions[0]
    return ex


def _description(value: Any) -> Any:
    # GitHub reports a missing description as null, an empty description is equivalent
    if value is None:
        return ""
    else:
        return value


@dataclasses.dataclass
class Repository(ModelObject):
    """
    Represents a Repository together with the sub-resources it owns.
    """

    name: str = dataclasses.field(metadata={"key": True})
    description: str
    archived: bool
    private: bool
    is_template: bool

    collaborators: list[CollaboratorPermission] = dataclasses.field(metadata={"nested_model": True})
    teams: list[TeamPermission] = dataclasses.field(metadata={"nested_model": True})
    webhooks: list[RepositoryWebhook] = dataclasses.field(metadata={"nested_model": True})
    branch_protection_rules: list[BranchProtectionRule] = dataclasses.field(metadata={"nested_model": True})
    rulesets: list[RepositoryRuleset] = dataclasses.field(metadata={"nested_model": True})

    # names of the branches that exist remotely
    branches: list[str] = dataclasses.field(metadata={"read_only": True})

    @property
    def model_object_name(self) -> str:
        return "repository"

    def get_collection(self, category: str) -> Any:
        attribute, _ = CATEGORIES[category]
        return self.__getattribute__(attribute)

    def managed_categories(self) -> list[str]:
        """Returns the categories this repository defines, an unset collection is not managed."""
        return [category for category in CATEGORIES if not is_unset(self.get_collection(category))]

    def validate(self, context: ValidationContext, parent_object: Any) -> None:
        if is_unset(self.name) or not self.name:
            context.add_failure(FailureType.ERROR, f"{self.get_model_header()} has no 'name' defined.")

        for category in self.managed_categories():
            model_objects = self.get_collection(category)
            context.check_unique_keys(model_objects, self)

            for model_object in model_objects:
                model_object.validate(context, self)

    def check(self) -> None:
        """
        Validates the repository and all its sub-resources, raises a MalformedInputError
        listing every error found.
        """
        context = ValidationContext(self)
        self.validate(context, None)

        for failure_type, message in context.validation_failures:
            if failure_type == FailureType.WARNING:
                _logger.warning(message)

        errors = context.errors
        if len(errors) > 0:
            raise MalformedInputError(errors)

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        mapping = super().get_mapping_from_model()

        mapping["description"] = OptionalS("description", default=UNSET) >> F(_description)
        mapping["branches"] = F(lambda _: UNSET)

        for attribute, model_type in CATEGORIES.values():
            mapping[attribute] = OptionalS(attribute, default=UNSET) >> F(
                lambda x, t=model_type: [t.from_model_data(y) for y in x] if isinstance(x, list) else x
            )

        return mapping

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        mapping: dict[str, Any] = {
            "name": OptionalS("name", default=UNSET),
            "description": OptionalS("description", default="") >> F(_description),
            "archived": OptionalS("archived", default=False),
            "private": OptionalS("private", default=False),
            "is_template": OptionalS("is_template", default=False),
            "branches": F(lambda _: UNSET),
        }

        # collections are populated separately, only when being requested
        for attribute, _ in CATEGORIES.values():
            mapping[attribute] = F(lambda _: UNSET)

        return mapping

    @classmethod
    @debug_times("repository")
    async def load_from_provider(
        cls,
        org_id: str,
        repo_name: str,
        provider: GitHubProvider,
        categories: Iterable[str] | None = None,
        concurrency: int = 10,
    ) -> Repository | None:
        """
        Retrieves the current state of a repository.

        Returns None if the repository does not exist. Only the requested categories are
        retrieved, concurrently, the collections of the remaining categories stay unset.
        Any failure aborts the whole retrieval and is raised as FetchError.
        """
        requested = list(CATEGORIES) if categories is None else [c for c in CATEGORIES if c in categories]

        try:
            github_repo_data = await provider.get_repo_data(org_id, repo_name)
        except Exception as ex:
            raise FetchError(f"failed retrieving repository '{org_id}/{repo_name}'") from ex

        if github_repo_data is None:
            _logger.debug("repository '%s/%s' does not exist", org_id, repo_name)
            return None

        repo = cls.from_provider_data(org_id, github_repo_data)
        sem = asyncio.Semaphore(concurrency)

        @debug_times("collaborators")
        async def _load_collaborators() -> None:
            github_collaborators = await provider.get_repo_collaborators(org_id, repo_name)
            repo.collaborators = [CollaboratorPermission.from_provider_data(org_id, x) for x in github_collaborators]

        @debug_times("teams")
        async def _load_teams() -> None:
            github_teams = await provider.get_repo_teams(org_id, repo_name)
            repo.teams = [TeamPermission.from_provider_data(org_id, x) for x in github_teams]

        @debug_times("webhooks")
        async def _load_webhooks() -> None:
            github_webhooks = await provider.get_repo_webhooks(org_id, repo_name)
            repo.webhooks = [RepositoryWebhook.from_provider_data(org_id, x) for x in github_webhooks]

        @debug_times("branch protection rules")
        async def _load_branch_protection_rules() -> None:
            github_branches = await provider.get_branches(org_id, repo_name)
            repo.branches = [branch["name"] for branch in github_branches]

            async def _load_protection(branch_name: str) -> BranchProtectionRule | None:
                async with sem:
                    github_protection = await provider.get_branch_protection(org_id, repo_name, branch_name)

                if github_protection is None:
                    return None
                else:
                    return BranchProtectionRule.from_provider_data(org_id, {**github_protection, "branch": branch_name})

            protected_branches = [branch["name"] for branch in github_branches if branch.get("protected", False)]
            async with asyncer.create_task_group() as task_group:
                rules = [task_group.soonify(_load_protection)(x) for x in protected_branches]

            repo.branch_protection_rules = [rule.value for rule in rules if rule.value is not None]

        @debug_times("rulesets")
        async def _load_rulesets() -> None:
            github_rulesets = await provider.get_repo_rulesets(org_id, repo_name)
            repo.rulesets = [RepositoryRuleset.from_provider_data(org_id, x) for x in github_rulesets]

        loaders = {
            "permissions_users": _load_collaborators,
            "permissions_teams": _load_teams,
            "webhooks": _load_webhooks,
            "branch_protection_rules": _load_branch_protection_rules,
            "rulesets": _load_rulesets,
        }

        try:
            async with asyncer.create_task_group() as task_group:
                for category in requested:
                    task_group.soonify(loaders[category])()
        except Exception as ex:
            raise FetchError(
                f"failed retrieving the current state of repository '{org_id}/{repo_name}'"
            ) from _single_cause(ex)

        return repo

    def categories_to_compare(self, current_object: Repository | None) -> list[str]:
        categories = self.managed_categories()

        # an archived repository is read-only, if it gets archived now this happens last
        if current_object is not None and current_object.archived is True and self.archived is not False:
            return [c for c in categories if c not in _WRITABLE_ONLY_IF_ACTIVE]

        return categories

    def generate_settings_patches(self, current_object: Repository | None, handler: LivePatchHandler) -> None:
        """
        Emits the patches for the scalar settings of this repository (creation or edit).

        Switching a repository to archived is emitted as a separate patch that changes the object
        to read-only, as an archived repository rejects any further modification.
        """
        if current_object is None:
            if self.archived is True:
                handler(LivePatch.of_addition(dataclasses.replace(self, archived=UNSET), None, self.apply_live_patch))
                handler(self._archive_patch(self, Change(False, True)))
            else:
                handler(LivePatch.of_addition(self, None, self.apply_live_patch))
            return

        changes = self.get_difference_from(current_object)

        archive_change = changes.get("archived")
        if archive_change is not None and archive_change.from_value is not True and archive_change.to_value is True:
            changes.pop("archived")
        else:
            archive_change = None

        if len(changes) > 0:
            handler(LivePatch.of_changes(self, current_object, changes, None, self.apply_live_patch))

        if archive_change is not None:
            handler(self._archive_patch(current_object, archive_change))

    def _archive_patch(self, current_object: Repository, change: Change) -> LivePatch:
        return LivePatch.of_changes(
            self,
            current_object,
            {"archived": change},
            None,
            self.apply_live_patch,
            changes_object_to_readonly=True,
        )

    def generate_category_patches(
        self,
        category: str,
        current_object: Repository | None,
        handler: LivePatchHandler,
    ) -> None:
        """Emits the patches of one sub-resource category: additions, then changes, then removals."""
        _, model_type = CATEGORIES[category]
        expected_objects = self.get_collection(category)

        if is_unset(expected_objects):
            return

        if current_object is None:
            current_objects = []
        else:
            current_objects = current_object.get_collection(category)
            if is_unset(current_objects):
                raise RuntimeError(f"current state of category '{category}' for repo '{self.name}' was not retrieved")

        model_type.generate_live_patch_of_list(expected_objects, current_objects, self, handler)

    @classmethod
    def generate_live_patch(
        cls,
        expected_object: Repository | None,
        current_object: Repository | None,
        parent_object: ModelObject | None,
        handler: LivePatchHandler,
    ) -> None:
        if expected_object is None:
            raise RuntimeError("deleting a repository is not supported")

        expected_object.generate_settings_patches(current_object, handler)

        for category in expected_object.categories_to_compare(current_object):
            expected_object.generate_category_patches(category, current_object, handler)

    @classmethod
    async def apply_live_patch(
        cls,
        patch: LivePatch[Repository],
        org_id: str,
        provider: GitHubProvider,
    ) -> None:
        match patch.patch_type:
            case LivePatchType.ADD:
                await provider.add_repo(org_id, unwrap(patch.expected_object).to_provider_data(org_id))

            case LivePatchType.REMOVE:
                raise RuntimeError("deleting a repository is not supported")

            case LivePatchType.CHANGE:
                github_settings = cls.changes_to_provider(org_id, unwrap(patch.changes))
                await provider.update_repo(org_id, unwrap(patch.current_object).name, github_settings)

