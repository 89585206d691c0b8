#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from jsonbender import F, Forall, OptionalS  # type: ignore

from repokeeper.models import (
    EmbeddedModelObject,
    FailureType,
    LivePatch,
    LivePatchType,
    ModelObject,
    ValidationContext,
)
from repokeeper.utils import UNSET, expect_type, is_set_and_valid, is_unset, normalize_identity, unwrap

if TYPE_CHECKING:
    from repokeeper.providers.github import GitHubProvider

# toggles that GitHub reports wrapped as {"enabled": <bool>}, model name -> provider name
_TOGGLES = {
    "enforce_admins": "enforce_admins",
    "require_linear_history": "required_linear_history",
    "allow_force_pushes": "allow_force_pushes",
    "allow_deletions": "allow_deletions",
    "required_conversation_resolution": "required_conversation_resolution",
    "lock_branch": "lock_branch",
    "allow_fork_syncing": "allow_fork_syncing",
    "require_signed_commits": "required_signatures",
}


def _embedded_from_model(model_type: type[EmbeddedModelObject]):
    def transform(value: Any) -> Any:
        if isinstance(value, Mapping):
            return model_type.from_model_data(value)
        else:
            return value

    return F(transform)


def _embedded_from_provider(model_type: type[EmbeddedModelObject], org_id: str):
    def transform(value: Any) -> Any:
        if isinstance(value, Mapping):
            return model_type.from_provider_data(org_id, value)
        else:
            return value

    return F(transform)


@dataclasses.dataclass
class StatusChecks(EmbeddedModelObject):
    strict: bool
    contexts: list[str]

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        if "contexts" in data:
            contexts = OptionalS("contexts", default=[])
        else:
            contexts = OptionalS("checks", default=[]) >> Forall(lambda x: x["context"])

        return {
            "strict": OptionalS("strict", default=False),
            "contexts": contexts,
        }

    def to_provider_data(self, org_id: str) -> dict[str, Any]:
        return {
            "strict": self.strict if is_set_and_valid(self.strict) else False,
            "contexts": list(self.contexts) if is_set_and_valid(self.contexts) else [],
        }


@dataclasses.dataclass
class ActorAllowances(EmbeddedModelObject):
    """
    Users, teams and apps that are allowed to perform an action, matched case-insensitive.
    """

    users: list[str] = dataclasses.field(metadata={"identity": True})
    teams: list[str] = dataclasses.field(metadata={"identity": True})
    apps: list[str] = dataclasses.field(metadata={"identity": True})

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "users": OptionalS("users", default=[]) >> Forall(lambda x: x["login"]),
            "teams": OptionalS("teams", default=[]) >> Forall(lambda x: x["slug"]),
            "apps": OptionalS("apps", default=[]) >> Forall(lambda x: x["slug"]),
        }

    def to_provider_data(self, org_id: str) -> dict[str, Any]:
        # GitHub requires all three lists to be present, slugs are always lower case
        return {
            "users": list(self.users) if is_set_and_valid(self.users) else [],
            "teams": [normalize_identity(x) for x in self.teams] if is_set_and_valid(self.teams) else [],
            "apps": [normalize_identity(x) for x in self.apps] if is_set_and_valid(self.apps) else [],
        }


@dataclasses.dataclass
class PullRequestReviews(EmbeddedModelObject):
    dismissal_restrictions: ActorAllowances | None = dataclasses.field(metadata={"embedded_model": True})
    bypass_pull_request_allowances: ActorAllowances | None = dataclasses.field(metadata={"embedded_model": True})
    dismiss_stale_reviews: bool
    require_code_owner_reviews: bool
    required_approving_review_count: int
    require_last_push_approval: bool

    def validate(self, context: ValidationContext, parent_object: Any) -> None:
        count = self.required_approving_review_count
        if is_set_and_valid(count) and not 0 <= count <= 6:
            context.add_failure(
                FailureType.ERROR,
                f"{parent_object.get_model_header()} has 'required_approving_review_count' of value '{count}', "
                f"while only values between 0 and 6 are allowed.",
            )

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        mapping = super().get_mapping_from_model()
        for key in ("dismissal_restrictions", "bypass_pull_request_allowances"):
            mapping[key] = OptionalS(key, default=UNSET) >> _embedded_from_model(ActorAllowances)
        return mapping

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "dismissal_restrictions": OptionalS("dismissal_restrictions", default=None)
            >> _embedded_from_provider(ActorAllowances, org_id),
            "bypass_pull_request_allowances": OptionalS("bypass_pull_request_allowances", default=None)
            >> _embedded_from_provider(ActorAllowances, org_id),
            "dismiss_stale_reviews": OptionalS("dismiss_stale_reviews", default=False),
            "require_code_owner_reviews": OptionalS("require_code_owner_reviews", default=False),
            "required_approving_review_count": OptionalS("required_approving_review_count", default=0),
            "require_last_push_approval": OptionalS("require_last_push_approval", default=False),
        }

    def to_provider_data(self, org_id: str) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in self.keys(exclude_unset_keys=True):
            value = self.__getattribute__(key)
            if isinstance(value, ActorAllowances):
                result[key] = value.to_provider_data(org_id)
            elif value is not None:
                result[key] = value
        return result


@dataclasses.dataclass
class BranchProtectionRule(ModelObject):
    """
    Represents the protection of a single branch within a Repository.
    """

    branch: str = dataclasses.field(metadata={"key": True})

    enforce_admins: bool
    require_linear_history: bool
    allow_force_pushes: bool
    allow_deletions: bool
    required_conversation_resolution: bool
    lock_branch: bool
    allow_fork_syncing: bool
    require_signed_commits: bool

    required_status_checks: StatusChecks | None = dataclasses.field(metadata={"embedded_model": True})
    restrictions: ActorAllowances | None = dataclasses.field(metadata={"embedded_model": True})
    required_pull_request_reviews: PullRequestReviews | None = dataclasses.field(metadata={"embedded_model": True})

    @property
    def model_object_name(self) -> str:
        return "branch_protection_rule"

    def validate(self, context: ValidationContext, parent_object: Any) -> None:
        if is_unset(self.branch) or not self.branch:
            context.add_failure(
                FailureType.ERROR,
                f"{self.get_model_header(parent_object)} has no 'branch' defined.",
            )

        if is_set_and_valid(self.required_pull_request_reviews):
            self.required_pull_request_reviews.validate(context, self)

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        mapping = super().get_mapping_from_model()
        mapping.update(
            {
                "required_status_checks": OptionalS("required_status_checks", default=UNSET)
                >> _embedded_from_model(StatusChecks),
                "restrictions": OptionalS("restrictions", default=UNSET) >> _embedded_from_model(ActorAllowances),
                "required_pull_request_reviews": OptionalS("required_pull_request_reviews", default=UNSET)
                >> _embedded_from_model(PullRequestReviews),
            }
        )
        return mapping

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        # a toggle that is not reported is disabled, a missing nested object is not configured
        mapping: dict[str, Any] = {"branch": OptionalS("branch", default=UNSET)}

        for model_key, provider_key in _TOGGLES.items():
            mapping[model_key] = OptionalS(provider_key, "enabled", default=False)

        mapping.update(
            {
                "required_status_checks": OptionalS("required_status_checks", default=None)
                >> _embedded_from_provider(StatusChecks, org_id),
                "restrictions": OptionalS("restrictions", default=None)
                >> _embedded_from_provider(ActorAllowances, org_id),
                "required_pull_request_reviews": OptionalS("required_pull_request_reviews", default=None)
                >> _embedded_from_provider(PullRequestReviews, org_id),
            }
        )
        return mapping

    def to_provider_data(self, org_id: str) -> dict[str, Any]:
        """
        Returns the document for a full update of the branch protection.

        The four nested settings are mandatory for GitHub and are sent as null when not configured,
        require_signed_commits is not part of the document as it uses a separate endpoint.
        """

        def embedded_or_none(value: Any) -> Any:
            if isinstance(value, EmbeddedModelObject):
                return value.to_provider_data(org_id)
            else:
                return None

        data: dict[str, Any] = {
            "required_status_checks": embedded_or_none(self.required_status_checks),
            "enforce_admins": self.enforce_admins if is_set_and_valid(self.enforce_admins) else None,
            "required_pull_request_reviews": embedded_or_none(self.required_pull_request_reviews),
            "restrictions": embedded_or_none(self.restrictions),
        }

        for model_key, provider_key in _TOGGLES.items():
            if model_key in ("enforce_admins", "require_signed_commits"):
                continue

            value = self.__getattribute__(model_key)
            if is_set_and_valid(value):
                data[provider_key] = value

        return data

    @classmethod
    async def apply_live_patch(
        cls,
        patch: LivePatch[BranchProtectionRule],
        org_id: str,
        provider: GitHubProvider,
    ) -> None:
        from .repository import Repository

        repository = expect_type(patch.parent_object, Repository)

        match patch.patch_type:
            case LivePatchType.ADD:
                expected_object = unwrap(patch.expected_object)
                await provider.update_branch_protection(
                    org_id, repository.name, expected_object.branch, expected_object.to_provider_data(org_id)
                )

                if is_set_and_valid(expected_object.require_signed_commits):
                    await provider.update_signed_commits(
                        org_id, repository.name, expected_object.branch, expected_object.require_signed_commits
                    )

            case LivePatchType.REMOVE:
                await provider.delete_branch_protection(org_id, repository.name, unwrap(patch.current_object).branch)

            case LivePatchType.CHANGE:
                expected_object = unwrap(patch.expected_object)
                current_object = unwrap(patch.current_object)
                changes = unwrap(patch.changes)

                if any(key != "require_signed_commits" for key in changes):
                    merged_object = expected_object.merged_with(current_object)
                    await provider.update_branch_protection(
                        org_id, repository.name, current_object.branch, merged_object.to_provider_data(org_id)
                    )

                if "require_signed_commits" in changes:
                    await provider.update_signed_commits(
                        org_id, repository.name, current_object.branch, expected_object.require_signed_commits
                    )
