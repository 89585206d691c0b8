#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import abc
import dataclasses
from typing import TYPE_CHECKING, Any

from jsonbender import F, OptionalS  # type: ignore

from repokeeper.models import LivePatch, LivePatchType, ModelObject, ValidationContext
from repokeeper.utils import UNSET, expect_type, is_set_and_valid, normalize_identity, unwrap

if TYPE_CHECKING:
    from collections.abc import Mapping

    from repokeeper.providers.github import GitHubProvider

# ordered from the least to the most privileged role
ROLES = ("pull", "triage", "push", "maintain", "admin")

_ROLE_ALIASES = {
    "read": "pull",
    "write": "push",
}


def normalize_role(role: Any) -> Any:
    if isinstance(role, str):
        role = role.lower()
        return _ROLE_ALIASES.get(role, role)
    else:
        return role


def highest_role(permissions: Mapping[str, bool]) -> Any:
    """Returns the most privileged role that is granted in a permissions map."""
    for role in reversed(ROLES):
        if permissions.get(role, False) is True:
            return role

    return UNSET


def _role_of_collaborator(data: Mapping[str, Any]) -> Any:
    role_name = data.get("role_name")
    if role_name is not None:
        return normalize_role(role_name)

    return highest_role(data.get("permissions") or {})


@dataclasses.dataclass
class Permission(ModelObject, abc.ABC):
    """
    Base class for the access permissions of users and teams on a repository.
    """

    def validate(self, context: ValidationContext, parent_object: Any) -> None:
        context.check_value_in(self, parent_object, "role", ROLES)


@dataclasses.dataclass
class CollaboratorPermission(Permission):
    """
    Represents the role of a directly added collaborator.
    """

    login: str = dataclasses.field(metadata={"key": True})
    role: str

    @property
    def model_object_name(self) -> str:
        return "collaborator"

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        return {
            "login": OptionalS("login", default=UNSET),
            "role": OptionalS("role", default=UNSET) >> F(normalize_role),
        }

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "login": OptionalS("login", default=UNSET),
            "role": F(_role_of_collaborator),
        }

    @classmethod
    async def apply_live_patch(
        cls,
        patch: LivePatch[CollaboratorPermission],
        org_id: str,
        provider: GitHubProvider,
    ) -> None:
        from .repository import Repository

        repository = expect_type(patch.parent_object, Repository)

        match patch.patch_type:
            case LivePatchType.ADD:
                expected_object = unwrap(patch.expected_object)
                await provider.add_repo_collaborator(
                    org_id, repository.name, expected_object.login, expected_object.role
                )

            case LivePatchType.REMOVE:
                await provider.remove_repo_collaborator(org_id, repository.name, unwrap(patch.current_object).login)

            case LivePatchType.CHANGE:
                await provider.add_repo_collaborator(
                    org_id,
                    repository.name,
                    unwrap(patch.current_object).login,
                    unwrap(patch.expected_object).role,
                )


@dataclasses.dataclass
class TeamPermission(Permission):
    """
    Represents the role of a team on a repository.
    """

    slug: str = dataclasses.field(metadata={"key": True})
    role: str

    @property
    def model_object_name(self) -> str:
        return "team_permission"

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        return {
            "slug": OptionalS("slug", default=UNSET),
            "role": OptionalS("role", default=UNSET) >> F(normalize_role),
        }

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "slug": OptionalS("slug", default=UNSET),
            "role": OptionalS("permission", default=UNSET) >> F(normalize_role),
        }

    @classmethod
    async def apply_live_patch(
        cls,
        patch: LivePatch[TeamPermission],
        org_id: str,
        provider: GitHubProvider,
    ) -> None:
        from .repository import Repository

        repository = expect_type(patch.parent_object, Repository)

        match patch.patch_type:
            case LivePatchType.ADD:
                expected_object = unwrap(patch.expected_object)
                # team slugs are always lower case on GitHub
                slug = normalize_identity(expected_object.slug)
                await provider.add_repo_team(org_id, repository.name, slug, expected_object.role)

            case LivePatchType.REMOVE:
                await provider.remove_repo_team(org_id, repository.name, unwrap(patch.current_object).slug)

            case LivePatchType.CHANGE:
                role = unwrap(patch.expected_object).role
                if is_set_and_valid(role):
                    await provider.update_repo_team(org_id, repository.name, unwrap(patch.current_object).slug, role)
