#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from collections.abc import Mapping
from typing import Any

import pretend  # type: ignore
import pytest

from repokeeper.models import LivePatch, LivePatchType, ModelObject, ValidationContext
from repokeeper.models.permission import CollaboratorPermission, TeamPermission, highest_role, normalize_role
from repokeeper.utils import UNSET, Change

from . import ModelTest


async def _noop(*args):
    pass


@pytest.mark.parametrize(
    "role,expected",
    [
        ("read", "pull"),
        ("Write", "push"),
        ("ADMIN", "admin"),
        ("maintain", "maintain"),
        (UNSET, UNSET),
    ],
)
def test_normalize_role(role, expected):
    assert normalize_role(role) == expected


def test_highest_role():
    assert highest_role({"admin": False, "maintain": True, "push": True, "triage": True, "pull": True}) == "maintain"
    assert highest_role({"pull": True}) == "pull"
    assert highest_role({}) is UNSET


class CollaboratorPermissionTest(ModelTest):
    def create_model(self, data: Mapping[str, Any]) -> ModelObject:
        return CollaboratorPermission.from_model_data(data)

    @property
    def model_data(self):
        return {"login": "test-user-2", "role": "read"}

    @property
    def provider_data(self):
        return self.load_json_resource("github-collaborators.json")

    def test_load_from_model(self):
        collaborator = CollaboratorPermission.from_model_data(self.model_data)

        assert collaborator.login == "test-user-2"
        assert collaborator.role == "pull"

    def test_load_from_provider(self):
        collaborators = [CollaboratorPermission.from_provider_data(self.org_id, x) for x in self.provider_data]

        assert collaborators == [
            CollaboratorPermission(login="test-user-1", role="admin"),
            CollaboratorPermission(login="test-user-2", role="pull"),
        ]

    def test_load_from_provider_without_role_name(self):
        data = self.provider_data[1]
        data.pop("role_name")
        data["permissions"]["push"] = True

        collaborator = CollaboratorPermission.from_provider_data(self.org_id, data)

        assert collaborator.role == "push"

    def test_logins_are_matched_case_insensitive(self):
        expected = [CollaboratorPermission.from_model_data({"login": "TEST-USER-1", "role": "admin"})]
        current = [CollaboratorPermission.from_provider_data(self.org_id, x) for x in self.provider_data]

        patches: list[LivePatch] = []
        CollaboratorPermission.generate_live_patch_of_list(expected, current, self.repository, patches.append)

        assert len(patches) == 1
        assert patches[0].patch_type == LivePatchType.REMOVE
        assert patches[0].model_object.login == "test-user-2"

    def test_difference(self):
        expected = CollaboratorPermission.from_model_data({"login": "test-user-2", "role": "triage"})
        current = CollaboratorPermission.from_provider_data(self.org_id, self.provider_data[1])

        assert expected.get_difference_from(current) == {"role": Change("pull", "triage")}

    def test_validate(self):
        collaborator = CollaboratorPermission.from_model_data({"login": "test-user-2", "role": "owner"})

        context = ValidationContext(None)
        collaborator.validate(context, self.repository)

        assert len(context.errors) == 1
        assert "'role' of value 'owner'" in context.errors[0]

    async def test_apply(self):
        provider = pretend.stub(
            add_repo_collaborator=pretend.call_recorder(_noop),
            remove_repo_collaborator=pretend.call_recorder(_noop),
        )

        expected = CollaboratorPermission.from_model_data({"login": "TEST-USER-2", "role": "push"})
        current = CollaboratorPermission.from_provider_data(self.org_id, self.provider_data[1])

        for patch in self.generate_patches(expected, current):
            await patch.apply(self.org_id, provider)

        for patch in self.generate_patches(None, current):
            await patch.apply(self.org_id, provider)

        assert provider.add_repo_collaborator.calls == [pretend.call(self.org_id, "test-repo", "test-user-2", "push")]
        assert provider.remove_repo_collaborator.calls == [pretend.call(self.org_id, "test-repo", "test-user-2")]


class TeamPermissionTest(ModelTest):
    def create_model(self, data: Mapping[str, Any]) -> ModelObject:
        return TeamPermission.from_model_data(data)

    @property
    def model_data(self):
        return {"slug": "TEST-TEAM-2", "role": "pull"}

    @property
    def provider_data(self):
        return self.load_json_resource("github-teams.json")

    def test_load_from_provider(self):
        teams = [TeamPermission.from_provider_data(self.org_id, x) for x in self.provider_data]

        assert teams == [
            TeamPermission(slug="test-team-1", role="admin"),
            TeamPermission(slug="test-team-2", role="pull"),
        ]

    def test_no_difference_to_provider(self):
        expected = [TeamPermission.from_model_data(self.model_data)]
        current = [TeamPermission.from_provider_data(self.org_id, self.provider_data[1])]

        patches: list[LivePatch] = []
        TeamPermission.generate_live_patch_of_list(expected, current, self.repository, patches.append)

        assert patches == []

    def test_patch_order(self):
        expected = [
            TeamPermission.from_model_data({"slug": "test-team-3", "role": "push"}),
            TeamPermission.from_model_data({"slug": "Test-Team-1", "role": "maintain"}),
        ]
        current = [TeamPermission.from_provider_data(self.org_id, x) for x in self.provider_data]

        patches: list[LivePatch] = []
        TeamPermission.generate_live_patch_of_list(expected, current, self.repository, patches.append)

        assert [(x.patch_type, x.model_object.slug) for x in patches] == [
            (LivePatchType.ADD, "test-team-3"),
            (LivePatchType.CHANGE, "Test-Team-1"),
            (LivePatchType.REMOVE, "test-team-2"),
        ]

    async def test_apply_addition_uses_lower_case_slug(self):
        provider = pretend.stub(
            add_repo_team=pretend.call_recorder(_noop),
            update_repo_team=pretend.call_recorder(_noop),
        )

        patches = self.generate_patches(TeamPermission.from_model_data(self.model_data), None)
        await patches[0].apply(self.org_id, provider)

        assert provider.add_repo_team.calls == [pretend.call(self.org_id, "test-repo", "test-team-2", "pull")]
        assert provider.update_repo_team.calls == []

    async def test_apply_change_and_removal(self):
        provider = pretend.stub(
            update_repo_team=pretend.call_recorder(_noop),
            remove_repo_team=pretend.call_recorder(_noop),
        )

        expected = TeamPermission.from_model_data({"slug": "Test-Team-1", "role": "write"})
        current = TeamPermission.from_provider_data(self.org_id, self.provider_data[0])

        for patch in self.generate_patches(expected, current) + self.generate_patches(None, current):
            await patch.apply(self.org_id, provider)

        assert provider.update_repo_team.calls == [pretend.call(self.org_id, "test-repo", "test-team-1", "push")]
        assert provider.remove_repo_team.calls == [pretend.call(self.org_id, "test-repo", "test-team-1")]
