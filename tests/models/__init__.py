#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

import json
import os
import unittest
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from repokeeper.models import LivePatch, ModelObject
from repokeeper.models.branch_protection_rule import BranchProtectionRule
from repokeeper.models.permission import CollaboratorPermission, TeamPermission
from repokeeper.models.repository import Repository
from repokeeper.models.ruleset import RepositoryRuleset
from repokeeper.models.webhook import RepositoryWebhook


class ModelTest(ABC, unittest.IsolatedAsyncioTestCase):
    @property
    def org_id(self) -> str:
        return "test-org"

    @property
    def repository(self) -> Repository:
        return Repository.from_model_data({"name": "test-repo"})

    @abstractmethod
    def create_model(self, data: Mapping[str, Any]) -> ModelObject:
        pass

    @property
    @abstractmethod
    def model_data(self):
        pass

    @property
    @abstractmethod
    def provider_data(self):
        pass

    def generate_patches(
        self,
        expected_object: ModelObject | None,
        current_object: ModelObject | None,
        parent_object: ModelObject | None = None,
    ) -> list[LivePatch]:
        model_object = expected_object if expected_object is not None else current_object
        assert model_object is not None

        patches: list[LivePatch] = []
        type(model_object).generate_live_patch(
            expected_object,
            current_object,
            parent_object if parent_object is not None else self.repository,
            patches.append,
        )
        return patches

    @staticmethod
    def load_json_resource(file: str) -> Any:
        filename = os.path.join(os.path.dirname(os.path.realpath(__file__)), f"resources/{file}")
        with open(filename) as fp:
            return json.load(fp)


def load_json_resource(file: str) -> Any:
    return ModelTest.load_json_resource(file)


def expected_repository() -> Repository:
    return Repository.from_model_data(load_json_resource("repokeeper-repo.json"))


def current_repository(org_id: str = "test-org") -> Repository:
    """Returns the repository as retrieved from GitHub, matching the expected repository."""
    repo = Repository.from_provider_data(org_id, load_json_resource("github-repo.json"))
    repo.collaborators = [
        CollaboratorPermission.from_provider_data(org_id, x) for x in load_json_resource("github-collaborators.json")
    ]
    repo.teams = [TeamPermission.from_provider_data(org_id, x) for x in load_json_resource("github-teams.json")]
    repo.webhooks = [RepositoryWebhook.from_provider_data(org_id, load_json_resource("github-webhook.json"))]
    repo.branch_protection_rules = [
        BranchProtectionRule.from_provider_data(
            org_id, {**load_json_resource("github-branch-protection.json"), "branch": "main"}
        )
    ]
    repo.rulesets = [RepositoryRuleset.from_provider_data(org_id, load_json_resource("github-ruleset.json"))]
    repo.branches = ["main"]
    return repo
