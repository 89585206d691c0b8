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

from jsonbender import F, OptionalS  # type: ignore

from repokeeper.models import (
    EmbeddedModelObject,
    FailureType,
    LivePatch,
    LivePatchType,
    ModelObject,
    ValidationContext,
)
from repokeeper.logging import get_logger
from repokeeper.utils import UNSET, expect_type, is_set_and_valid, is_unset, unwrap

if TYPE_CHECKING:
    from repokeeper.providers.github import GitHubProvider

_logger = get_logger(__name__)

# rule types reported by GitHub, rule type -> model attribute of RulesetRules
_RULE_TYPES = {
    "creation": "creation",
    "deletion": "deletion",
    "update": "update",
    "required_linear_history": "required_linear_history",
    "required_signatures": "required_signatures",
    "non_fast_forward": "non_fast_forward",
}

_TARGETS = ("branch", "tag", "push")
_ENFORCEMENTS = ("disabled", "active", "evaluate")
_ACTOR_TYPES = ("Integration", "OrganizationAdmin", "RepositoryRole", "Team", "DeployKey")
_BYPASS_MODES = ("always", "pull_request")


def _rule_types(rules: list[Mapping[str, Any]]) -> set[str]:
    return {rule["type"] for rule in rules}


def _unknown_rules(rules: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    result = []
    for rule in rules:
        rule_type = rule.get("type")
        if rule_type not in _RULE_TYPES:
            _logger.debug("keeping ruleset rule of unsupported type '%s' unchanged", rule_type)
            result.append(dict(rule))
    return result


@dataclasses.dataclass
class BypassActor(EmbeddedModelObject):
    actor_id: int
    actor_type: str
    bypass_mode: str


@dataclasses.dataclass
class RulesetRules(EmbeddedModelObject):
    """
    The rules of a ruleset as named toggles, GitHub reports them as a list of typed entries.
    """

    creation: bool
    deletion: bool
    update: bool
    required_linear_history: bool
    required_signatures: bool
    non_fast_forward: bool

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        rule_types = _rule_types(data.get("rules", []))
        return {attribute: F(lambda _, t=rule_type: t in rule_types) for rule_type, attribute in _RULE_TYPES.items()}

    def to_provider_data(self, org_id: str) -> list[dict[str, Any]]:  # type: ignore[override]
        return [
            {"type": rule_type}
            for rule_type, attribute in _RULE_TYPES.items()
            if self.__getattribute__(attribute) is True
        ]


def _bypass_actors_from(value: Any, factory) -> Any:
    if isinstance(value, list):
        return [factory(x) for x in value]
    else:
        return value


@dataclasses.dataclass
class RepositoryRuleset(ModelObject):
    """
    Represents a ruleset defined on repo level.
    """

    id: int = dataclasses.field(metadata={"external_only": True})
    name: str = dataclasses.field(metadata={"key": True})
    target: str
    enforcement: str

    include_refs: list[str]
    exclude_refs: list[str]

    bypass_actors: list[BypassActor]
    rules: RulesetRules = dataclasses.field(metadata={"embedded_model": True})

    # rules of a type that is not modelled, kept as reported and written back unchanged
    unmanaged_rules: list[dict[str, Any]] = dataclasses.field(metadata={"read_only": True})

    @property
    def model_object_name(self) -> str:
        return "repo_ruleset"

    def validate(self, context: ValidationContext, parent_object: Any) -> None:
        if is_unset(self.name) or not self.name:
            context.add_failure(
                FailureType.ERROR,
                f"{self.get_model_header(parent_object)} has no 'name' defined.",
            )

        context.check_value_in(self, parent_object, "target", _TARGETS)
        context.check_value_in(self, parent_object, "enforcement", _ENFORCEMENTS)

        if is_set_and_valid(self.bypass_actors):
            for actor in self.bypass_actors:
                for key, allowed in (("actor_type", _ACTOR_TYPES), ("bypass_mode", _BYPASS_MODES)):
                    value = actor.__getattribute__(key)
                    if is_set_and_valid(value) and value not in allowed:
                        allowed_values = " | ".join(f"'{x}'" for x in allowed)
                        context.add_failure(
                            FailureType.ERROR,
                            f"{self.get_model_header(parent_object)} has a bypass actor with '{key}' of value "
                            f"'{value}', while only values ({allowed_values}) are allowed.",
                        )

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        mapping = super().get_mapping_from_model()
        mapping.update(
            {
                "bypass_actors": OptionalS("bypass_actors", default=UNSET)
                >> F(lambda x: _bypass_actors_from(x, BypassActor.from_model_data)),
                "rules": OptionalS("rules", default=UNSET)
                >> F(lambda x: RulesetRules.from_model_data(x) if isinstance(x, Mapping) else x),
                "unmanaged_rules": F(lambda _: UNSET),
            }
        )
        return mapping

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "id": OptionalS("id", default=UNSET),
            "name": OptionalS("name", default=UNSET),
            "target": OptionalS("target", default="branch"),
            "enforcement": OptionalS("enforcement", default="disabled"),
            "include_refs": OptionalS("conditions", "ref_name", "include", default=[]),
            "exclude_refs": OptionalS("conditions", "ref_name", "exclude", default=[]),
            "bypass_actors": OptionalS("bypass_actors", default=[])
            >> F(lambda x: _bypass_actors_from(x, lambda y: BypassActor.from_provider_data(org_id, y))),
            "rules": F(lambda x: RulesetRules.from_provider_data(org_id, x)),
            "unmanaged_rules": OptionalS("rules", default=[]) >> F(_unknown_rules),
        }

    def to_provider_data(self, org_id: str) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}

        for key in ("target", "enforcement"):
            value = self.__getattribute__(key)
            if is_set_and_valid(value):
                data[key] = value

        if is_set_and_valid(self.bypass_actors):
            data["bypass_actors"] = [actor.to_provider_data(org_id) for actor in self.bypass_actors]

        ref_name = {}
        if is_set_and_valid(self.include_refs):
            ref_name["include"] = list(self.include_refs)
        if is_set_and_valid(self.exclude_refs):
            ref_name["exclude"] = list(self.exclude_refs)
        if len(ref_name) > 0:
            # GitHub requires both lists once the condition is present
            data["conditions"] = {"ref_name": {"include": [], "exclude": [], **ref_name}}

        rules: list[dict[str, Any]] = []
        if is_set_and_valid(self.rules):
            rules.extend(self.rules.to_provider_data(org_id))
        if is_set_and_valid(self.unmanaged_rules):
            rules.extend(self.unmanaged_rules)
        if is_set_and_valid(self.rules) or len(rules) > 0:
            data["rules"] = rules

        return data

    @classmethod
    async def apply_live_patch(
        cls,
        patch: LivePatch[RepositoryRuleset],
        org_id: str,
        provider: GitHubProvider,
    ) -> None:
        from .repository import Repository

        repository = expect_type(patch.parent_object, Repository)

        match patch.patch_type:
            case LivePatchType.ADD:
                await provider.add_repo_ruleset(
                    org_id,
                    repository.name,
                    unwrap(patch.expected_object).to_provider_data(org_id),
                )

            case LivePatchType.REMOVE:
                current_object = unwrap(patch.current_object)
                await provider.delete_repo_ruleset(org_id, repository.name, current_object.id, current_object.name)

            case LivePatchType.CHANGE:
                current_object = unwrap(patch.current_object)
                merged_object = unwrap(patch.expected_object).merged_with(current_object)
                await provider.update_repo_ruleset(
                    org_id,
                    repository.name,
                    current_object.id,
                    current_object.name,
                    merged_object.to_provider_data(org_id),
                )
