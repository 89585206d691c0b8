#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from jsonbender import F, K, OptionalS, S  # type: ignore

from repokeeper.models import FailureType, LivePatch, LivePatchType, ModelObject, ValidationContext
from repokeeper.utils import UNSET, expect_type, is_unset, unwrap

if TYPE_CHECKING:
    from collections.abc import Mapping

    from repokeeper.providers.github import GitHubProvider


def _insecure_ssl_to_bool(value: Any) -> Any:
    """GitHub reports insecure_ssl as string '0' or '1'."""
    if isinstance(value, str):
        return value.strip() == "1"
    else:
        return value


_CONFIG_PROPERTIES = ("url", "content_type", "insecure_ssl")


def _bool_to_insecure_ssl(value: bool) -> str:
    return "1" if value is True else "0"


@dataclasses.dataclass
class RepositoryWebhook(ModelObject):
    """
    Represents a Webhook defined on repo level.
    """

    id: int = dataclasses.field(metadata={"external_only": True})
    url: str = dataclasses.field(metadata={"key": True})
    content_type: str
    active: bool
    insecure_ssl: bool
    events: list[str]

    @property
    def model_object_name(self) -> str:
        return "repo_webhook"

    def validate(self, context: ValidationContext, parent_object: Any) -> None:
        if is_unset(self.url) or not self.url:
            context.add_failure(
                FailureType.ERROR,
                f"{self.get_model_header(parent_object)} has no 'url' defined.",
            )

        context.check_value_in(self, parent_object, "content_type", ("json", "form"))

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        mapping = super().get_mapping_from_model()
        mapping["insecure_ssl"] = OptionalS("insecure_ssl", default=UNSET) >> F(_insecure_ssl_to_bool)
        return mapping

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        # values GitHub does not report are filled with the platform defaults
        return {
            "id": OptionalS("id", default=UNSET),
            "url": OptionalS("config", "url", default=UNSET),
            "content_type": OptionalS("config", "content_type", default="form"),
            "active": OptionalS("active", default=True),
            "insecure_ssl": OptionalS("config", "insecure_ssl", default="0") >> F(_insecure_ssl_to_bool),
            "events": OptionalS("events", default=["push"]),
        }

    @classmethod
    def get_mapping_to_provider(cls, org_id: str, data: dict[str, Any]) -> dict[str, Any]:
        mapping = super().get_mapping_to_provider(org_id, data)

        config_mapping = {}
        for config_prop in ["url", "content_type"]:
            if config_prop in mapping:
                mapping.pop(config_prop)
                config_mapping[config_prop] = S(config_prop)

        if "insecure_ssl" in mapping:
            mapping.pop("insecure_ssl")
            config_mapping["insecure_ssl"] = K(_bool_to_insecure_ssl(data["insecure_ssl"]))

        if len(config_mapping) > 0:
            mapping["config"] = config_mapping

        return mapping

    @classmethod
    async def apply_live_patch(
        cls,
        patch: LivePatch[RepositoryWebhook],
        org_id: str,
        provider: GitHubProvider,
    ) -> None:
        from .repository import Repository

        repository = expect_type(patch.parent_object, Repository)

        match patch.patch_type:
            case LivePatchType.ADD:
                await provider.add_repo_webhook(
                    org_id,
                    repository.name,
                    unwrap(patch.expected_object).to_provider_data(org_id),
                )

            case LivePatchType.REMOVE:
                current_object = unwrap(patch.current_object)
                await provider.delete_repo_webhook(
                    org_id,
                    repository.name,
                    current_object.id,
                    current_object.url,
                )

            case LivePatchType.CHANGE:
                current_object = unwrap(patch.current_object)
                changes = unwrap(patch.changes)
                # GitHub replaces the config as a whole on the hook itself, which drops the secret
                hook_changes = {k: v for k, v in changes.items() if k not in _CONFIG_PROPERTIES}
                config_changes = {k: v for k, v in changes.items() if k in _CONFIG_PROPERTIES}

                if len(hook_changes) > 0:
                    await provider.update_repo_webhook(
                        org_id,
                        repository.name,
                        current_object.id,
                        current_object.url,
                        cls.changes_to_provider(org_id, hook_changes),
                    )

                if len(config_changes) > 0:
                    await provider.update_repo_webhook_config(
                        org_id,
                        repository.name,
                        current_object.id,
                        current_object.url,
                        cls.changes_to_provider(org_id, config_changes)["config"],
                    )
