#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import dataclasses
import json
import os
from typing import TYPE_CHECKING, Any

from repokeeper.logging import get_logger
from repokeeper.utils import deep_merge_dict

if TYPE_CHECKING:
    from collections.abc import Mapping

_logger = get_logger(__name__)

_DEFAULTS_FILENAME = ".repokeeper-defaults.json"


def load_json(file: str) -> dict[str, Any]:
    try:
        with open(file) as f:
            data = json.load(f)
    except json.JSONDecodeError as ex:
        raise RuntimeError(f"failed to parse json file '{file}': {ex}") from ex

    if not isinstance(data, dict):
        raise RuntimeError(f"expected JSON object in file '{file}', got {type(data).__name__}")

    return data


@dataclasses.dataclass(frozen=True)
class ReconcilerConfig:
    """
    Settings for a single reconciliation pass.

    The remote api settings select the GitHub REST endpoint, the retry settings control how
    transient failures are retried while converging and fetch_concurrency limits the number of
    detail requests (branch protection, ruleset) that are in flight at the same time.
    """

    api_url: str = "api.github.com"
    api_version: str = "2022-11-28"
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    fetch_concurrency: int = 10

    def __post_init__(self):
        if self.max_attempts < 1:
            raise RuntimeError(f"max_attempts needs to be at least 1, was {self.max_attempts}")

        if self.backoff_base < 0 or self.backoff_max < 0:
            raise RuntimeError("backoff settings must not be negative")

        if self.fetch_concurrency < 1:
            raise RuntimeError(f"fetch_concurrency needs to be at least 1, was {self.fetch_concurrency}")

    def backoff_delay(self, attempt: int) -> float:
        """Returns the delay in seconds before retrying after the given (0-based) failed attempt."""
        return min(self.backoff_base * (2**attempt), self.backoff_max)

    @classmethod
    def from_dict(cls, configuration: Mapping[str, Any]) -> ReconcilerConfig:
        defaults = configuration.get("defaults", {})

        known_keys = {field.name for field in dataclasses.fields(cls)}
        unknown_keys = set(defaults.keys()) - known_keys
        if len(unknown_keys) > 0:
            raise RuntimeError(f"unknown configuration keys: {', '.join(sorted(unknown_keys))}")

        return cls(**defaults)

    @classmethod
    def from_file(cls, config_file: str) -> ReconcilerConfig:
        if not os.path.exists(config_file):
            raise RuntimeError(f"configuration file '{config_file}' not found")

        config_file_dir = os.path.dirname(os.path.realpath(config_file))

        configuration = load_json(config_file)

        override_defaults_file = os.path.join(config_file_dir, _DEFAULTS_FILENAME)
        if os.path.exists(override_defaults_file):
            defaults = load_json(override_defaults_file)
            _logger.trace("loading default overrides from '%s'", override_defaults_file)
            # values defined in the configuration file itself take precedence
            configuration["defaults"] = deep_merge_dict(configuration.get("defaults", {}), defaults)

        return cls.from_dict(configuration)
