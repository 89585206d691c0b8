#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

from functools import cached_property
from typing import TYPE_CHECKING

from .requester import Requester

if TYPE_CHECKING:
    from repokeeper.providers.github.auth import AuthStrategy
    from repokeeper.providers.github.stats import RequestStatistics


class RestApi:
    # use a fixed API version by default
    _GH_API_VERSION = "2022-11-28"
    _GH_API_URL_ROOT = "api.github.com"

    def __init__(
        self,
        auth_strategy: AuthStrategy | None = None,
        base_url: str = _GH_API_URL_ROOT,
        api_version: str = _GH_API_VERSION,
    ):
        self._auth_strategy = auth_strategy
        self._requester = Requester(auth_strategy, base_url, api_version)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exception_type, exception_value, exception_traceback):
        await self.close()

    @property
    def statistics(self) -> RequestStatistics:
        return self._requester.statistics

    async def close(self) -> None:
        await self._requester.close()

    @property
    def requester(self) -> Requester:
        return self._requester

    @cached_property
    def repo(self):
        from .repo_client import RepoClient

        return RepoClient(self)


class RestClient:
    def __init__(self, rest_api: RestApi):
        self.__rest_api = rest_api

    @property
    def rest_api(self) -> RestApi:
        return self.__rest_api

    @property
    def requester(self) -> Requester:
        return self.__rest_api.requester
