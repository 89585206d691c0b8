#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

import pytest
import pytest_asyncio

from repokeeper.providers.github import GitHubProvider

from .helpers.http_mock import HttpClientMock


class GitHubProviderTestKit:
    """
    A GitHubProvider whose requests are served by an HttpClientMock.
    """

    def __init__(self, monkeypatch: pytest.MonkeyPatch):
        self._monkeypatch = monkeypatch

        self.http = HttpClientMock()
        self.provider = self._create_provider_with_mock_client()

    def _create_provider_with_mock_client(self) -> GitHubProvider:
        import repokeeper.providers.github.rest.requester as requester

        self._monkeypatch.setattr(requester, "RetryClient", lambda *args, **kwargs: self.http)
        return GitHubProvider("fake-github-token")

    def expect_paged(self, url: str, items: list, params: dict[str, str] | None = None) -> None:
        """Expects a single page of a paged listing."""
        self.http.expect("GET", url, request_params={"per_page": "100", **(params or {})}, response_json=items)


@pytest_asyncio.fixture
async def github(monkeypatch: pytest.MonkeyPatch):
    """Provides a GitHubProviderTestKit, failing the test if an expected request was not made."""
    mock = GitHubProviderTestKit(monkeypatch)
    try:
        yield mock
        mock.http.verify_all_called()
    finally:
        await mock.provider.close()
