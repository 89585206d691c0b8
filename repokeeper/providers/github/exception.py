#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

from enum import Enum

import aiohttp


class GitHubException(Exception):
    def __init__(self, url: str | None, status: int, data: str):
        self.__url = url
        self.__status = status
        self.__data = data

    @property
    def url(self) -> str | None:
        return self.__url

    @property
    def status(self) -> int:
        return self.__status

    @property
    def data(self) -> str:
        return self.__data

    def __str__(self):
        return f"Exception while accessing '{self.url}': (status={self.status}, body={self.data})"


class BadCredentialsException(Exception):
    def __init__(self, url: str, message: str):
        self.__url = url
        self.__message = message

    @property
    def url(self) -> str:
        return self.__url

    @property
    def message(self) -> str:
        return self.__message

    def __str__(self):
        return f"Bad Credentials while accessing '{self.url}': (message={self.message})"


class InsufficientPermissionsException(Exception):
    def __init__(self, url: str, status: int, message: str, missing_scopes: list[str]):
        self.__url = url
        self.__status = status
        self.__message = message
        self.__missing_scopes = missing_scopes

    @property
    def url(self) -> str:
        return self.__url

    @property
    def status(self) -> int:
        return self.__status

    @property
    def message(self) -> str:
        return self.__message

    @property
    def missing_scopes(self) -> list[str]:
        return self.__missing_scopes

    def __str__(self):
        return f"Insufficient permissions while accessing '{self.url}': (missing scopes={self.missing_scopes})"


class FailureKind(Enum):
    NOT_FOUND = 1
    TRANSIENT = 2
    PERMANENT = 3


def _classify_status(status: int, body: str) -> FailureKind:
    if status == 404:
        return FailureKind.NOT_FOUND
    elif status == 429 or status >= 500:
        return FailureKind.TRANSIENT
    elif status == 403 and "rate limit" in body.lower():
        return FailureKind.TRANSIENT
    else:
        return FailureKind.PERMANENT


def classify_failure(exception: BaseException) -> FailureKind:
    """
    Classifies a failure of a remote call.

    The exception chain (explicit causes first, then the implicit context) is searched for
    the exception that originates from the remote side, client methods wrap those in a RuntimeError.
    """
    seen: set[int] = set()
    current: BaseException | None = exception

    while current is not None and id(current) not in seen:
        seen.add(id(current))

        match current:
            case BadCredentialsException():
                return FailureKind.PERMANENT
            case InsufficientPermissionsException():
                return FailureKind.PERMANENT
            case GitHubException():
                return _classify_status(current.status, current.data)
            case aiohttp.ClientError() | TimeoutError():
                return FailureKind.TRANSIENT

        current = current.__cause__ if current.__cause__ is not None else current.__context__

    return FailureKind.PERMANENT
