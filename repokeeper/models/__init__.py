#  *******************************************************************************
#  Copyright (c) 2023-2025 Eclipse Foundation and others.
#  This program and the accompanying materials are made available
#  under the terms of the Eclipse Public License 2.0
#  which is available at http://www.eclipse.org/legal/epl-v20.html
#  SPDX-License-Identifier: EPL-2.0
#  *******************************************************************************

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, Protocol, Self, TypeVar, cast, final

from jsonbender import OptionalS, S, bend  # type: ignore

from repokeeper.utils import (
    UNSET,
    Change,
    associate_by_key,
    is_different_identity_set,
    is_different_ignoring_order,
    is_set_and_valid,
    is_unset,
    normalize_identity,
    unwrap,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from repokeeper.providers.github import GitHubProvider

MT = TypeVar("MT", bound="ModelObject")
EMT = TypeVar("EMT", bound="EmbeddedModelObject")


class FailureType(Enum):
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclasses.dataclass
class ValidationContext:
    root_object: Any
    validation_failures: list[tuple[FailureType, str]] = dataclasses.field(default_factory=list)

    def add_failure(self, failure_type: FailureType, message: str):
        self.validation_failures.append((failure_type, message))

    @property
    def errors(self) -> list[str]:
        return [message for failure_type, message in self.validation_failures if failure_type == FailureType.ERROR]

    def check_value_in(self, model_object: ModelObject, parent_object: Any, key: str, allowed: Sequence[str]):
        value = model_object.__getattribute__(key)
        if is_set_and_valid(value) and value not in allowed:
            allowed_values = " | ".join(f"'{x}'" for x in allowed)
            self.add_failure(
                FailureType.ERROR,
                f"{model_object.get_model_header(parent_object)} has '{key}' of value '{value}', "
                f"while only values ({allowed_values}) are allowed.",
            )

    def check_unique_keys(self, model_objects: Sequence[ModelObject], parent_object: Any):
        seen: set[str] = set()
        for model_object in model_objects:
            key = model_object.get_key_value()
            if key in seen:
                self.add_failure(
                    FailureType.ERROR,
                    f"{model_object.get_model_header(parent_object)} is defined more than once "
                    f"(keys are compared case-insensitive).",
                )
            seen.add(key)


class MalformedInputError(ValueError):
    """
    Raised when a desired configuration violates the invariants of the model,
    before any remote call is made.
    """

    def __init__(self, failures: list[str]):
        super().__init__("invalid configuration:\n" + "\n".join(f"  - {failure}" for failure in failures))
        self.failures = failures


class LivePatchType(Enum):
    ADD = 1
    REMOVE = 2
    CHANGE = 3


class LivePatchApplyFn(Protocol[MT]):
    async def __call__(self, patch: LivePatch[MT], org_id: str, provider: GitHubProvider) -> None: ...


@dataclasses.dataclass(frozen=True)
class LivePatch(Generic[MT]):
    patch_type: LivePatchType
    expected_object: MT | None
    current_object: MT | None
    changes: dict[str, Change] | None
    parent_object: ModelObject | None
    fn: LivePatchApplyFn
    changes_object_to_readonly: bool = False

    @classmethod
    def of_addition(cls, expected_object: MT, parent_object: ModelObject | None, fn: LivePatchApplyFn[MT]) -> LivePatch:
        return LivePatch(LivePatchType.ADD, expected_object, None, None, parent_object, fn)

    @classmethod
    def of_deletion(cls, current_object: MT, parent_object: ModelObject | None, fn: LivePatchApplyFn[MT]) -> LivePatch:
        return LivePatch(LivePatchType.REMOVE, None, current_object, None, parent_object, fn)

    @classmethod
    def of_changes(
        cls,
        expected_object: MT,
        current_object: MT,
        changes: dict[str, Change],
        parent_object: ModelObject | None,
        fn: LivePatchApplyFn[MT],
        changes_object_to_readonly: bool = False,
    ) -> LivePatch:
        return LivePatch(
            LivePatchType.CHANGE,
            expected_object,
            current_object,
            changes,
            parent_object,
            fn,
            changes_object_to_readonly,
        )

    @property
    def model_object(self) -> MT:
        """The object this patch is about, the expected one if present."""
        obj = self.expected_object if self.expected_object is not None else self.current_object
        return unwrap(obj)

    async def apply(self, org_id: str, provider: GitHubProvider) -> None:
        await self.fn(self, org_id, provider)

    def __repr__(self) -> str:
        return f"{self.patch_type.name} - {self.model_object.get_model_header(self.parent_object)}"


class LivePatchHandler(Protocol):
    def __call__(self, patch: LivePatch) -> None: ...


@dataclasses.dataclass(frozen=True)
class MatchResult(Generic[MT]):
    pairs: list[tuple[MT, MT]]
    to_create: list[MT]
    to_delete: list[MT]


def match_by_key(expected_objects: Sequence[MT], current_objects: Sequence[MT]) -> MatchResult[MT]:
    """
    Partitions two keyed collections of the same type into matched pairs (expected, current),
    expected objects without a current counterpart and current objects without an expected one.

    Keys are compared in their canonical (case-folded) form. Pairs and objects to create keep
    the order of the expected objects, objects to delete the order of the current objects.
    A collection containing the same key twice raises a RuntimeError.
    """
    current_by_key = associate_by_key(current_objects, lambda x: x.get_key_value())
    expected_keys = associate_by_key(expected_objects, lambda x: x.get_key_value()).keys()

    pairs = []
    to_create = []
    for expected_object in expected_objects:
        current_object = current_by_key.get(expected_object.get_key_value())
        if current_object is None:
            to_create.append(expected_object)
        else:
            pairs.append((expected_object, current_object))

    to_delete = [x for x in current_objects if x.get_key_value() not in expected_keys]
    return MatchResult(pairs, to_create, to_delete)


def _to_comparable(value: Any) -> Any:
    if isinstance(value, EmbeddedModelObject):
        return value.to_model_dict()
    elif isinstance(value, list):
        return [_to_comparable(x) for x in value]
    else:
        return value


def _is_identity(field: dataclasses.Field) -> bool:
    return field.metadata.get("identity", False) is True


def _is_embedded_model(field: dataclasses.Field) -> bool:
    return field.metadata.get("embedded_model", False) is True


def _is_embedded_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(x, EmbeddedModelObject) for x in value)


def _matches_embedded(expected: EmbeddedModelObject, current: EmbeddedModelObject) -> bool:
    """An embedded object matches another one if all values it sets are equal, unset values match anything."""
    current_data = current.to_model_dict()
    return all(
        not is_different_ignoring_order(value, current_data.get(key, UNSET))
        for key, value in expected.to_model_dict().items()
    )


def _is_different_embedded_list(expected: list, current: list) -> bool:
    # compared as sets, every entry on either side needs a counterpart
    if any(not any(_matches_embedded(x, y) for y in current) for x in expected):
        return True

    return any(not any(_matches_embedded(x, y) for x in expected) for y in current)


def _overlay_matching(expected: EmbeddedModelObject, current_values: list) -> EmbeddedModelObject:
    for current in current_values:
        if _matches_embedded(expected, current):
            return expected.overlay(current)

    return expected


def _compare_field(field: dataclasses.Field, to_value: Any, from_value: Any) -> tuple[bool, Any, Any]:
    """
    Compares the expected value of a field with its current value.

    Returns whether they differ together with comparable representations of both values.
    """
    if isinstance(to_value, EmbeddedModelObject) and isinstance(from_value, EmbeddedModelObject):
        embedded_diff = to_value.get_difference_from(from_value)
        if embedded_diff is None:
            return False, None, None
        return True, embedded_diff.from_value, embedded_diff.to_value

    comparable_to_value = _to_comparable(to_value)
    comparable_from_value = _to_comparable(from_value)

    if _is_identity(field) and isinstance(to_value, list) and isinstance(from_value, list):
        different = is_different_identity_set(to_value, from_value)
    elif _is_embedded_list(to_value) and _is_embedded_list(from_value):
        different = _is_different_embedded_list(to_value, from_value)
    else:
        different = is_different_ignoring_order(comparable_to_value, comparable_from_value)

    return different, comparable_from_value, comparable_to_value


@dataclasses.dataclass
class EmbeddedModelObject(ABC):
    """
    The abstract base class for embedded model objects.
    """

    def validate(self, context: ValidationContext, parent_object: Any) -> None:
        return

    def get_difference_from(self, other: Self) -> Change | None:
        """
        Returns a Change containing the compared keys if this (expected) object differs from
        the other (current) object, or None if they are equivalent. Keys that are unset in this
        object are not managed and thus never compared.
        """
        if not isinstance(other, self.__class__):
            raise ValueError(f"'types do not match: {type(self)}' != '{type(other)}'")

        from_dict: dict[str, Any] = {}
        to_dict: dict[str, Any] = {}
        has_differences = False

        for field in self.all_fields():
            to_value = self.__getattribute__(field.name)
            if is_unset(to_value):
                continue

            different, from_value, to_value = _compare_field(field, to_value, other.__getattribute__(field.name))
            if different:
                has_differences = True
                from_dict[field.name] = from_value
                to_dict[field.name] = to_value

        if has_differences:
            return Change(from_dict, to_dict)
        else:
            return None

    def overlay(self, base: Self | None) -> Self:
        """
        Returns a copy of the base object where every value that is set in this object
        replaces the value of the base object. Settings not managed by this object are kept.
        """
        if base is None:
            return dataclasses.replace(self)

        values = {}
        for field in self.all_fields():
            value = self.__getattribute__(field.name)
            base_value = base.__getattribute__(field.name)

            if is_unset(value):
                values[field.name] = base_value
            elif isinstance(value, EmbeddedModelObject) and isinstance(base_value, EmbeddedModelObject):
                values[field.name] = value.overlay(base_value)
            else:
                values[field.name] = value

        return self.__class__(**values)

    @classmethod
    def all_fields(cls) -> list[dataclasses.Field]:
        return list(dataclasses.fields(cls))

    def keys(self, exclude_unset_keys: bool = True) -> list[str]:
        return [
            field.name
            for field in self.all_fields()
            if not exclude_unset_keys or not is_unset(self.__getattribute__(field.name))
        ]

    def to_model_dict(self) -> dict[str, Any]:
        result = {}

        for key in self.keys(exclude_unset_keys=True):
            value = self.__getattribute__(key)
            if isinstance(value, EmbeddedModelObject):
                result[key] = value.to_model_dict()
            else:
                result[key] = value

        return result

    @classmethod
    def from_model_data(cls: type[EMT], data: Mapping[str, Any]) -> EMT:
        mapping = cls.get_mapping_from_model()
        return cls(**bend(mapping, data))  # type: ignore

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        return {k: OptionalS(k, default=UNSET) for k in (x.name for x in cls.all_fields())}

    @classmethod
    def from_provider_data(cls: type[EMT], org_id: str, data: Mapping[str, Any]) -> EMT:
        mapping = cls.get_mapping_from_provider(org_id, data)
        return cls(**bend(mapping, data))  # type: ignore

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return {k: OptionalS(k, default=UNSET) for k in (x.name for x in cls.all_fields())}

    def to_provider_data(self, org_id: str) -> dict[str, Any]:
        data = self.to_model_dict()
        return bend(self.get_mapping_to_provider(org_id, data), data)

    @classmethod
    def get_mapping_to_provider(cls, org_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return {field.name: S(field.name) for field in cls.all_fields() if field.name in data}


@dataclasses.dataclass
class ModelObject(ABC):
    """
    The abstract base class for any model object.
    """

    @property
    @abstractmethod
    def model_object_name(self) -> str: ...

    def is_keyed(self) -> bool:
        """Indicates whether the ModelObject is keyed by a property"""
        return any(field.metadata.get("key", False) for field in self.all_fields())

    def get_key(self) -> str:
        """Returns the key property of this ModelObject if it keyed"""
        if not self.is_keyed():
            raise RuntimeError("model object is not keyed")

        return next(
            filter(
                lambda field: field.metadata.get("key", False) is True,
                self.all_fields(),
            )
        ).name

    def get_key_value(self) -> str:
        """Returns the canonical value of the key property, used to match objects"""
        return normalize_identity(str(self.__getattribute__(self.get_key())))

    @abstractmethod
    def validate(self, context: ValidationContext, parent_object: Any) -> None: ...

    def get_difference_from(self, other: Self) -> dict[str, Change[Any]]:
        """
        Compares this (expected) object with the other (current) object attribute by attribute.

        Only attributes that are set in this object are compared, an unset attribute is not managed
        and accepts any current value. An attribute that is set but unset or missing in the other
        object is reported as a change. Lists are compared as sets, identity lists ignore case.
        An empty result means both objects are equivalent.
        """
        if not isinstance(other, self.__class__):
            raise ValueError(f"'types do not match: {type(self)}' != '{type(other)}'")

        diff_result: dict[str, Change[Any]] = {}
        for key in self.keys(for_diff=True, exclude_unset_keys=True):
            field = self._get_field(key)
            to_value = self.__getattribute__(key)
            from_value = other.__getattribute__(key)

            different, comparable_from_value, comparable_to_value = _compare_field(field, to_value, from_value)
            if different:
                diff_result[key] = Change(comparable_from_value, comparable_to_value)

        return diff_result

    def merged_with(self, current_object: Self) -> Self:
        """
        Returns the object to write when updating the current object, consisting of the current
        settings overridden by every setting that is set in this object.
        """
        values = {}
        for field in self.all_fields():
            value = self.__getattribute__(field.name)
            current_value = current_object.__getattribute__(field.name)

            if is_unset(value):
                values[field.name] = current_value
            elif isinstance(value, EmbeddedModelObject) and isinstance(current_value, EmbeddedModelObject):
                values[field.name] = value.overlay(current_value)
            elif _is_embedded_list(value) and _is_embedded_list(current_value):
                values[field.name] = [_overlay_matching(x, current_value) for x in value]
            else:
                values[field.name] = value

        return self.__class__(**values)

    @classmethod
    def all_fields(cls) -> list[dataclasses.Field]:
        return list(dataclasses.fields(cls))

    @classmethod
    def model_fields(cls) -> list[dataclasses.Field]:
        return [field for field in dataclasses.fields(cls) if not cls.is_external_only(field)]

    @classmethod
    def provider_fields(cls) -> list[dataclasses.Field]:
        return [
            field
            for field in dataclasses.fields(cls)
            if not cls.is_external_only(field) and not cls.is_read_only(field) and not cls.is_nested_model(field)
        ]

    @classmethod
    def _get_field(cls, key: str) -> dataclasses.Field:
        for field in dataclasses.fields(cls):
            if field.name == key:
                return field

        raise ValueError(f"unknown key {key}")

    @staticmethod
    def is_external_only(field: dataclasses.Field) -> bool:
        return field.metadata.get("external_only", False) is True

    @staticmethod
    def is_read_only(field: dataclasses.Field) -> bool:
        return field.metadata.get("read_only", False) is True

    @staticmethod
    def is_nested_model(field: dataclasses.Field) -> bool:
        return field.metadata.get("nested_model", False) is True

    @classmethod
    def is_nested_model_key(cls, key: str) -> bool:
        return cls.is_nested_model(cls._get_field(key))

    def get_model_header(self, parent_object: ModelObject | None = None) -> str:
        header = f"[bold]{self.model_object_name}[/]"

        if self.is_keyed():
            key = self.get_key()
            header = header + f'\\[{key}="[bold]{self.__getattribute__(key)}[/]"'

            if isinstance(parent_object, ModelObject) and parent_object.is_keyed():
                header = (
                    header
                    + f", {parent_object.model_object_name}="
                    + f"[bold]{parent_object.__getattribute__(parent_object.get_key())}[/]"
                )

            header = header + "]"

        return header

    @classmethod
    @final
    def from_model_data(cls: type[MT], data: Mapping[str, Any]) -> MT:
        mapping = cls.get_mapping_from_model()
        return cls(**bend(mapping, data))  # type: ignore

    @classmethod
    def get_mapping_from_model(cls) -> dict[str, Any]:
        return {k: OptionalS(k, default=UNSET) for k in (x.name for x in cls.all_fields())}

    @classmethod
    @final
    def from_provider_data(cls: type[MT], org_id: str, data: Mapping[str, Any]) -> MT:
        mapping = cls.get_mapping_from_provider(org_id, data)
        return cls(**bend(mapping, data))  # type: ignore

    @classmethod
    def get_mapping_from_provider(cls, org_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return {k: OptionalS(k, default=UNSET) for k in (x.name for x in cls.all_fields())}

    def to_provider_data(self, org_id: str) -> dict[str, Any]:
        return self.dict_to_provider_data(org_id, self.to_model_dict())

    @classmethod
    def changes_to_provider(cls, org_id: str, data: dict[str, Change[Any]]) -> dict[str, Any]:
        return cls.dict_to_provider_data(org_id, {key: change.to_value for key, change in data.items()})

    @classmethod
    def dict_to_provider_data(cls, org_id: str, data: dict[str, Any]) -> dict[str, Any]:
        mapping = cls.get_mapping_to_provider(org_id, data)
        return bend(mapping, data)

    @classmethod
    def get_mapping_to_provider(cls, org_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            field.name: S(field.name) for field in cls.provider_fields() if not is_unset(data.get(field.name, UNSET))
        }

    def include_field_for_diff_computation(self, field: dataclasses.Field) -> bool:
        return True

    def keys(
        self,
        for_diff: bool = False,
        include_nested_models: bool = False,
        exclude_unset_keys: bool = True,
    ) -> list[str]:
        result = []

        for field in self.model_fields():
            if for_diff is True:
                if not self.include_field_for_diff_computation(field):
                    continue

                # objects are matched by key, the read-only state is never written
                if field.metadata.get("key", False) is True or self.is_read_only(field):
                    continue

            if include_nested_models is False and self.is_nested_model(field):
                continue

            if exclude_unset_keys:
                value = self.__getattribute__(field.name)
                if not is_unset(value):
                    result.append(field.name)
            else:
                result.append(field.name)

        return result

    def to_model_dict(
        self,
        for_diff: bool = False,
        include_nested_models: bool = False,
    ) -> dict[str, Any]:
        result = {}

        for key in self.keys(
            for_diff=for_diff,
            include_nested_models=include_nested_models,
            exclude_unset_keys=True,
        ):
            value = self.__getattribute__(key)
            if self.is_nested_model_key(key):
                result[key] = [cast(ModelObject, x).to_model_dict(for_diff) for x in value]
            elif isinstance(value, EmbeddedModelObject):
                result[key] = value.to_model_dict()
            elif isinstance(value, list):
                result[key] = [x.to_model_dict() if isinstance(x, EmbeddedModelObject) else x for x in value]
            else:
                result[key] = value

        return result

    @classmethod
    def generate_live_patch(
        cls: type[MT],
        expected_object: MT | None,
        current_object: MT | None,
        parent_object: ModelObject | None,
        handler: LivePatchHandler,
    ) -> None:
        if current_object is None:
            expected_object = unwrap(expected_object)
            handler(LivePatch.of_addition(expected_object, parent_object, expected_object.apply_live_patch))
            return

        if expected_object is None:
            current_object = unwrap(current_object)
            handler(LivePatch.of_deletion(current_object, parent_object, current_object.apply_live_patch))
            return

        modified_object: dict[str, Change[Any]] = expected_object.get_difference_from(current_object)

        if len(modified_object) > 0:
            handler(
                LivePatch.of_changes(
                    expected_object,
                    current_object,
                    modified_object,
                    parent_object,
                    expected_object.apply_live_patch,
                )
            )

    @classmethod
    def generate_live_patch_of_list(
        cls,
        expected_objects: Sequence[MT],
        current_objects: Sequence[MT],
        parent_object: ModelObject | None,
        handler: LivePatchHandler,
    ) -> None:
        """
        Emits patches for two keyed collections: first additions, then changes, then removals.
        """
        result = match_by_key(expected_objects, current_objects)

        for expected_object in result.to_create:
            cls.generate_live_patch(expected_object, None, parent_object, handler)

        for expected_object, current_object in result.pairs:
            cls.generate_live_patch(expected_object, current_object, parent_object, handler)

        for current_object in result.to_delete:
            cls.generate_live_patch(None, current_object, parent_object, handler)

    @classmethod
    @abstractmethod
    async def apply_live_patch(cls: type[MT], patch: LivePatch[MT], org_id: str, provider: GitHubProvider) -> None: ...


class FetchError(RuntimeError):
    """
    Raised when the observed state of a resource could not be retrieved completely.
    The underlying failure is available as the cause of the exception.
    """
