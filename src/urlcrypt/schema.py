"""Target shapes and the walker that turns them into field policies.

A TargetShape is a static description of what a handler binds from the
query string: leaves (scalars, optionally marked Encrypted) and composites
(nested shapes). Shapes are built once, when a route is registered, from a
pydantic model or an endpoint signature. The walker itself never inspects
Python types.

Shapes are assumed acyclic, as request-binding models are.
"""

from __future__ import annotations

import inspect
import logging
import types
import typing
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Union

from fastapi import params
from pydantic import BaseModel
from pydantic.fields import FieldInfo

logger = logging.getLogger("urlcrypt.schema")

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


@dataclass(frozen=True)
class Encrypted:
    """Marks a field as carrying an encrypted value.

    Usage: ``last_name: Annotated[str | None, Encrypted()] = None``

    ignore_warning suppresses the failure warning for this field alone.
    """

    ignore_warning: bool = False


@dataclass(frozen=True)
class Leaf:
    name: str
    wire_name: str | None = None
    encrypted: Encrypted | None = None
    multi_valued: bool = False


@dataclass(frozen=True)
class Composite:
    name: str
    shape: TargetShape


@dataclass(frozen=True)
class TargetShape:
    members: tuple[Leaf | Composite, ...] = ()


@dataclass(frozen=True)
class FieldPolicy:
    """One query key that is expected to carry an encrypted value.

    multi_valued keys are bound as a list, so every value is decrypted.
    """

    name: str
    ignore_failure_warning: bool = False
    multi_valued: bool = False


def walk_policies(shape: TargetShape) -> list[FieldPolicy]:
    """Flatten shape into field policies, depth-first in declaration order.

    Duplicate wire-names are kept; resolving them is the caller's concern.
    """
    policies: list[FieldPolicy] = []
    for member in shape.members:
        if isinstance(member, Composite):
            policies.extend(walk_policies(member.shape))
        elif member.encrypted is not None:
            policies.append(
                FieldPolicy(
                    name=member.wire_name or member.name,
                    ignore_failure_warning=member.encrypted.ignore_warning,
                    multi_valued=member.multi_valued,
                )
            )
    return policies


# ── Shape builders (registration time only) ──────────────────


def _split_annotated(annotation: Any) -> tuple[Any, list[Any]]:
    if typing.get_origin(annotation) is Annotated:
        base, *extras = typing.get_args(annotation)
        return base, extras
    return annotation, []


def _unwrap_optional(annotation: Any) -> Any:
    """Optional[X] / X | None -> X. Other unions are returned unchanged."""
    if typing.get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _is_model(annotation: Any) -> bool:
    return inspect.isclass(annotation) and issubclass(annotation, BaseModel)


def _is_sequence(annotation: Any) -> bool:
    """list[str], tuple[str, ...] and friends bind every repeated value."""
    return (typing.get_origin(annotation) or annotation) in _SEQUENCE_TYPES


def _find_marker(metadata: list[Any]) -> Encrypted | None:
    for item in metadata:
        if isinstance(item, Encrypted):
            return item
    return None


def shape_from_model(model: type[BaseModel]) -> TargetShape:
    """Describe a pydantic model. Nested models become composites."""
    members: list[Leaf | Composite] = []
    for name, field in model.model_fields.items():
        annotation = _unwrap_optional(field.annotation)
        if _is_model(annotation):
            members.append(Composite(name, shape_from_model(annotation)))
        else:
            members.append(
                Leaf(
                    name,
                    wire_name=field.alias,
                    encrypted=_find_marker(field.metadata),
                    multi_valued=_is_sequence(annotation),
                )
            )
    return TargetShape(tuple(members))


def _is_query_bound(field_info: FieldInfo | None, annotation: Any) -> bool:
    # FastAPI binds an unmarked model parameter from the body
    if field_info is None:
        return not _is_model(annotation)
    return isinstance(field_info, params.Query)


def _find_dependency(default: Any, extras: list[Any]) -> params.Depends | None:
    if isinstance(default, params.Depends):
        return default
    return next((e for e in extras if isinstance(e, params.Depends)), None)


def _shape_from_dependency(target: Any) -> TargetShape | None:
    # Depends() on a model class binds the model's fields as query parameters
    if _is_model(target):
        return shape_from_model(target)
    return shape_from_endpoint(target)


def _hinted_callable(endpoint: Any) -> Any:
    if inspect.isclass(endpoint):
        return endpoint.__init__
    if not inspect.isroutine(endpoint) and callable(endpoint):
        return endpoint.__call__
    return endpoint


def shape_from_endpoint(endpoint: Callable[..., Any]) -> TargetShape | None:
    """Describe the query-bound parameters of a FastAPI endpoint.

    Dependencies are followed: a ``Depends`` parameter becomes a composite
    holding the shape of its target, whether that is a function, a class or
    a pydantic model.

    Returns None when the signature's annotations cannot be resolved; the
    schema-driven strategy then passes the query through unchanged.
    """
    try:
        hints = typing.get_type_hints(_hinted_callable(endpoint), include_extras=True)
    except (NameError, TypeError) as exc:
        logger.debug("Cannot resolve annotations of %r: %s", endpoint, exc)
        return None

    members: list[Leaf | Composite] = []
    for name, parameter in inspect.signature(endpoint).parameters.items():
        base, extras = _split_annotated(hints.get(name, parameter.annotation))
        base = _unwrap_optional(base)

        dependency = _find_dependency(parameter.default, extras)
        if dependency is not None:
            shape = _shape_from_dependency(dependency.dependency or base)
            if shape is not None:
                members.append(Composite(name, shape))
            continue

        field_info = next((e for e in extras if isinstance(e, FieldInfo)), None)
        if field_info is None and isinstance(parameter.default, FieldInfo):
            field_info = parameter.default
        if not _is_query_bound(field_info, base):
            continue

        if _is_model(base):
            members.append(Composite(name, shape_from_model(base)))
        else:
            members.append(
                Leaf(
                    name,
                    wire_name=field_info.alias if field_info is not None else None,
                    encrypted=_find_marker(extras),
                    multi_valued=_is_sequence(base),
                )
            )
    return TargetShape(tuple(members))
