"""Field selection ("data shaping") for pydantic response schemas.

Clients pass ``fields=name,id`` to receive only those fields. Field names are
matched case-insensitively against the schema's declared fields; the output
uses the declared names.

Each schema's fields are resolved once into ``FieldDescriptor``s (name plus
accessor) and cached, so shaping a record is a dict lookup per field.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import cache
from operator import attrgetter
from typing import Any, TypeVar

from pydantic import BaseModel

from core.links import LINKS_KEY, LinkDto, LinksResponse

T = TypeVar("T", bound=BaseModel)

ShapedRecord = dict[str, Any]
LinkFactory = Callable[[T], list[LinkDto]]


class InvalidShapeFieldError(ValueError):
    """A requested field is not declared on the response schema."""

    def __init__(self, field_name: str, schema: type):
        self.field_name = field_name
        super().__init__(
            f"Field '{field_name}' is not declared on {schema.__name__}"
        )


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    name: str
    casefold_name: str
    accessor: Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class ShapeableFields:
    ordered: tuple[FieldDescriptor, ...]
    by_casefold_name: dict[str, FieldDescriptor]


@cache
def get_field_descriptors(schema: type[BaseModel]) -> ShapeableFields:
    """Declared fields of ``schema`` in declaration order.

    The reserved ``links`` field is not shapeable; links are attached
    separately.
    """
    ordered = tuple(
        FieldDescriptor(
            name=name,
            casefold_name=name.casefold(),
            accessor=attrgetter(name),
        )
        for name in schema.model_fields
        if name != LINKS_KEY
    )
    return ShapeableFields(
        ordered=ordered,
        by_casefold_name={d.casefold_name: d for d in ordered},
    )


def _split_fields(fields: str) -> list[str]:
    return [f.strip() for f in fields.split(",")]


def validate_fields(schema: type[BaseModel], fields: str | None) -> bool:
    """Return True when every token of ``fields`` names a declared field.

    ``None`` or a blank string means "all fields" and is valid.
    """
    if not fields or not fields.strip():
        return True

    known = get_field_descriptors(schema).by_casefold_name
    return all(token.casefold() in known for token in _split_fields(fields))


def _select_fields(
    schema: type[BaseModel], fields: str | None
) -> Sequence[FieldDescriptor]:
    shapeable = get_field_descriptors(schema)
    if not fields or not fields.strip():
        return shapeable.ordered

    selected: dict[str, FieldDescriptor] = {}
    for token in _split_fields(fields):
        descriptor = shapeable.by_casefold_name.get(token.casefold())
        if descriptor is None:
            raise InvalidShapeFieldError(token, schema)
        selected.setdefault(descriptor.name, descriptor)
    return tuple(selected.values())


def shape_data(
    obj: BaseModel,
    fields: str | None,
    links: list[LinkDto] | None = None,
) -> ShapedRecord:
    """Project ``obj`` onto the requested fields.

    Without ``fields`` every declared field is returned in declaration order;
    otherwise the requested fields are returned in the order they were listed.
    ``links``, when given, are added under the ``links`` key; otherwise links
    already carried by a ``LinksResponse`` are kept.
    """
    record: ShapedRecord = {
        descriptor.name: descriptor.accessor(obj)
        for descriptor in _select_fields(type(obj), fields)
    }
    if links is None and isinstance(obj, LinksResponse):
        links = obj.links
    if links is not None:
        record[LINKS_KEY] = links
    return record


def shape_collection_data(
    objs: Iterable[T],
    fields: str | None,
    link_factory: LinkFactory[T] | None = None,
) -> list[ShapedRecord]:
    """Shape every element of ``objs``, preserving order and count."""
    return [
        shape_data(
            obj,
            fields,
            link_factory(obj) if link_factory is not None else None,
        )
        for obj in objs
    ]
