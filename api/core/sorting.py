"""Client-driven sorting for list endpoints.

A sort expression is a comma-separated list of ``field [asc|desc]`` tokens,
e.g. ``"status desc, name"``. Field names are the client-facing names of a
response schema; a ``SortMapping`` translates each one into one or more ORM
columns of the entity being queried.

Usage:
    provider = SortMappingProvider([HABIT_SORT_MAPPINGS])
    if not provider.validate_mappings(HabitResponse, Habit, sort):
        raise HTTPException(400, ...)
    query = apply_sort(query, sort, provider.get_mappings(HabitResponse, Habit))
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Select


class ConfigurationError(RuntimeError):
    """No sort mapping definition is registered for a (result, entity) pair."""


class InvalidSortFieldError(ValueError):
    """A sort token names a field that has no mapping."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Sort field '{field_name}' is not supported")


@dataclass(frozen=True, slots=True)
class SortMapping:
    """Maps one client-facing field onto one or more entity columns.

    ``destination_fields`` are applied in order as a composite key.
    ``reverse`` inverts the requested direction for every destination column,
    so ``"field asc"`` emits ``DESC`` ordering.
    """

    source_field: str
    destination_fields: tuple[str, ...]
    reverse: bool = False

    def __post_init__(self) -> None:
        if not self.destination_fields:
            raise ValueError(
                f"Sort mapping '{self.source_field}' needs at least one destination field"
            )


@dataclass(frozen=True, slots=True)
class SortMappingDefinition:
    """All sortable fields of ``result_type`` when querying ``entity_type``."""

    result_type: type
    entity_type: type
    mappings: tuple[SortMapping, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for mapping in self.mappings:
            key = mapping.source_field.casefold()
            if key in seen:
                raise ValueError(
                    f"Duplicate sort mapping '{mapping.source_field}' for "
                    f"{self.result_type.__name__}"
                )
            seen.add(key)


@dataclass(frozen=True, slots=True)
class SortToken:
    field_name: str
    descending: bool


def parse_sort(sort: str | None) -> Iterator[SortToken]:
    """Yield the ``(field, direction)`` tokens of a sort expression.

    Blank tokens are skipped. The direction is descending only for ``desc``
    (any case); anything else sorts ascending.
    """
    if not sort or not sort.strip():
        return

    for raw_token in sort.split(","):
        parts = raw_token.split()
        if not parts:
            continue
        descending = len(parts) > 1 and parts[1].lower() == "desc"
        yield SortToken(field_name=parts[0], descending=descending)


def _find_mapping(
    mappings: Iterable[SortMapping], field_name: str
) -> SortMapping | None:
    wanted = field_name.casefold()
    for mapping in mappings:
        if mapping.source_field.casefold() == wanted:
            return mapping
    return None


class SortMappingProvider:
    """Registry of sort mapping definitions, built once at startup.

    Read-only after construction, so a single instance is shared by all
    requests.
    """

    def __init__(self, definitions: Iterable[SortMappingDefinition]):
        self._definitions: dict[tuple[type, type], SortMappingDefinition] = {}
        for definition in definitions:
            key = (definition.result_type, definition.entity_type)
            if key in self._definitions:
                raise ConfigurationError(
                    f"Sort mappings for {definition.result_type.__name__} -> "
                    f"{definition.entity_type.__name__} registered twice"
                )
            self._definitions[key] = definition

    def get_mappings(
        self, result_type: type, entity_type: type
    ) -> tuple[SortMapping, ...]:
        definition = self._definitions.get((result_type, entity_type))
        if definition is None:
            raise ConfigurationError(
                f"Sort mapping from '{result_type.__name__}' into "
                f"'{entity_type.__name__}' isn't defined"
            )
        return definition.mappings

    def validate_mappings(
        self, result_type: type, entity_type: type, sort: str | None
    ) -> bool:
        """Return True when every field in ``sort`` has a mapping.

        An empty expression is always valid.
        """
        if not sort or not sort.strip():
            return True

        mappings = self.get_mappings(result_type, entity_type)
        return all(
            _find_mapping(mappings, token.field_name) is not None
            for token in parse_sort(sort)
        )


def _primary_entity(query: Select) -> Any:
    for description in query.column_descriptions:
        entity = description.get("entity")
        if entity is not None:
            return entity
    raise ValueError("Cannot resolve sort columns: query has no ORM entity")


def apply_sort(
    query: Select,
    sort: str | None,
    mappings: Sequence[SortMapping],
    *,
    entity: Any = None,
) -> Select:
    """Append ORDER BY clauses for ``sort`` to ``query``.

    Destination fields are looked up as attributes of ``entity`` (defaults to
    the query's primary ORM entity). The expression must have been validated;
    an unmapped field raises ``InvalidSortFieldError``.
    """
    if not sort or not sort.strip():
        return query

    target = entity if entity is not None else _primary_entity(query)

    clauses = []
    for token in parse_sort(sort):
        mapping = _find_mapping(mappings, token.field_name)
        if mapping is None:
            raise InvalidSortFieldError(token.field_name)

        descending = token.descending != mapping.reverse
        for destination in mapping.destination_fields:
            column = getattr(target, destination)
            clauses.append(column.desc() if descending else column.asc())

    return query.order_by(*clauses)
