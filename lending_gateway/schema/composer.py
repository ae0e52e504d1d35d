"""Schema composition: upstream schema + extension fields -> one executable schema."""
from __future__ import annotations

import logging
from typing import Any, Iterable

from graphql import (
    DocumentNode,
    FieldNode,
    GraphQLError,
    GraphQLObjectType,
    GraphQLSchema,
    ObjectTypeExtensionNode,
    ScalarTypeDefinitionNode,
    SelectionSetNode,
    extend_schema,
    get_named_type,
    is_abstract_type,
    is_leaf_type,
    is_object_type,
    parse,
    validate_schema,
)
from graphql.type.introspection import introspection_types

from ..errors import CompositionError
from ..interfaces.upstream import UpstreamLink
from ..protocols.compound.fields import DerivedField
from .delegation import (
    Delegator,
    Registry,
    resolve_abstract_type,
    resolve_upstream_field,
)
from .scalars import attach_decimal_scalar

logger = logging.getLogger(__name__)


def _parse_extension(extension_sdl: str) -> DocumentNode:
    try:
        return parse(extension_sdl)
    except GraphQLError as e:
        raise CompositionError(f"Invalid extension SDL: {e.message}") from e


def _declared_fields(
    upstream: GraphQLSchema, document: DocumentNode
) -> set[tuple[str, str]]:
    """Check the extension against the upstream schema; return declared fields."""
    declared: set[tuple[str, str]] = set()

    for definition in document.definitions:
        name = definition.name.value
        if isinstance(definition, ScalarTypeDefinitionNode):
            if name in upstream.type_map:
                raise CompositionError(f"Scalar '{name}' is already defined upstream")
            continue

        if not isinstance(definition, ObjectTypeExtensionNode):
            raise CompositionError(
                f"Unsupported extension definition for '{name}': {definition.kind}"
            )

        target = upstream.get_type(name)
        if target is None:
            raise CompositionError(f"Cannot extend type '{name}': not defined upstream")
        if not is_object_type(target):
            raise CompositionError(f"Cannot extend type '{name}': not an object type")

        for field in definition.fields or ():
            field_name = field.name.value
            if field_name in target.fields:
                raise CompositionError(
                    f"Extension field {name}.{field_name} would shadow an upstream field"
                )
            declared.add((name, field_name))

    return declared


def _check_selection(
    upstream: GraphQLSchema,
    parent_type: Any,
    selection_set: SelectionSetNode,
    owner: str,
) -> None:
    """Every selected field must exist upstream, composites need sub-selections."""
    for selection in selection_set.selections:
        if not isinstance(selection, FieldNode):
            raise CompositionError(f"{owner}: only plain field selections are supported")
        name = selection.name.value
        if name == "__typename":
            continue
        field = getattr(parent_type, "fields", {}).get(name)
        if field is None:
            raise CompositionError(
                f"{owner}: field '{name}' does not exist on upstream type '{parent_type.name}'"
            )
        field_type = get_named_type(field.type)
        if is_leaf_type(field_type):
            if selection.selection_set is not None:
                raise CompositionError(f"{owner}: leaf field '{name}' cannot have a selection")
        elif selection.selection_set is None:
            raise CompositionError(f"{owner}: field '{name}' needs a sub-selection")
        else:
            _check_selection(upstream, field_type, selection.selection_set, owner)


def _registry(
    upstream: GraphQLSchema,
    declared: set[tuple[str, str]],
    registrations: Iterable[DerivedField],
) -> dict[tuple[str, str], DerivedField]:
    registry: dict[tuple[str, str], DerivedField] = {}
    for registration in registrations:
        owner = f"{registration.type_name}.{registration.field_name}"
        if registration.key not in declared:
            raise CompositionError(f"{owner} is registered but not declared in the extension")
        if registration.key in registry:
            raise CompositionError(f"{owner} is registered twice")
        if registration.record.typename != registration.type_name:
            raise CompositionError(
                f"{owner} projects into {registration.record.typename} records"
            )
        _check_selection(
            upstream,
            upstream.get_type(registration.type_name),
            registration.selection_set,
            owner,
        )
        registration.verify()
        registry[registration.key] = registration

    missing = declared - set(registry)
    if missing:
        names = ", ".join(f"{t}.{f}" for t, f in sorted(missing))
        raise CompositionError(f"Extension fields without a resolver: {names}")
    return registry


def _attach_resolvers(
    schema: GraphQLSchema, registry: Registry, delegator: Delegator
) -> None:
    root_types = {
        schema.query_type: delegator.resolve_root,
        schema.mutation_type: delegator.resolve_root,
    }
    for root_type, resolver in root_types.items():
        if root_type is None:
            continue
        for field in root_type.fields.values():
            field.resolve = resolver

    if schema.subscription_type is not None:
        for field in schema.subscription_type.fields.values():
            field.subscribe = delegator.subscribe_root
            field.resolve = resolve_upstream_field

    roots = {schema.query_type, schema.mutation_type, schema.subscription_type}
    for type_name, named_type in schema.type_map.items():
        if type_name in introspection_types or named_type in roots:
            continue
        if is_abstract_type(named_type):
            named_type.resolve_type = resolve_abstract_type
        elif isinstance(named_type, GraphQLObjectType):
            for field_name, field in named_type.fields.items():
                registration = registry.get((type_name, field_name))
                field.resolve = registration.resolve if registration else resolve_upstream_field


def compose(
    upstream_schema: GraphQLSchema,
    extension_sdl: str,
    registrations: Iterable[DerivedField],
    *,
    link: UpstreamLink,
) -> GraphQLSchema:
    """Merge the extension declarations into the upstream schema.

    Extension fields resolve through their registrations; every other field
    is delegated to ``link``. Raises :class:`CompositionError` on any
    mismatch between extension, registrations and upstream schema.
    """
    document = _parse_extension(extension_sdl)
    declared = _declared_fields(upstream_schema, document)
    registry = _registry(upstream_schema, declared, registrations)

    try:
        schema = extend_schema(upstream_schema, document)
    except (GraphQLError, TypeError) as e:
        raise CompositionError(f"Cannot extend upstream schema: {e}") from e

    errors = validate_schema(schema)
    if errors:
        raise CompositionError(
            "Composed schema is invalid: " + "; ".join(e.message for e in errors)
        )

    attach_decimal_scalar(schema)
    _attach_resolvers(schema, registry, Delegator(registry, link))

    logger.info(
        "Composed schema with %d extension fields on %s",
        len(registry),
        ", ".join(sorted({t for t, _ in registry})),
    )
    return schema
