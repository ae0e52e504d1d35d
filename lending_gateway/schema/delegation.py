"""Delegation of root fields to the upstream endpoint.

For every root field the gateway rebuilds the client's selection as an
upstream document: extension fields are swapped for the selections their
registrations need, and only the fragments and variables still referenced
are kept.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, Optional

from graphql import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    GraphQLNamedType,
    GraphQLResolveInfo,
    GraphQLSchema,
    InlineFragmentNode,
    NamedTypeNode,
    NameNode,
    OperationDefinitionNode,
    SelectionSetNode,
    Visitor,
    get_named_type,
    is_abstract_type,
    visit,
)

from ..interfaces.upstream import UpstreamLink
from ..models import UPSTREAM_ERRORS_KEY, read_upstream_value
from ..protocols.compound.fields import DerivedField

logger = logging.getLogger(__name__)

Registry = Mapping[tuple[str, str], DerivedField]


# ---------------------------------------------------------------------------
# Upstream results
# ---------------------------------------------------------------------------


def _child(container: Any, segment: Any) -> Any:
    if isinstance(container, dict) and isinstance(segment, str):
        return container.get(segment)
    if isinstance(container, list) and isinstance(segment, int) and 0 <= segment < len(container):
        return container[segment]
    return None


def _place_error(data: dict[str, Any], path: list[Any], message: str) -> bool:
    """Record ``message`` on the deepest object along ``path`` that still exists."""
    owner: Optional[dict[str, Any]] = None
    owner_key = ""
    container: Any = data
    for segment in path:
        if isinstance(container, dict) and isinstance(segment, str):
            owner, owner_key = container, segment
        child = _child(container, segment)
        if not isinstance(child, (dict, list)):
            break
        container = child
    if owner is None:
        return False
    owner.setdefault(UPSTREAM_ERRORS_KEY, {}).setdefault(owner_key, []).append(message)
    return True


def annotate_errors(data: dict[str, Any], errors: list[dict[str, Any]]) -> list[str]:
    """Attach upstream errors to the objects owning the failed fields.

    Returns the messages that could not be placed by path.
    """
    unplaced: list[str] = []
    for error in errors:
        message = str(error.get("message", error))
        path = error.get("path") or []
        if not path or not _place_error(data, path, message):
            unplaced.append(message)
    return unplaced


def resolve_upstream_field(source: Any, info: GraphQLResolveInfo, **_args: Any) -> Any:
    """Default resolver for upstream fields: read by response key (alias-aware)."""
    if not isinstance(source, Mapping):
        return None
    return read_upstream_value(source, info.path.key)


def resolve_abstract_type(value: Any, _info: GraphQLResolveInfo, _type: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        return value.get("__typename")
    return None


# ---------------------------------------------------------------------------
# Document rewriting
# ---------------------------------------------------------------------------


class _VariableCollector(Visitor):
    def __init__(self) -> None:
        super().__init__()
        self.names: set[str] = set()

    def enter_variable(self, node: Any, *_args: Any) -> None:
        self.names.add(node.name.value)


class SelectionRewriter:
    """Rewrites client selections into upstream selections."""

    def __init__(self, schema: GraphQLSchema, registry: Registry) -> None:
        self._schema = schema
        self._registry = registry
        self.spreads: set[str] = set()

    def rewrite_field(self, node: FieldNode, parent_type: Any) -> FieldNode:
        if node.selection_set is None:
            return node
        field_def = parent_type.fields[node.name.value]
        return FieldNode(
            alias=node.alias,
            name=node.name,
            arguments=node.arguments,
            directives=node.directives,
            selection_set=self.rewrite_selection_set(
                node.selection_set, get_named_type(field_def.type)
            ),
        )

    def rewrite_selection_set(
        self, selection_set: SelectionSetNode, parent_type: GraphQLNamedType
    ) -> SelectionSetNode:
        selections: list[Any] = []
        injected: list[DerivedField] = []
        has_typename = False

        for selection in selection_set.selections:
            if isinstance(selection, FieldNode):
                name = selection.name.value
                if name == "__typename":
                    has_typename = True
                    selections.append(selection)
                    continue
                registration = self._registry.get((parent_type.name, name))
                if registration is not None:
                    if registration.selection not in {r.selection for r in injected}:
                        injected.append(registration)
                    continue
                selections.append(self.rewrite_field(selection, parent_type))
            elif isinstance(selection, InlineFragmentNode):
                condition = parent_type
                if selection.type_condition is not None:
                    condition = self._schema.get_type(selection.type_condition.name.value)
                selections.append(
                    InlineFragmentNode(
                        type_condition=selection.type_condition,
                        directives=selection.directives,
                        selection_set=self.rewrite_selection_set(
                            selection.selection_set, condition
                        ),
                    )
                )
            elif isinstance(selection, FragmentSpreadNode):
                self.spreads.add(selection.name.value)
                selections.append(selection)

        for registration in injected:
            selections.append(
                InlineFragmentNode(
                    type_condition=NamedTypeNode(name=NameNode(value=parent_type.name)),
                    directives=(),
                    selection_set=registration.selection_set,
                )
            )

        if is_abstract_type(parent_type) and not has_typename:
            selections.append(FieldNode(name=NameNode(value="__typename"), arguments=(), directives=()))

        return SelectionSetNode(selections=tuple(selections))


class Delegator:
    """Sends root fields upstream and unpacks the answers."""

    def __init__(self, registry: Registry, link: UpstreamLink) -> None:
        self._registry = registry
        self._link = link

    def build_request(
        self, info: GraphQLResolveInfo
    ) -> tuple[DocumentNode, dict[str, Any]]:
        """Build the upstream document and variables for the current root field."""
        rewriter = SelectionRewriter(info.schema, self._registry)
        fields = tuple(
            rewriter.rewrite_field(node, info.parent_type) for node in info.field_nodes
        )

        fragments: list[FragmentDefinitionNode] = []
        included: set[str] = set()
        while rewriter.spreads - included:
            for name in sorted(rewriter.spreads - included):
                included.add(name)
                fragment = info.fragments[name]
                condition = info.schema.get_type(fragment.type_condition.name.value)
                fragments.append(
                    FragmentDefinitionNode(
                        name=fragment.name,
                        type_condition=fragment.type_condition,
                        directives=fragment.directives,
                        selection_set=rewriter.rewrite_selection_set(
                            fragment.selection_set, condition
                        ),
                    )
                )

        selection_set = SelectionSetNode(selections=fields)
        collector = _VariableCollector()
        visit(selection_set, collector)
        for fragment in fragments:
            visit(fragment, collector)

        operation = OperationDefinitionNode(
            operation=info.operation.operation,
            name=info.operation.name,
            variable_definitions=tuple(
                definition
                for definition in info.operation.variable_definitions or ()
                if definition.variable.name.value in collector.names
            ),
            directives=(),
            selection_set=selection_set,
        )
        variables = {
            name: info.variable_values[name]
            for name in sorted(collector.names)
            if name in info.variable_values
        }
        return DocumentNode(definitions=(operation, *fragments)), variables

    @staticmethod
    def _operation_name(info: GraphQLResolveInfo) -> Optional[str]:
        return info.operation.name.value if info.operation.name else None

    @staticmethod
    def _unpack(result: Mapping[str, Any], key: str) -> dict[str, Any]:
        data = result.get("data") or {}
        unplaced = annotate_errors(data, result.get("errors") or [])
        if unplaced:
            if data.get(key) is None:
                data.setdefault(UPSTREAM_ERRORS_KEY, {}).setdefault(key, []).extend(unplaced)
            else:
                logger.debug("Dropping unplaced upstream errors for %s: %s", key, unplaced)
        return data

    async def resolve_root(self, _root: Any, info: GraphQLResolveInfo, **_args: Any) -> Any:
        """Resolver for query and mutation root fields."""
        document, variables = self.build_request(info)
        result = await self._link.execute(document, variables, self._operation_name(info))
        data = self._unpack(result, info.path.key)
        return read_upstream_value(data, info.path.key)

    async def subscribe_root(
        self, _root: Any, info: GraphQLResolveInfo, **_args: Any
    ) -> AsyncIterator[dict[str, Any]]:
        """Source stream for subscription root fields; each event is the upstream data."""
        document, variables = self.build_request(info)
        stream = await self._link.execute(document, variables, self._operation_name(info))
        try:
            async for result in stream:
                yield self._unpack(result, info.path.key)
        finally:
            await stream.aclose()
