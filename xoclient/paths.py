"""REST path composition and filter-string builders."""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

WILDCARD = '_'
ACTIONS = 'actions'
TAGS = 'tags'

# Filter fields the server documents; other names pass through unchanged.
FILTER_FIELDS = frozenset({
    'power_state',
    'name_label',
    'pool_id',
    'tags',
    '$poolId',
    'SR_type',
    'type',
    'status',
})


class PathBuilder:
    """
    Fluent builder for REST paths relative to the rest/v0 base.

        PathBuilder().resource('pools').id(pool_id).actions_group().action('create_vm').build()
    """

    def __init__(self):
        self._segments = []

    def resource(self, name: str) -> "PathBuilder":
        self._segments.append(name)
        return self

    def id(self, value: UUID) -> "PathBuilder":
        self._segments.append(str(value))
        return self

    def id_string(self, value: str) -> "PathBuilder":
        self._segments.append(value)
        return self

    def wildcard(self) -> "PathBuilder":
        self._segments.append(WILDCARD)
        return self

    def actions_group(self) -> "PathBuilder":
        self._segments.append(ACTIONS)
        return self

    def action(self, name: str) -> "PathBuilder":
        self._segments.append(name)
        return self

    def build(self) -> str:
        return '/'.join(self._segments)


def format_path(resource: str, value) -> str:
    return PathBuilder().resource(resource).id_string(str(value)).build()


def format_action_path(resource: str, action: str) -> str:
    return PathBuilder().resource(resource).wildcard().actions_group().action(action).build()


def tag_path(resource: str, value, tag: str) -> str:
    return PathBuilder().resource(resource).id_string(str(value)).resource(TAGS).id_string(tag).build()


def filter_clause(field: str, value) -> str:
    """Return ``field:value``, or an empty string when value is empty."""
    if value is None or value == '':
        return ''
    if isinstance(value, bool):
        value = 'true' if value else 'false'
    return f"{field}:{value}"


def build_filter(*clauses: str) -> str:
    return ','.join(c for c in clauses if c)


def build_filter_from_model(model: Optional[BaseModel]) -> str:
    """
    Build a filter from a model's set fields in declaration order.

    Field aliases are used as filter names, so ``VMFilter(pool_id=...)`` and
    ``SRFilter(pool_id=...)`` can target different server fields.
    """
    if model is None:
        return ''
    clauses = []
    for name, field in type(model).model_fields.items():
        value = getattr(model, name)
        key = field.alias or name
        if isinstance(value, (list, tuple, set)):
            clauses.extend(filter_clause(key, v) for v in value)
        else:
            clauses.append(filter_clause(key, getattr(value, 'value', value)))
    return build_filter(*clauses)
