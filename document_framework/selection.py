"""Field-selection trees.

A selection is ``True`` (everything), ``False`` (identity only), or a dict mapping
field names to selections. ``{}`` at an embedded or reference field asks for its
identity only. Array fields take their element selection wrapped in a
one-element list, e.g. ``{"actors": [{"full_name": True}]}``.
"""

import typing

from document_framework.exceptions import TypeMismatch, ValidationError
from document_framework.schema import ModelSchema, PrimitiveFieldNode
from document_framework.storages.base import Selection

if typing.TYPE_CHECKING:
    from document_framework.registry import Registry


def validate(schema: ModelSchema, selection: typing.Any, registry: "Registry") -> Selection:
    if isinstance(selection, bool):
        return selection
    if not isinstance(selection, dict):
        raise ValidationError(f"A selection must be a bool or a dict (provided: {type(selection).__name__})")

    for name, field_selection in selection.items():
        if name not in schema:
            raise ValidationError(f"'{schema.name}' has no field '{name}'")
        node = schema[name]

        if isinstance(field_selection, list):
            if not node.is_list or len(field_selection) != 1:
                raise TypeMismatch(f"Only array fields take a one-element list selection (field: '{name}')")
            field_selection = field_selection[0]
        elif isinstance(field_selection, dict) and node.is_list:
            raise TypeMismatch(f"Type mismatch (field: '{name}', expected: 'bool' or 'array', provided: 'object')")

        if isinstance(field_selection, bool):
            continue
        if isinstance(node, PrimitiveFieldNode):
            raise TypeMismatch(f"Type mismatch (field: '{name}', expected: 'bool')")
        validate(registry.schema(node.type.__name__), field_selection, registry)

    return selection


def field_selection(selection: Selection, name: str) -> typing.Optional[Selection]:
    """Selection applying to field ``name``, or None when the field is not targeted."""
    if selection is True:
        return True
    if isinstance(selection, dict):
        value = selection.get(name)
        if value is not None and value is not False:
            return value
    return None


def element_selection(selection: Selection) -> Selection:
    if isinstance(selection, list):
        return selection[0]
    return selection
