import logging
import typing

from document_framework import selection as selections
from document_framework import types
from document_framework.exceptions import TypeMismatch, ValidationError
from document_framework.model import ABSENT, Entity, FieldValue, Model, Presence, stub
from document_framework.schema import EmbeddedFieldNode, FieldNode, FieldVisitor, ModelSchema
from document_framework.storages.base import UNDEFINED, Record, Selection

if typing.TYPE_CHECKING:
    from document_framework.layer import Layer

logger = logging.getLogger(__name__)


def _elements(field: FieldNode, value: typing.Any) -> typing.List[typing.Any]:
    return list(value) if field.is_list else [value]


def _present_elements(instance: Model, field: FieldNode) -> typing.List[typing.Any]:
    field_value = instance._get_field(field.name)
    if field_value.presence is not Presence.PRESENT:
        return []
    return _elements(field, field_value.value)


def _embedded_fields(instance: Model) -> typing.Iterator[EmbeddedFieldNode]:
    return (node for node in instance._schema if isinstance(node, EmbeddedFieldNode))


def has_changes(instance: Model) -> bool:
    if instance.is_new or instance._dirty:
        return True
    return any(
        has_changes(embedded) for node in _embedded_fields(instance) for embedded in _present_elements(instance, node)
    )


def embedded_instances(instance: Model) -> typing.List[Model]:
    """Every loaded instance embedded in ``instance``, depth first."""
    result = []
    for node in _embedded_fields(instance):
        for embedded in _present_elements(instance, node):
            result.append(embedded)
            result.extend(embedded_instances(embedded))
    return result


def cascade(instance: Model) -> Record:
    """Stubs of the subdocuments the store has to remove together with ``instance``."""
    result = {}
    for node in _embedded_fields(instance):
        if not node.type._has_identity:
            continue
        field_value = instance._get_field(node.name)
        if field_value.presence is not Presence.PRESENT:
            continue
        stubs = [{**stub(embedded), **cascade(embedded)} for embedded in _elements(node, field_value.value)]
        result[node.name] = stubs if node.is_list else stubs[0]
    return result


def _storable(value: typing.Any) -> typing.Any:
    if isinstance(value, list):
        return [_storable(element) for element in value]
    if isinstance(value, Model):
        if not value._has_identity:
            raise ValidationError(f"Cannot filter on {value!r}, it has no identity")
        return stub(value)
    return types.to_storage(value)


def convert_filter(schema: ModelSchema, filter: typing.Optional[typing.Dict[str, typing.Any]]) -> Record:
    result = {}
    for name, value in (filter or {}).items():
        if name not in schema:
            raise ValidationError(f"'{schema.name}' has no field '{name}'")
        result[name] = _storable(value)
    return result


class RecordWriter(FieldVisitor):
    """Turns the pending changes of an instance, and of what it embeds, into store changes.

    References become ``{_type, _id}`` stubs; the documents they point to are saved on
    their own. Embedded subdocuments carry their own changes and get upserted by the
    store, identity-less models are rewritten inline as a whole.
    """

    def __init__(self) -> None:
        self.written: typing.List[Model] = []
        self._instances: typing.List[Model] = []

    def changes(self, instance: Model) -> Record:
        return self._changes(instance, full=instance.is_new or not instance._has_identity)

    def _changes(self, instance: Model, full: bool) -> Record:
        self._instances.append(instance)
        try:
            result = {}
            for node in instance._schema:
                field_value = instance._get_field(node.name)
                if full:
                    if field_value.presence is Presence.PRESENT:
                        result[node.name] = node.accept(self)
                elif self._is_pending(instance, node):
                    if field_value.presence is Presence.ABSENT:
                        result[node.name] = UNDEFINED
                    else:
                        result[node.name] = node.accept(self)
            return result
        finally:
            self._instances.pop()

    @staticmethod
    def _is_pending(instance: Model, field: FieldNode) -> bool:
        if field.name in instance._dirty:
            return True
        if isinstance(field, EmbeddedFieldNode):
            return any(has_changes(embedded) for embedded in _present_elements(instance, field))
        return False

    def _map(self, field: FieldNode, fn: typing.Callable[[typing.Any], typing.Any]) -> typing.Any:
        value = self._instances[-1]._get_field(field.name).value
        values = [fn(element) for element in _elements(field, value)]
        return values if field.is_list else values[0]

    def visit_primitive(self, field: FieldNode) -> typing.Any:
        return self._map(field, types.to_storage)

    def visit_embedded(self, field: FieldNode) -> typing.Any:
        return self._map(field, self._embedded)

    def visit_reference(self, field: FieldNode) -> typing.Any:
        return self._map(field, stub)

    def _embedded(self, instance: Model) -> Record:
        if not instance._has_identity:
            self.written.append(instance)
            return {**stub(instance), **self.changes(instance)}

        if has_changes(instance):
            self.written.append(instance)
        return {**stub(instance), "_is_new": instance.is_new, **self.changes(instance)}


class RecordReader(FieldVisitor):
    """Merges fetched records into live instances.

    Only fields targeted by the selection are touched. A targeted field missing from
    the record is absent. By default known fields are kept as they are and only
    unknown ones get filled; with ``overwrite`` every targeted field is replaced.
    Identified nested records resolve through the layer identity map, and every
    instance materialized along the way is collected in ``materialized``.
    """

    def __init__(self, layer: "Layer", overwrite: bool = False) -> None:
        self.materialized: typing.List[Model] = []
        self._layer = layer
        self._overwrite = overwrite
        self._frames: typing.List[typing.Tuple[Model, typing.Any, Selection, bool]] = []

    def materialize(self, model_cls: typing.Type[Entity], id: str) -> Entity:
        instance = self._layer.identity_map.register(model_cls._materialize(id))
        self.materialized.append(instance)
        logger.debug("Materialized %s/%s", model_cls.__name__, id)
        return instance

    def merge(self, instance: Model, record: Record, selection: Selection, reference: bool = False) -> Model:
        schema = instance._schema
        for name in record:
            if not name.startswith("_") and name not in schema:
                logger.warning("Ignoring field '%s' of a '%s' record, it is not part of the schema", name, schema.name)

        if reference and selection is True and set(record) <= {"_type", "_id"}:
            # A referenced record reduced to its stub comes from a reference cycle or a dangling reference
            return instance

        for node in schema:
            field_selection = selections.field_selection(selection, node.name)
            if field_selection is None:
                continue

            replace = self._overwrite or instance._get_field(node.name).presence is Presence.UNKNOWN
            if node.name not in record:
                if replace:
                    instance._set_field(node.name, ABSENT)
                continue

            self._frames.append((instance, record[node.name], field_selection, replace))
            try:
                value = node.accept(self)
            finally:
                self._frames.pop()
            if replace:
                instance._set_field(node.name, FieldValue.present(value))

        return instance

    def _raw_elements(self, field: FieldNode) -> typing.List[typing.Any]:
        raw = self._frames[-1][1]
        if isinstance(raw, list) != field.is_list:
            expected = "array" if field.is_list else "scalar or object"
            raise TypeMismatch(f"Type mismatch (field: '{field.name}', expected: '{expected}')")
        return _elements(field, raw)

    def visit_primitive(self, field: FieldNode) -> typing.Any:
        values = [types.from_storage(raw, field.type) for raw in self._raw_elements(field)]
        return values if field.is_list else values[0]

    def visit_embedded(self, field: FieldNode) -> typing.Any:
        return self._nested(field)

    def visit_reference(self, field: FieldNode) -> typing.Any:
        return self._nested(field, identified=True)

    def _nested(self, field: FieldNode, identified: bool = False) -> typing.Any:
        """Merges the nested records of ``field``.

        When the field keeps its current value, records are only merged into instances
        that already exist; nothing new is materialized for a value that is dropped.
        """

        instance, _, field_selection, replace = self._frames[-1]
        element_selection = selections.element_selection(field_selection)
        current = _present_elements(instance, field)

        values = []
        for index, raw in enumerate(self._raw_elements(field)):
            if not isinstance(raw, dict):
                raise TypeMismatch(f"Type mismatch (field: '{field.name}', expected: 'object')")
            model_cls = self._layer[raw.get("_type", field.type.__name__)]

            if "_id" in raw:
                nested = self._layer.identity_map.get(model_cls.__name__, raw["_id"])
                if nested is None:
                    if not replace:
                        continue
                    nested = self.materialize(model_cls, raw["_id"])
            elif identified:
                raise TypeMismatch(f"A reference must carry an '_id' (field: '{field.name}')")
            elif index < len(current) and isinstance(current[index], model_cls):
                nested = current[index]
            elif not replace:
                continue
            else:
                nested = model_cls._materialize()
                self.materialized.append(nested)

            values.append(self.merge(nested, raw, element_selection, reference=identified))

        if field.is_list:
            return values
        return values[0] if values else None
