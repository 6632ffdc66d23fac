import logging
import typing

from document_framework.exceptions import UnknownModel
from document_framework.identity_map import IdentityMap
from document_framework.model import Model
from document_framework.registry import Registry
from document_framework.storages.base import Store

logger = logging.getLogger(__name__)


class Layer:
    """Unit of identity over a store.

    Every model passed in is bound to the layer through a subclass of the same name,
    reachable as ``layer.Movie`` or ``layer["Movie"]``. Within a layer each
    ``(model, id)`` pair maps to at most one live instance. Instances of different
    layers (forks included) are never shared, even when they represent the same record.
    """

    def __init__(self, *models: typing.Type[Model], store: Store, registry: typing.Optional[Registry] = None) -> None:
        self.store = store
        self.registry = registry if registry is not None else Registry.build(models)
        self.identity_map = IdentityMap()
        self._models: typing.Dict[str, typing.Type[Model]] = {
            name: self._bind(model) for name, model in self.registry.models.items()
        }
        logger.debug("Created %r", self)

    def _bind(self, model: typing.Type[Model]) -> typing.Type[Model]:
        return type(
            model.__name__,
            (model,),
            {"_layer": self, "__module__": model.__module__, "__qualname__": model.__qualname__},
        )

    def fork(self) -> "Layer":
        """New layer over the same store and models, with an empty identity map."""
        return type(self)(store=self.store, registry=self.registry)

    @property
    def models(self) -> typing.Dict[str, typing.Type[Model]]:
        return dict(self._models)

    def __getitem__(self, name: str) -> typing.Type[Model]:
        try:
            return self._models[name]
        except KeyError:
            raise UnknownModel(f"No model named '{name}' is bound to this layer") from None

    def __getattr__(self, name: str) -> typing.Type[Model]:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._models[name]
        except KeyError:
            raise AttributeError(f"No model named '{name}' is bound to this layer") from None

    def __repr__(self) -> str:
        return f"Layer(models={sorted(self._models)}, store={type(self.store).__name__})"
