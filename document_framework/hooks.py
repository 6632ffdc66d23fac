import inspect
import typing

AFTER_LOAD = "after_load"
BEFORE_SAVE = "before_save"
AFTER_SAVE = "after_save"
BEFORE_DELETE = "before_delete"
AFTER_DELETE = "after_delete"

EVENTS = (AFTER_LOAD, BEFORE_SAVE, AFTER_SAVE, BEFORE_DELETE, AFTER_DELETE)

Hook = typing.Callable[[typing.Any], typing.Any]


def _check_event(event: str) -> None:
    if event not in EVENTS:
        raise ValueError(f"Unknown lifecycle event '{event}', expected one of {', '.join(EVENTS)}")


def hook(event: str) -> typing.Callable[[Hook], Hook]:
    """Marks a method of a model class (or of a mixin composed into one) as a lifecycle hook.

    Every marked method of every class in the MRO runs once per event, base classes first::

        class Timestamped:
            @hook("before_save")
            def touch(self) -> None:
                self.updated_at = datetime.utcnow()

        class Movie(Timestamped, Document):
            title: str
    """

    _check_event(event)

    def decorator(fn: Hook) -> Hook:
        fn.__hook_event__ = event
        return fn

    return decorator


def register(cls: typing.Type, event: str, fn: Hook) -> None:
    _check_event(event)
    if "_registered_hooks" not in vars(cls):
        cls._registered_hooks = []
    cls._registered_hooks.append((event, fn))


def collect(cls: typing.Type, event: str) -> typing.List[Hook]:
    bases = list(reversed(cls.__mro__))
    declared = [
        attribute
        for base in bases
        for attribute in vars(base).values()
        if getattr(attribute, "__hook_event__", None) == event
    ]
    registered = [fn for base in bases for hook_event, fn in vars(base).get("_registered_hooks", ()) if hook_event == event]
    return declared + registered


async def run(instance: typing.Any, event: str) -> None:
    for fn in collect(type(instance), event):
        result = fn(instance)
        if inspect.isawaitable(result):
            await result
