"""Optional lifecycle hooks.

A record type opts into a hook by defining the matching method; plain and
``async`` methods are both accepted. Types that define none of them pay only
the isinstance check.

    @dataclass
    class User:
        id: str = field(metadata={"constraints": "primarykey"})
        email: str = ""

        def before_save(self):
            if "@" not in self.email:
                raise ValueError("invalid email")

Before-hooks gate the operation: a failure raises HookError(committed=False)
and the provider is never called. After-hooks run once the operation has
completed; a failure raises HookError(committed=True) and nothing is undone.
Delete hooks run on a zero value of the record type since no state is loaded.
"""

import inspect as _inspect
from typing import Any, Iterable, Protocol, runtime_checkable

from .errors import HookError
from .schema import Spec


@runtime_checkable
class BeforeSave(Protocol):
    def before_save(self) -> Any: ...


@runtime_checkable
class AfterSave(Protocol):
    def after_save(self) -> Any: ...


@runtime_checkable
class AfterLoad(Protocol):
    def after_load(self) -> Any: ...


@runtime_checkable
class BeforeDelete(Protocol):
    def before_delete(self) -> Any: ...


@runtime_checkable
class AfterDelete(Protocol):
    def after_delete(self) -> Any: ...


async def _invoke(phase: str, committed: bool, method) -> None:
    try:
        result = method()
        if _inspect.isawaitable(result):
            await result
    except HookError:
        raise
    except Exception as e:
        raise HookError(phase, committed, f"{phase} hook failed: {e}") from e


async def call_before_save(value: Any) -> None:
    if isinstance(value, BeforeSave):
        await _invoke("before_save", False, value.before_save)


async def call_after_save(value: Any) -> None:
    if isinstance(value, AfterSave):
        await _invoke("after_save", True, value.after_save)


async def call_after_load(value: Any) -> None:
    if isinstance(value, AfterLoad):
        await _invoke("after_load", True, value.after_load)


async def call_after_load_all(values: Iterable[Any]) -> None:
    for value in values:
        await call_after_load(value)


def _has_hook(spec: Spec, protocol: type) -> bool:
    return issubclass(spec.record_type, protocol)


async def call_before_delete(spec: Spec) -> None:
    if _has_hook(spec, BeforeDelete):
        await _invoke("before_delete", False, spec.zero().before_delete)


async def call_after_delete(spec: Spec) -> None:
    if _has_hook(spec, AfterDelete):
        await _invoke("after_delete", True, spec.zero().after_delete)
