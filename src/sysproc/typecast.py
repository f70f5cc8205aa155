from __future__ import annotations

from dataclasses import MISSING, fields, is_dataclass
from types import NoneType
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, Union, get_type_hints

from typing_extensions import TypeAlias, get_args, get_origin

if TYPE_CHECKING:
    from _typeshed import DataclassInstance

    T_Data = TypeVar("T_Data", bound=DataclassInstance)


Primitive: TypeAlias = (
    "str | float | int | bool | None | list[Primitive] | dict[str, Primitive]"
)


class ConfigError(Exception):
    def __init__(self, key: str, message: str) -> None:
        self.key = key
        self.message = message
        super().__init__(f"Invalid value for {key or 'config'!r}: {message}")


def _join_key(key: str, next_key: str) -> str:
    return f"{key}.{next_key}" if key else next_key


def _coerce_dataclass(typ: type[T_Data], val: Primitive, *, key: str) -> T_Data:
    val = _coerce_type(dict, val, key=key)
    hints = get_type_hints(typ)
    known = {f.name for f in fields(typ) if f.init}
    required = {
        f.name
        for f in fields(typ)
        if f.init and f.default is MISSING and f.default_factory is MISSING
    }

    unknown = sorted(set(val).difference(known))
    missing = sorted(required.difference(val))
    problems = []
    if missing:
        problems.append(f"missing keys: {missing}")
    if unknown:
        problems.append(f"unknown keys: {unknown}")
    if problems:
        raise ConfigError(key, ", ".join(problems))

    kwargs = {
        k: typecast(hints[k], v, key=_join_key(key, k)) for k, v in val.items()
    }
    return typ(**kwargs)


def _coerce_type(typ: type[Any], val: Primitive, *, key: str) -> Any:
    if typ is Any:
        return val

    if is_dataclass(typ):
        return _coerce_dataclass(typ, val, key=key)

    # bool is an int subclass
    if isinstance(val, bool) and typ is not bool or not isinstance(val, typ):
        msg = f"expected {typ.__name__}, got {type(val).__name__}"
        raise ConfigError(key, msg)
    return val


def _coerce_dict(typ: Any, val: Primitive, *, key: str) -> dict[str, Any]:
    val = _coerce_type(dict, val, key=key)
    _, vt = get_args(typ)
    return {k: typecast(vt, v, key=_join_key(key, k)) for k, v in val.items()}


def _coerce_list(typ: Any, val: Primitive, *, key: str) -> list[Any]:
    val = _coerce_type(list, val, key=key)
    (it,) = get_args(typ)
    return [typecast(it, item, key=f"{key}[{index}]") for index, item in enumerate(val)]


def _coerce_optional(typ: Any, val: Primitive, *, key: str) -> Any:
    args = [a for a in get_args(typ) if a is not NoneType]
    if len(args) != 1:
        raise NotImplementedError(f"{typ} is not supported")
    if val is None:
        return None
    return typecast(args[0], val, key=key)


_origin_mapper = {
    dict: _coerce_dict,
    list: _coerce_list,
    Union: _coerce_optional,
}


class Coercable(Protocol):
    def __call__(self, typ: Any, val: Primitive, *, key: str) -> Any: ...


def typecast(typ: Any, val: Primitive, *, key: str = "") -> Any:
    """Validate TOML data ``val`` against ``typ`` and build it.

    Supports dataclasses, ``str``/``int``/``bool``, ``list[T]``,
    ``dict[str, T]`` and ``Optional[T]``. Raises :class:`ConfigError` naming
    the dotted key of the first bad value.
    """
    coerce: Coercable
    if (origin := get_origin(typ)) in _origin_mapper:
        coerce = _origin_mapper[origin]
    elif origin is None and (isinstance(typ, type) or typ is Any):
        coerce = _coerce_type
    else:
        raise NotImplementedError(f"{typ} is not supported")

    return coerce(typ, val, key=key)
