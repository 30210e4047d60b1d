"""Command parameters: typed values, validation and binding."""

from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_NAME_PREFIXES = "@:$"


class DbType(StrEnum):
    """Database type of a strongly-typed parameter."""

    ANSI_STRING = "ansi_string"
    STRING = "string"
    BOOLEAN = "boolean"
    BYTE = "byte"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    DECIMAL = "decimal"
    DOUBLE = "double"
    FLOAT = "float"
    DATE = "date"
    DATETIME = "datetime"
    DATETIME_OFFSET = "datetime_offset"
    TIME = "time"
    GUID = "guid"
    BINARY = "binary"
    NULL = "null"


class SqlValue(BaseModel):
    """A parameter value tagged with its database type."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    db_type: DbType
    value: Any = None

    @model_validator(mode="after")
    def _null_has_no_value(self) -> SqlValue:
        if self.db_type is DbType.NULL and self.value is not None:
            raise ValueError("NULL parameters cannot carry a value")
        return self


class SqlType:
    """Constructors for typed parameter values."""

    @staticmethod
    def null() -> SqlValue:
        return SqlValue(db_type=DbType.NULL)

    @staticmethod
    def ansi_string(value: str) -> SqlValue:
        return SqlValue(db_type=DbType.ANSI_STRING, value=value)

    @staticmethod
    def string(value: str) -> SqlValue:
        return SqlValue(db_type=DbType.STRING, value=value)

    @staticmethod
    def boolean(value: bool) -> SqlValue:
        return SqlValue(db_type=DbType.BOOLEAN, value=value)

    @staticmethod
    def byte(value: int) -> SqlValue:
        return SqlValue(db_type=DbType.BYTE, value=value)

    @staticmethod
    def int16(value: int) -> SqlValue:
        return SqlValue(db_type=DbType.INT16, value=value)

    @staticmethod
    def int32(value: int) -> SqlValue:
        return SqlValue(db_type=DbType.INT32, value=value)

    @staticmethod
    def int64(value: int) -> SqlValue:
        return SqlValue(db_type=DbType.INT64, value=value)

    @staticmethod
    def decimal(value: Decimal) -> SqlValue:
        return SqlValue(db_type=DbType.DECIMAL, value=value)

    @staticmethod
    def double(value: float) -> SqlValue:
        return SqlValue(db_type=DbType.DOUBLE, value=value)

    @staticmethod
    def float(value: float) -> SqlValue:
        return SqlValue(db_type=DbType.FLOAT, value=value)

    @staticmethod
    def date(value: dt.date) -> SqlValue:
        return SqlValue(db_type=DbType.DATE, value=value)

    @staticmethod
    def datetime(value: dt.datetime) -> SqlValue:
        return SqlValue(db_type=DbType.DATETIME, value=value)

    @staticmethod
    def datetime_offset(value: dt.datetime) -> SqlValue:
        return SqlValue(db_type=DbType.DATETIME_OFFSET, value=value)

    @staticmethod
    def time(value: dt.time) -> SqlValue:
        return SqlValue(db_type=DbType.TIME, value=value)

    @staticmethod
    def guid(value: uuid.UUID) -> SqlValue:
        return SqlValue(db_type=DbType.GUID, value=value)

    @staticmethod
    def binary(value: bytes) -> SqlValue:
        return SqlValue(db_type=DbType.BINARY, value=value)

    @staticmethod
    def infer(value: Any) -> SqlValue:
        """Tag a plain Python value with the closest database type.

        Unrecognized types are tagged as strings; the driver decides at
        execute time whether it can bind them.
        """
        if isinstance(value, SqlValue):
            return value
        if value is None:
            return SqlType.null()
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return SqlType.boolean(value)
        if isinstance(value, int):
            return SqlType.int64(value)
        if isinstance(value, Decimal):
            return SqlType.decimal(value)
        if isinstance(value, float):
            return SqlType.double(value)
        # datetime before date: datetime is a date subclass
        if isinstance(value, dt.datetime):
            if value.tzinfo is not None:
                return SqlType.datetime_offset(value)
            return SqlType.datetime(value)
        if isinstance(value, dt.date):
            return SqlType.date(value)
        if isinstance(value, dt.time):
            return SqlType.time(value)
        if isinstance(value, uuid.UUID):
            return SqlType.guid(value)
        if isinstance(value, bytes | bytearray | memoryview):
            return SqlType.binary(bytes(value))
        return SqlValue(db_type=DbType.STRING, value=value)


class DbParam(BaseModel):
    """A named, typed command parameter."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    db_type: DbType
    value: Any = None

    @field_validator("name")
    @classmethod
    def _strip_prefix(cls, name: str) -> str:
        stripped = name.strip().lstrip(_NAME_PREFIXES)
        if not stripped:
            raise ValueError(f"Invalid parameter name: {name!r}")
        return stripped


RawDbParams = Mapping[str, Any] | Iterable[tuple[str, Any]]
"""Typed parameters as a mapping or list of (name, SqlValue) pairs.

Values that are not SqlValue instances are tagged with ``SqlType.infer``.
"""

RawParams = Mapping[str, Any] | Iterable[tuple[str, Any]]
"""Untyped (name, value) pairs passed through to the driver as-is."""


def _pairs(raw: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> Iterable[tuple[str, Any]]:
    if isinstance(raw, Mapping):
        return raw.items()
    return raw


def create_params(raw: RawDbParams) -> list[DbParam]:
    """Validate typed parameters into DbParam objects."""
    params = []
    for name, value in _pairs(raw):
        typed = SqlType.infer(value)
        params.append(DbParam(name=name, db_type=typed.db_type, value=typed.value))
    return params


def _passthrough(param: DbParam) -> Any:
    return param.value


def to_bindings(
    params: Iterable[DbParam], convert: Callable[[DbParam], Any] = _passthrough
) -> dict[str, Any]:
    """Resolve typed parameters into a fresh name -> driver value mapping.

    ``convert`` lets a driver adapt typed values to what it can bind.
    A later parameter with the same name replaces an earlier one.
    """
    return {param.name: convert(param) for param in params}


def to_raw_bindings(raw: RawParams) -> dict[str, Any]:
    """Resolve untyped (name, value) pairs into a fresh binding mapping."""
    bindings = {}
    for name, value in _pairs(raw):
        stripped = name.strip().lstrip(_NAME_PREFIXES)
        bindings[stripped or name] = value
    return bindings
