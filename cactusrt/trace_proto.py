"""Trace packet messages and their protobuf wire encoding.

The messages cover the subset of the Perfetto trace format used by the
tracer: process and thread track descriptors, track events and interned
event names and categories. ``serialize`` emits standard protobuf bytes, and
concatenating serialized ``Trace`` messages yields a valid trace file.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar

_MASK64 = (1 << 64) - 1

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_LEN = 2
_WIRE_FIXED32 = 5


class TrackEventType(enum.IntEnum):
    """Kinds of track events."""

    UNSPECIFIED = 0
    SLICE_BEGIN = 1
    SLICE_END = 2
    INSTANT = 3
    COUNTER = 4


class SequenceFlags(enum.IntFlag):
    """Flags describing the incremental state of a packet sequence."""

    SEQ_INCREMENTAL_STATE_CLEARED = 1
    SEQ_NEEDS_INCREMENTAL_STATE = 2


class _Kind(enum.Enum):
    UINT = "uint"
    INT = "int"
    BOOL = "bool"
    ENUM = "enum"
    STRING = "string"
    MESSAGE = "message"


def _encode_varint(value: int) -> bytes:
    value &= _MASK64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _MASK64, pos
        shift += 7
        if shift >= 70:
            raise ValueError("varint is too long")


def _read_length_delimited(data: bytes, pos: int) -> tuple[bytes, int]:
    length, pos = _read_varint(data, pos)
    end = pos + length
    if end > len(data):
        raise ValueError("truncated length-delimited field")
    return data[pos:end], end


def _skip_field(data: bytes, pos: int, wire_type: int) -> int:
    if wire_type == _WIRE_VARINT:
        return _read_varint(data, pos)[1]
    if wire_type == _WIRE_LEN:
        return _read_length_delimited(data, pos)[1]
    if wire_type in (_WIRE_FIXED64, _WIRE_FIXED32):
        end = pos + (8 if wire_type == _WIRE_FIXED64 else 4)
        if end > len(data):
            raise ValueError("truncated fixed-width field")
        return end
    raise ValueError(f"unsupported wire type {wire_type}")


@dataclass(frozen=True)
class _Field:
    number: int
    name: str
    kind: _Kind
    repeated: bool = False
    type: Any = None

    def encode(self, value: Any) -> bytes:
        if self.kind is _Kind.STRING:
            payload = value.encode("utf-8")
        elif self.kind is _Kind.MESSAGE:
            payload = value.serialize()
        else:
            if self.kind is _Kind.UINT and value < 0:
                raise ValueError(f"field {self.name} must not be negative")
            return _encode_varint(self.number << 3 | _WIRE_VARINT) + _encode_varint(int(value))
        return _encode_varint(self.number << 3 | _WIRE_LEN) + _encode_varint(len(payload)) + payload

    def convert(self, raw: Any) -> Any:
        if self.kind is _Kind.STRING:
            return raw.decode("utf-8")
        if self.kind is _Kind.MESSAGE:
            return self.type.parse(raw)
        if self.kind is _Kind.INT:
            return raw - (1 << 64) if raw >= 1 << 63 else raw
        if self.kind is _Kind.BOOL:
            return bool(raw)
        if self.kind is _Kind.ENUM:
            try:
                return self.type(raw)
            except ValueError:
                return raw
        return raw


class _Message:
    _FIELDS: ClassVar[tuple[_Field, ...]] = ()

    def serialize(self) -> bytes:
        """Encode this message in protobuf wire format."""
        out = bytearray()
        for spec in self._FIELDS:
            value = getattr(self, spec.name)
            if spec.repeated:
                items = value
            else:
                items = () if value is None else (value,)
            for item in items:
                out += spec.encode(item)
        return bytes(out)

    @classmethod
    def parse(cls, data: bytes):
        """Decode a message from protobuf wire format, skipping unknown fields."""
        data = bytes(data)
        by_number = {spec.number: spec for spec in cls._FIELDS}
        values: dict[str, Any] = {}
        pos = 0
        while pos < len(data):
            key, pos = _read_varint(data, pos)
            number, wire_type = key >> 3, key & 7
            spec = by_number.get(number)
            if spec is None:
                pos = _skip_field(data, pos, wire_type)
                continue

            if spec.kind in (_Kind.STRING, _Kind.MESSAGE):
                if wire_type != _WIRE_LEN:
                    raise ValueError(f"field {spec.name} has wire type {wire_type}")
                chunk, pos = _read_length_delimited(data, pos)
                items = [spec.convert(chunk)]
            elif wire_type == _WIRE_VARINT:
                raw, pos = _read_varint(data, pos)
                items = [spec.convert(raw)]
            elif wire_type == _WIRE_LEN and spec.repeated:
                chunk, pos = _read_length_delimited(data, pos)
                items = []
                inner = 0
                while inner < len(chunk):
                    raw, inner = _read_varint(chunk, inner)
                    items.append(spec.convert(raw))
            else:
                raise ValueError(f"field {spec.name} has wire type {wire_type}")

            if spec.repeated:
                values.setdefault(spec.name, []).extend(items)
            else:
                values[spec.name] = items[-1]
        return cls(**values)


@dataclass
class ProcessDescriptor(_Message):
    pid: int | None = None
    process_name: str | None = None

    _FIELDS = (
        _Field(1, "pid", _Kind.INT),
        _Field(6, "process_name", _Kind.STRING),
    )


@dataclass
class ThreadDescriptor(_Message):
    pid: int | None = None
    tid: int | None = None
    thread_name: str | None = None

    _FIELDS = (
        _Field(1, "pid", _Kind.INT),
        _Field(2, "tid", _Kind.INT),
        _Field(5, "thread_name", _Kind.STRING),
    )


@dataclass
class TrackDescriptor(_Message):
    uuid: int | None = None
    name: str | None = None
    process: ProcessDescriptor | None = None
    thread: ThreadDescriptor | None = None
    parent_uuid: int | None = None

    _FIELDS = (
        _Field(1, "uuid", _Kind.UINT),
        _Field(2, "name", _Kind.STRING),
        _Field(3, "process", _Kind.MESSAGE, type=ProcessDescriptor),
        _Field(4, "thread", _Kind.MESSAGE, type=ThreadDescriptor),
        _Field(5, "parent_uuid", _Kind.UINT),
    )


@dataclass
class InternedString(_Message):
    """An interned event name or category: an id and the string it stands for."""

    iid: int | None = None
    name: str | None = None

    _FIELDS = (
        _Field(1, "iid", _Kind.UINT),
        _Field(2, "name", _Kind.STRING),
    )


@dataclass
class InternedData(_Message):
    event_categories: list[InternedString] = field(default_factory=list)
    event_names: list[InternedString] = field(default_factory=list)

    _FIELDS = (
        _Field(1, "event_categories", _Kind.MESSAGE, repeated=True, type=InternedString),
        _Field(2, "event_names", _Kind.MESSAGE, repeated=True, type=InternedString),
    )


@dataclass
class TrackEvent(_Message):
    category_iids: list[int] = field(default_factory=list)
    type: TrackEventType | None = None
    name_iid: int | None = None
    track_uuid: int | None = None
    categories: list[str] = field(default_factory=list)
    name: str | None = None

    _FIELDS = (
        _Field(3, "category_iids", _Kind.UINT, repeated=True),
        _Field(9, "type", _Kind.ENUM, type=TrackEventType),
        _Field(10, "name_iid", _Kind.UINT),
        _Field(11, "track_uuid", _Kind.UINT),
        _Field(22, "categories", _Kind.STRING, repeated=True),
        _Field(23, "name", _Kind.STRING),
    )


@dataclass
class TracePacket(_Message):
    timestamp: int | None = None
    trusted_packet_sequence_id: int | None = None
    track_event: TrackEvent | None = None
    interned_data: InternedData | None = None
    sequence_flags: int | None = None
    previous_packet_dropped: bool | None = None
    track_descriptor: TrackDescriptor | None = None
    first_packet_on_sequence: bool | None = None

    _FIELDS = (
        _Field(8, "timestamp", _Kind.UINT),
        _Field(10, "trusted_packet_sequence_id", _Kind.UINT),
        _Field(11, "track_event", _Kind.MESSAGE, type=TrackEvent),
        _Field(12, "interned_data", _Kind.MESSAGE, type=InternedData),
        _Field(13, "sequence_flags", _Kind.UINT),
        _Field(42, "previous_packet_dropped", _Kind.BOOL),
        _Field(60, "track_descriptor", _Kind.MESSAGE, type=TrackDescriptor),
        _Field(87, "first_packet_on_sequence", _Kind.BOOL),
    )


@dataclass
class Trace(_Message):
    packets: list[TracePacket] = field(default_factory=list)

    _FIELDS = (_Field(1, "packets", _Kind.MESSAGE, repeated=True, type=TracePacket),)

    def serialize(self) -> bytes:
        """Encode this trace in protobuf wire format."""
        return super().serialize()

    @classmethod
    def parse(cls, data: bytes) -> Trace:
        """Decode a trace, or several concatenated traces, from protobuf bytes."""
        return super().parse(data)