"""
Incremental multipart/form-data reader.

``iter_parts`` feeds the raw request stream into python-multipart's push
parser and yields one event per parser milestone, so file bodies reach the
caller chunk by chunk and fields arrive in whatever order the client sent
them.
"""
from dataclasses import dataclass
from typing import AsyncIterator, Union

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import Request

from filyo.core.errors import ValidationError

MAX_FIELD_SIZE = 64 * 1024


@dataclass
class FieldPart:
    name: str
    value: str


@dataclass
class FileStart:
    name: str
    filename: str
    content_type: str


@dataclass
class FileChunk:
    data: bytes


@dataclass
class FileEnd:
    pass


PartEvent = Union[FieldPart, FileStart, FileChunk, FileEnd]


class _EventCollector:
    def __init__(self):
        self.events: list[PartEvent] = []
        self._header_field = b""
        self._header_value = b""
        self._headers: dict[bytes, bytes] = {}
        self._name = ""
        self._is_file = False
        self._field_data = bytearray()

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

    def drain(self) -> list[PartEvent]:
        events, self.events = self.events, []
        return events

    def on_part_begin(self):
        self._headers = {}
        self._name = ""
        self._is_file = False
        self._field_data = bytearray()

    def on_part_data(self, data: bytes, start: int, end: int):
        chunk = data[start:end]
        if self._is_file:
            self.events.append(FileChunk(bytes(chunk)))
            return
        if len(self._field_data) + len(chunk) > MAX_FIELD_SIZE:
            raise ValidationError(f"Field '{self._name}' is too large")
        self._field_data.extend(chunk)

    def on_part_end(self):
        if self._is_file:
            self.events.append(FileEnd())
        else:
            self.events.append(FieldPart(self._name, self._field_data.decode("utf-8", errors="replace")))

    def on_header_field(self, data: bytes, start: int, end: int):
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int):
        self._header_value += data[start:end]

    def on_header_end(self):
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self):
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        self._name = options.get(b"name", b"").decode("utf-8", errors="replace")
        if b"filename" in options:
            self._is_file = True
            self.events.append(
                FileStart(
                    name=self._name,
                    filename=options[b"filename"].decode("utf-8", errors="replace"),
                    content_type=self._headers.get(b"content-type", b"").decode("latin-1"),
                )
            )


async def iter_parts(request: Request) -> AsyncIterator[PartEvent]:
    content_type, params = parse_options_header(request.headers.get("content-type", ""))
    if content_type != b"multipart/form-data" or b"boundary" not in params:
        raise ValidationError("Expected a multipart/form-data body")

    collector = _EventCollector()
    parser = MultipartParser(params[b"boundary"], collector.callbacks())
    try:
        async for chunk in request.stream():
            if chunk:
                parser.write(chunk)
            for event in collector.drain():
                yield event
        parser.finalize()
    except MultipartParseError as exc:
        raise ValidationError("Malformed multipart body") from exc
    for event in collector.drain():
        yield event
