import pytest
from starlette.requests import ClientDisconnect

from filyo.core.errors import SizeExceeded
from filyo.services.intake import UploadIntake
from filyo.utils.multipart import FieldPart, FileChunk, FileEnd, FileStart


def blobs(directory):
    if not directory.exists():
        return []
    return [p for p in directory.iterdir() if p.is_file()]


async def stream(*events, fail_with=None):
    for event in events:
        yield event
    if fail_with is not None:
        raise fail_with


async def test_fields_after_files_are_collected(tmp_path):
    result = await UploadIntake(tmp_path).run(
        stream(
            FileStart("files", "a.txt", "text/plain"),
            FileChunk(b"abc"),
            FileEnd(),
            FieldPart("password", "secret"),
        )
    )
    assert result.fields == {"password": "secret"}
    assert [f.size for f in result.files] == [3]
    assert len(blobs(tmp_path)) == 1


async def test_client_disconnect_mid_file_leaves_nothing(tmp_path):
    events = stream(
        FileStart("files", "done.txt", "text/plain"),
        FileChunk(b"complete"),
        FileEnd(),
        FileStart("files", "partial.bin", "application/octet-stream"),
        FileChunk(b"half of it"),
        fail_with=ClientDisconnect(),
    )
    with pytest.raises(ClientDisconnect):
        await UploadIntake(tmp_path).run(events)
    assert blobs(tmp_path) == []


async def test_size_cap_drains_then_fails(tmp_path):
    events = stream(
        FileStart("files", "big.bin", "application/octet-stream"),
        FileChunk(b"x" * 10),
        FileChunk(b"x" * 10),
        FileEnd(),
        FileStart("files", "after.txt", "text/plain"),
        FileChunk(b"ok"),
        FileEnd(),
    )
    with pytest.raises(SizeExceeded):
        await UploadIntake(tmp_path, max_file_size=15).run(events)
    assert blobs(tmp_path) == []
