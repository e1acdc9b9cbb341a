"""Tests for the upload pipeline: negotiator, transmitter, finalizer, uploader."""

from __future__ import annotations

import errno
import hashlib
import io
import os
import threading
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from panupload.client.api import PrecreateResult
from panupload.client.upload import BlockTransmitter, FileUploader, Negotiator
from panupload.core.config import UploadConfig
from panupload.core.digest import compute_digest
from panupload.core.errors import (
    BlockUploadError,
    ProtocolError,
    RemoteError,
    SizeError,
    TransportError,
    UploadCancelledError,
    UploadError,
)
from panupload.core.types import CommittedFile, UploadProgress, UploadSession, UploadTarget

MiB = 1024 * 1024


class FakeRemote:
    """In-memory stand-in for HTTPClient with content-addressed dedup."""

    def __init__(self, needed: list[Any] | None = None) -> None:
        self.needed = needed
        self.known: set[str] = set()
        self.pending: dict[str, str] = {}
        self.uploaded: list[tuple[int, bytes]] = []
        self.calls: list[str] = []
        self.fail_blocks: set[int] = set()
        self._lock = threading.Lock()

    def precreate(
        self,
        path: str,
        size: int,
        block_md5s: tuple[str, ...],
        content_md5: str,
        overwrite: bool = True,
        cancel: threading.Event | None = None,
    ) -> PrecreateResult:
        self.calls.append("precreate")
        if content_md5 in self.known:
            return PrecreateResult(return_type=2)
        self.pending[path] = content_md5
        needed = self.needed if self.needed is not None else list(range(len(block_md5s)))
        return PrecreateResult(return_type=1, upload_id="N1-session", block_list=needed)

    def upload_block(
        self,
        path: str,
        upload_id: str,
        partseq: int,
        data: bytes,
        cancel: threading.Event | None = None,
    ) -> str:
        if partseq in self.fail_blocks:
            raise TransportError("connection reset")
        with self._lock:
            self.calls.append(f"block {partseq}")
            self.uploaded.append((partseq, data))
        return hashlib.md5(data).hexdigest()

    def create_file(
        self,
        path: str,
        size: int,
        upload_id: str,
        block_md5s: tuple[str, ...],
        overwrite: bool = True,
        cancel: threading.Event | None = None,
    ) -> CommittedFile:
        self.calls.append("create")
        content_md5 = self.pending.pop(path, "")
        if not content_md5:
            content_md5 = next(iter(self.known))
        self.known.add(content_md5)
        return CommittedFile(
            fs_id=len(self.known),
            path=path,
            size=size,
            md5=content_md5,
            server_ctime=1700000000,
            server_mtime=1700000000,
        )


def make_uploader(remote: Any, block_size: int = 16, **kwargs: Any) -> FileUploader:
    return FileUploader(remote, UploadConfig(block_size=block_size, **kwargs))


def upload_bytes(uploader: FileUploader, data: bytes, path: str = "/apps/a.bin", **kwargs: Any) -> CommittedFile:
    target = uploader.target(path, len(data))
    return uploader.upload(target, io.BytesIO(data), **kwargs)


class TestUploadScenarios:
    """End-to-end pipeline scenarios."""

    def test_ten_mib_file(self) -> None:
        """10 MiB uploads as 4 MiB, 4 MiB and 2 MiB blocks, then commits."""
        remote = FakeRemote()
        data = os.urandom(10 * MiB)

        committed = upload_bytes(make_uploader(remote, block_size=4 * MiB), data)

        assert [seq for seq, _ in remote.uploaded] == [0, 1, 2]
        assert [len(block) for _, block in remote.uploaded] == [4 * MiB, 4 * MiB, 2 * MiB]
        assert b"".join(block for _, block in remote.uploaded) == data
        assert committed.size == 10 * MiB
        assert committed.md5 == hashlib.md5(data).hexdigest()
        assert remote.calls[-1] == "create"

    def test_zero_byte_file(self) -> None:
        """Empty content: precreate with no blocks, then create directly."""
        remote = MagicMock()
        remote.precreate.return_value = PrecreateResult(return_type=1, upload_id="N1", block_list=[])
        remote.create_file.return_value = CommittedFile(1, "/apps/empty", 0, "d41d8", 0, 0)

        committed = upload_bytes(make_uploader(remote), b"", path="/apps/empty")

        assert committed.size == 0
        assert remote.precreate.call_args.kwargs["block_md5s"] == ()
        remote.upload_block.assert_not_called()
        remote.create_file.assert_called_once()
        assert remote.create_file.call_args.kwargs["block_md5s"] == ()

    def test_rapid_upload_sends_no_blocks(self) -> None:
        """Rapid precreate skips the block phase and commits with an empty session."""
        remote = MagicMock()
        remote.precreate.return_value = PrecreateResult(return_type=2)
        remote.create_file.return_value = CommittedFile(7, "/apps/a.bin", 40, "md5", 0, 0)

        upload_bytes(make_uploader(remote), b"x" * 40)

        remote.upload_block.assert_not_called()
        kwargs = remote.create_file.call_args.kwargs
        assert kwargs["upload_id"] == ""
        assert len(kwargs["block_md5s"]) == 3

    def test_only_named_blocks_sent_in_ascending_order(self) -> None:
        """Blocks {5, 2} of 10 are sent as 2 then 5, each once."""
        remote = FakeRemote(needed=[5, 2])
        data = os.urandom(160)

        upload_bytes(make_uploader(remote), data)

        assert remote.uploaded == [(2, data[32:48]), (5, data[80:96])]

    def test_string_indices_accepted(self) -> None:
        """Needed indices reported as strings are parsed."""
        remote = FakeRemote(needed=["1"])

        upload_bytes(make_uploader(remote), os.urandom(32))

        assert [seq for seq, _ in remote.uploaded] == [1]

    def test_all_blocks_known_to_remote(self) -> None:
        """An empty needed list goes straight to create."""
        remote = FakeRemote(needed=[])

        upload_bytes(make_uploader(remote), os.urandom(64))

        assert remote.uploaded == []
        assert remote.calls == ["precreate", "create"]

    def test_reupload_is_idempotent(self) -> None:
        """Second upload of identical content is rapid and yields the same hash."""
        remote = FakeRemote()
        uploader = make_uploader(remote)
        data = os.urandom(100)

        first = upload_bytes(uploader, data)
        blocks_after_first = len(remote.uploaded)
        second = upload_bytes(uploader, data)

        assert len(remote.uploaded) == blocks_after_first
        assert second.md5 == first.md5

    def test_precreate_rejection_stops_upload(self) -> None:
        """errno 31045 at precreate surfaces unchanged; no blocks or create."""
        remote = MagicMock()
        remote.precreate.side_effect = RemoteError(31045, "file already exists")

        with pytest.raises(RemoteError) as exc_info:
            upload_bytes(make_uploader(remote), b"data")

        assert exc_info.value.code == 31045
        remote.upload_block.assert_not_called()
        remote.create_file.assert_not_called()

    def test_finalize_error_surfaces(self) -> None:
        """A create rejection reaches the caller with its code."""
        remote = MagicMock()
        remote.precreate.return_value = PrecreateResult(return_type=2)
        remote.create_file.side_effect = RemoteError(31061, "file already exists")

        with pytest.raises(RemoteError) as exc_info:
            upload_bytes(make_uploader(remote), b"data")

        assert exc_info.value.code == 31061

    def test_block_failure_aborts(self) -> None:
        """First failing block aborts: later blocks and create are skipped."""
        remote = FakeRemote()
        remote.fail_blocks = {1}

        with pytest.raises(BlockUploadError) as exc_info:
            upload_bytes(make_uploader(remote), os.urandom(64))

        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, TransportError)
        assert [seq for seq, _ in remote.uploaded] == [0]
        assert "create" not in remote.calls

    def test_block_md5_mismatch(self) -> None:
        """A block whose remote md5 differs is a failed block."""
        remote = MagicMock()
        remote.precreate.return_value = PrecreateResult(return_type=1, upload_id="N1", block_list=[0])
        remote.upload_block.return_value = "0" * 32

        with pytest.raises(BlockUploadError) as exc_info:
            upload_bytes(make_uploader(remote), b"data")

        assert isinstance(exc_info.value.cause, ProtocolError)
        remote.create_file.assert_not_called()

    def test_size_mismatch_before_any_call(self) -> None:
        """Short stream fails locally without contacting the remote."""
        remote = MagicMock()
        uploader = make_uploader(remote)

        with pytest.raises(SizeError):
            uploader.upload(uploader.target("/a", 10), io.BytesIO(b"abc"))

        remote.precreate.assert_not_called()

    def test_cancelled_before_start(self) -> None:
        """A set cancel event aborts before hashing."""
        remote = MagicMock()
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(UploadCancelledError):
            upload_bytes(make_uploader(remote), b"data", cancel=cancel)

        remote.precreate.assert_not_called()

    def test_cancel_propagates_unwrapped(self) -> None:
        """Cancellation during a block is not reported as a block failure."""
        remote = MagicMock()
        remote.precreate.return_value = PrecreateResult(return_type=1, upload_id="N1", block_list=[0, 1])
        remote.upload_block.side_effect = UploadCancelledError("cancelled")

        with pytest.raises(UploadCancelledError):
            upload_bytes(make_uploader(remote), os.urandom(32))

        assert remote.upload_block.call_count == 1

    def test_progress_reported_per_block(self) -> None:
        """Progress callback fires after every acknowledged block."""
        remote = FakeRemote()
        updates: list[UploadProgress] = []
        uploader = FileUploader(remote, UploadConfig(block_size=16), progress_callback=updates.append)  # type: ignore[arg-type]

        upload_bytes(uploader, os.urandom(40))

        assert [u.blocks_done for u in updates] == [1, 2, 3]
        assert updates[-1].bytes_transferred == 40
        assert updates[-1].percent == 100.0


class TestConcurrentBlocks:
    """Tests for block_workers > 1."""

    def test_all_blocks_sent_once_before_create(self) -> None:
        """Every needed block is acknowledged before create is called."""
        remote = FakeRemote()
        data = os.urandom(160)

        upload_bytes(make_uploader(remote, block_workers=4), data)

        assert sorted(seq for seq, _ in remote.uploaded) == list(range(10))
        for seq, block in remote.uploaded:
            assert block == data[seq * 16 : (seq + 1) * 16]
        assert remote.calls[-1] == "create"
        assert remote.calls.count("create") == 1

    def test_failure_reports_block_and_skips_create(self) -> None:
        """A failing block fails the upload and create is never called."""
        remote = FakeRemote()
        remote.fail_blocks = {3}

        with pytest.raises(BlockUploadError) as exc_info:
            upload_bytes(make_uploader(remote, block_workers=4), os.urandom(160))

        assert exc_info.value.index == 3
        assert "create" not in remote.calls


class TestNegotiator:
    """Tests for Negotiator."""

    def _digest(self, size: int = 48) -> Any:
        digest, buffer = compute_digest(io.BytesIO(b"z" * size), size, 16)
        buffer.close()
        return digest

    def test_out_of_range_index(self) -> None:
        """Indices beyond the block list are a ProtocolError."""
        client = MagicMock()
        client.precreate.return_value = PrecreateResult(return_type=1, upload_id="N1", block_list=[3])

        with pytest.raises(ProtocolError):
            Negotiator(client).negotiate(UploadTarget("/a", 48, 16), self._digest())

    @pytest.mark.parametrize("value", ["x", 1.7, 1.0, True, "1.5", "-1", "", None])
    def test_non_integer_index(self, value: Any) -> None:
        """Anything but an int or a string of digits is a ProtocolError."""
        client = MagicMock()
        client.precreate.return_value = PrecreateResult(return_type=1, upload_id="N1", block_list=[value])

        with pytest.raises(ProtocolError):
            Negotiator(client).negotiate(UploadTarget("/a", 48, 16), self._digest())

    def test_session_keeps_full_block_list(self) -> None:
        """Session carries every block hash, not only the needed ones."""
        client = MagicMock()
        client.precreate.return_value = PrecreateResult(return_type=1, upload_id="N1", block_list=[2, 2, 0])
        digest = self._digest()

        session = Negotiator(client).negotiate(UploadTarget("/a", 48, 16), digest)

        assert session.block_md5s == digest.block_md5s
        assert session.needed_blocks == [0, 2]
        assert session.upload_id == "N1"


class TestBlockTransmitter:
    """Tests for BlockTransmitter used directly."""

    def test_nothing_needed(self) -> None:
        """No needed blocks means no calls."""
        client = MagicMock()
        session = UploadSession(upload_id="N1", block_md5s=("a",))

        sent = BlockTransmitter(client).transmit(UploadTarget("/a", 1, 16), session, MagicMock())

        assert sent == 0
        client.upload_block.assert_not_called()


class TestUploadFiles:
    """Tests for upload_file and upload_many."""

    def test_upload_file(self, tmp_path: Path) -> None:
        """Should upload a local file."""
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello world")
        remote = FakeRemote()

        committed = make_uploader(remote).upload_file(path, "/apps/notes.txt")

        assert committed.size == 11
        assert committed.md5 == hashlib.md5(b"hello world").hexdigest()

    def test_upload_many_isolates_failures(self, tmp_path: Path) -> None:
        """One failing file does not stop the others."""
        good = tmp_path / "good.txt"
        good.write_bytes(b"good")
        missing = tmp_path / "missing.txt"
        remote = FakeRemote()

        outcomes = make_uploader(remote).upload_many(
            [(good, "/apps/good.txt"), (missing, "/apps/missing.txt")],
            max_workers=2,
        )

        assert outcomes[0].success
        assert outcomes[0].committed is not None
        assert outcomes[0].committed.path == "/apps/good.txt"
        assert not outcomes[1].success
        assert outcomes[1].error is not None

    def test_directory_is_upload_error(self, tmp_path: Path) -> None:
        """A path that cannot be opened as a file fails as UploadError."""
        folder = tmp_path / "folder"
        folder.mkdir()

        with pytest.raises(UploadError):
            make_uploader(FakeRemote()).upload_file(folder, "/apps/folder")

    def test_read_error_is_upload_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An I/O error while hashing is reported as UploadError."""
        broken = tmp_path / "broken.bin"
        broken.write_bytes(b"12345678")
        patch_unreadable(monkeypatch, broken.name)
        remote = FakeRemote()

        with pytest.raises(UploadError) as exc_info:
            make_uploader(remote).upload_file(broken, "/apps/broken.bin")

        assert isinstance(exc_info.value.__cause__, OSError)
        assert remote.calls == []

    def test_upload_many_survives_read_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An unreadable file fails alone; the other results are kept."""
        good = tmp_path / "good.txt"
        good.write_bytes(b"good")
        broken = tmp_path / "broken.bin"
        broken.write_bytes(b"12345678")
        patch_unreadable(monkeypatch, broken.name)
        remote = FakeRemote()

        outcomes = make_uploader(remote).upload_many(
            [(good, "/apps/good.txt"), (broken, "/apps/broken.bin")],
            max_workers=2,
        )

        assert outcomes[0].success
        assert not outcomes[1].success
        assert isinstance(outcomes[1].error, UploadError)
        assert remote.calls.count("precreate") == 1


class FailingReader(io.RawIOBase):
    """Stream whose every read fails like a bad disk."""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        raise OSError(errno.EIO, "Input/output error")


def patch_unreadable(monkeypatch: pytest.MonkeyPatch, name: str) -> None:
    """Make Path.open return a FailingReader for files called `name`."""
    real_open = Path.open

    def open_or_fail(self: Path, *args: Any, **kwargs: Any) -> Any:
        if self.name == name:
            return FailingReader()
        return real_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", open_or_fail)
