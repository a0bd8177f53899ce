import io
import os

import pytest

from pgembed.errors import EmbeddedPostgresError
from pgembed.logs import SyncedLogger, read_logs_or_timeout


def test_create_error_for_missing_directory():
    with pytest.raises(FileNotFoundError):
        SyncedLogger(io.BytesIO(), "/not-exists-anywhere")


def test_error_during_flush_when_file_removed():
    sl = SyncedLogger(io.BytesIO())
    try:
        os.remove(sl.path)
        with pytest.raises(EmbeddedPostgresError, match="unable to process postgres logs"):
            sl.flush()
    finally:
        sl.close()


def test_flush_copies_content(tmp_path):
    sink = io.BytesIO()
    sl = SyncedLogger(sink, str(tmp_path))
    try:
        with open(sl.path, "wb") as f:
            f.write(b"some logs\non a new line")
        sl.flush()
        assert sink.getvalue() == b"some logs\non a new line"
    finally:
        sl.close()


def test_flush_only_copies_new_content(tmp_path):
    sink = io.BytesIO()
    sl = SyncedLogger(sink, str(tmp_path))
    try:
        sl.file.write(b"first ")
        sl.file.flush()
        sl.flush()
        sl.file.write(b"second")
        sl.file.flush()
        sl.flush()
        assert sink.getvalue() == b"first second"
        assert sl.offset == len(b"first second")
    finally:
        sl.close()


def test_flush_to_text_logger(tmp_path):
    sink = io.StringIO()
    sl = SyncedLogger(sink, str(tmp_path))
    try:
        sl.file.write(b"hello")
        sl.file.flush()
        sl.flush()
        assert sink.getvalue() == "hello"
    finally:
        sl.close()


def test_flush_without_logger_keeps_offset(tmp_path):
    sl = SyncedLogger(None, str(tmp_path))
    try:
        sl.file.write(b"ignored")
        sl.file.flush()
        sl.flush()
        assert sl.offset == 0
    finally:
        sl.close()


def test_log_file_created_in_directory(tmp_path):
    sl = SyncedLogger(io.BytesIO(), str(tmp_path))
    try:
        assert os.path.dirname(sl.path) == str(tmp_path)
        assert os.path.basename(sl.path).startswith("embedded_postgres_log")
    finally:
        sl.close()


def test_read_logs_or_timeout(tmp_path):
    log_file = tmp_path / "prepare_database_test_log"
    log_file.write_bytes(b"")
    assert read_logs_or_timeout(log_file) == b""

    log_file.write_bytes(b"and here are the logs!")
    assert read_logs_or_timeout(str(log_file)) == b"and here are the logs!"

    log_file.unlink()
    with pytest.raises(FileNotFoundError):
        read_logs_or_timeout(log_file)