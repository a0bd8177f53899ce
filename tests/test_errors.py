import pytest

from pgembed.errors import (
    EmbeddedPostgresError,
    ExtractionError,
    FetchError,
    ServerAlreadyStartedError,
    ServerNotStartedError,
    unable_to_extract_error,
)


def test_server_state_messages():
    assert str(ServerNotStartedError()) == "server has not been started"
    assert str(ServerAlreadyStartedError()) == "server is already started"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ServerNotStartedError(), "server has not been started"),
        (ServerAlreadyStartedError(), "server is already started"),
        (ExtractionError("oh noes"), "unable to extract postgres archive: oh noes"),
        (FetchError("unexpected EOF"), "error fetching postgres: unexpected EOF"),
    ],
)
def test_errors_caught_by_base(error, expected):
    with pytest.raises(EmbeddedPostgresError) as info:
        raise error
    assert info.value is error
    assert str(info.value) == expected


def test_extraction_error_wraps_cause():
    err = ExtractionError("oh noes")
    assert str(err) == "unable to extract postgres archive: oh noes"
    assert err.cause == "oh noes"


def test_extraction_error_with_exception_cause():
    cause = OSError("xz: data is corrupt")
    err = ExtractionError(cause)
    assert str(err) == "unable to extract postgres archive: xz: data is corrupt"
    assert err.cause is cause


def test_fetch_error_wraps_cause():
    assert str(FetchError("unexpected EOF")) == "error fetching postgres: unexpected EOF"
    assert str(FetchError("zip: not a valid zip file")) == "error fetching postgres: zip: not a valid zip file"


def test_explicit_message_overrides_prefix():
    err = FetchError(message="downloaded checksums do not match")
    assert str(err) == "downloaded checksums do not match"
    assert err.cause is None


def test_unable_to_extract_error_message():
    err = unable_to_extract_error("/does-not-exist", "/also-fake", "no such file")
    assert isinstance(err, ExtractionError)
    assert (
        "unable to extract postgres archive /does-not-exist to /also-fake, "
        "if running parallel tests, configure RuntimePath to isolate testing directories"
    ) in str(err)
    assert str(err).endswith(", no such file")