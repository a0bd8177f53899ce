"""A small client for the Postgres frontend/backend protocol."""

from __future__ import annotations

import hashlib
import socket
import struct

from pgembed.errors import DatabaseError

_PROTOCOL_VERSION = 196608
_DEFAULTS = {"host": "localhost", "port": "5432"}


class PgError(DatabaseError):
    """Raised for connection problems and errors reported by the server."""


def parse_dsn(dsn: str) -> dict[str, str]:
    """Parse a space separated key=value connection string."""
    params: dict[str, str] = dict(_DEFAULTS)
    pos, length = 0, len(dsn)
    while True:
        while pos < length and dsn[pos].isspace():
            pos += 1
        if pos >= length:
            break
        eq = dsn.find("=", pos)
        if eq < 0:
            raise PgError(f'missing "=" after "{dsn[pos:]}" in connection info string')
        key = dsn[pos:eq].strip()
        pos = eq + 1
        while pos < length and dsn[pos].isspace():
            pos += 1
        value: list[str] = []
        if pos < length and dsn[pos] == "'":
            pos += 1
            while True:
                if pos >= length:
                    raise PgError("unterminated quoted string in connection info string")
                char = dsn[pos]
                if char == "\\" and pos + 1 < length:
                    value.append(dsn[pos + 1])
                    pos += 2
                    continue
                pos += 1
                if char == "'":
                    break
                value.append(char)
        else:
            while pos < length and not dsn[pos].isspace():
                if dsn[pos] == "\\" and pos + 1 < length:
                    pos += 1
                value.append(dsn[pos])
                pos += 1
        params[key] = "".join(value)

    encoding = params.get("client_encoding")
    if encoding is not None and encoding.upper() not in ("UTF8", "UTF-8"):
        raise PgError("client_encoding must be absent or 'UTF8'")
    return params


class PgConnection:
    """An open, authenticated connection that runs simple queries."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._buffer = b""

    def _recv_exact(self, size: int) -> bytes:
        while len(self._buffer) < size:
            chunk = self._sock.recv(65536)
            if not chunk:
                raise PgError("unexpected end of stream from server")
            self._buffer += chunk
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def _read_message(self) -> tuple[bytes, bytes]:
        header = self._recv_exact(5)
        kind = header[:1]
        (size,) = struct.unpack("!i", header[1:])
        return kind, self._recv_exact(size - 4)

    def _send(self, kind: bytes, payload: bytes) -> None:
        self._sock.sendall(kind + struct.pack("!i", len(payload) + 4) + payload)

    @staticmethod
    def _error(payload: bytes) -> PgError:
        fields = {}
        for part in payload.split(b"\x00"):
            if part:
                fields[part[:1]] = part[1:].decode("utf-8", errors="replace")
        return PgError(f"pq: {fields.get(b'M', 'unknown error')}")

    def _authenticate(self, params: dict[str, str]) -> None:
        user = params.get("user", "")
        password = params.get("password", "")
        while True:
            kind, payload = self._read_message()
            if kind == b"E":
                raise self._error(payload)
            if kind == b"Z":
                return
            if kind != b"R":
                continue
            (code,) = struct.unpack("!i", payload[:4])
            if code == 0:
                continue
            if code == 3:
                self._send(b"p", password.encode() + b"\x00")
            elif code == 5:
                salt = payload[4:8]
                inner = hashlib.md5((password + user).encode()).hexdigest().encode()
                digest = "md5" + hashlib.md5(inner + salt).hexdigest()
                self._send(b"p", digest.encode() + b"\x00")
            else:
                raise PgError(f"unsupported authentication method {code}")

    def execute(self, sql: str) -> list[list[str | None]]:
        """Run sql as a simple query and return the rows as text values."""
        self._send(b"Q", sql.encode() + b"\x00")
        rows: list[list[str | None]] = []
        error: PgError | None = None
        while True:
            kind, payload = self._read_message()
            if kind == b"E":
                error = error or self._error(payload)
            elif kind == b"D":
                (count,) = struct.unpack("!h", payload[:2])
                offset, row = 2, []
                for _ in range(count):
                    (size,) = struct.unpack("!i", payload[offset:offset + 4])
                    offset += 4
                    if size < 0:
                        row.append(None)
                    else:
                        row.append(payload[offset:offset + size].decode("utf-8"))
                        offset += size
                rows.append(row)
            elif kind == b"Z":
                break
        if error is not None:
            raise error
        return rows

    def close(self) -> None:
        """Send a terminate message and close the socket."""
        try:
            self._send(b"X", b"")
        except OSError:
            pass
        finally:
            self._sock.close()

    def __enter__(self) -> PgConnection:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def connect(dsn: str, timeout: float | None = None) -> PgConnection:
    """Open and authenticate a connection described by a key=value string."""
    params = parse_dsn(dsn)
    try:
        port = int(params["port"])
    except ValueError as err:
        raise PgError(f"invalid port {params['port']}") from err
    try:
        sock = socket.create_connection((params["host"], port), timeout=timeout)
    except OSError as err:
        raise PgError(f"dial tcp {params['host']}:{port}: {err}") from err

    connection = PgConnection(sock)
    startup = {"user": params.get("user", ""), "database": params.get("dbname", params.get("user", ""))}
    startup["client_encoding"] = "UTF8"
    body = b"".join(k.encode() + b"\x00" + v.encode() + b"\x00" for k, v in startup.items()) + b"\x00"
    try:
        sock.sendall(struct.pack("!ii", len(body) + 8, _PROTOCOL_VERSION) + body)
        connection._authenticate(params)
    except (OSError, PgError) as err:
        sock.close()
        if isinstance(err, PgError):
            raise
        raise PgError(str(err)) from err
    return connection