"""
Tunnel broker relaying a browser WebSocket to guacd.

The broker performs the guacd handshake for the unsealed connection, tells
the browser the connection id, then copies whole Guacamole instructions in
both directions until either side closes.
"""

from __future__ import annotations

import codecs
import logging
import socket
import threading
from typing import Any
from urllib.parse import parse_qsl, unquote, urlsplit

from flask import Response
from simple_websocket import ConnectionClosed, Server

from gateway.config.models import TunnelConfig
from gateway.domain.descriptor import ConnectionDescriptor
from gateway.observability import MetricsSink, SessionTracker
from gateway.tunnel.protocol import (
    INTERNAL_OPCODE,
    ProtocolError,
    encode_instruction,
    parse_instructions,
)

logger = logging.getLogger("token-gateway")

RECV_SIZE = 8192
UPSTREAM_JOIN_TIMEOUT = 5.0
SUBPROTOCOL = "guacamole"

# Guacamole status codes sent to the browser on failure
STATUS_UPSTREAM_TIMEOUT = 514
STATUS_UPSTREAM_ERROR = 515
STATUS_UPSTREAM_NOT_FOUND = 519


class GuacdError(Exception):
    """Raised when guacd cannot be reached or rejects the handshake."""

    def __init__(self, message: str, status: int = STATUS_UPSTREAM_ERROR) -> None:
        super().__init__(message)
        self.status = status


def guacd_parameters(connection_string: str) -> tuple[str, dict[str, str]]:
    """
    Split a connection string into a guacd protocol name and its parameters.

    ``ssh://alice@10.0.0.5:22?password=p%40ss`` becomes
    ``("ssh", {"hostname": "10.0.0.5", "port": "22", "username": "alice",
    "password": "p@ss"})``.
    """
    parts = urlsplit(connection_string)
    params: dict[str, str] = {}
    if parts.hostname:
        params["hostname"] = parts.hostname
    if parts.port:
        params["port"] = str(parts.port)
    if parts.username:
        params["username"] = unquote(parts.username)
    params.update(parse_qsl(parts.query, keep_blank_values=True))
    return parts.scheme, params


class _InstructionReader:
    """Buffers guacd output and hands it out in whole instructions."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def _fill(self) -> bool:
        data = self._sock.recv(RECV_SIZE)
        if not data:
            return False
        self._buffer += self._decoder.decode(data)
        return True

    def read_instruction(self) -> list[str]:
        """Return the next single instruction, blocking until it arrives."""
        while True:
            instructions, consumed = parse_instructions(self._buffer, limit=1)
            if instructions:
                self._buffer = self._buffer[consumed:]
                return instructions[0]
            if not self._fill():
                raise GuacdError("guacd closed the connection during handshake")

    def read_text(self) -> str:
        """Return the raw text of all complete instructions, or "" at EOF."""
        while True:
            _, consumed = parse_instructions(self._buffer)
            if consumed:
                text, self._buffer = self._buffer[:consumed], self._buffer[consumed:]
                return text
            if not self._fill():
                return ""


class _WebSocketResponse(Response):
    """Response returned once the WebSocket has been served.

    The socket has already been consumed, so the WSGI server must be told
    not to write anything back.
    """

    def __init__(self, ws: Server) -> None:
        super().__init__()
        self._ws = ws

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self._ws.mode == "gunicorn":
            raise StopIteration()
        if self._ws.mode == "werkzeug":
            raise ConnectionError()
        return []


class GuacdTunnelBroker:
    """TunnelBroker speaking the Guacamole protocol to a guacd daemon."""

    def __init__(
        self,
        host: str,
        port: int,
        settings: TunnelConfig,
        metrics: MetricsSink,
    ) -> None:
        self.host = host
        self.port = port
        self.settings = settings
        self.sessions = SessionTracker(metrics)

    # -- guacd side ---------------------------------------------------------

    def _connect(self) -> socket.socket:
        try:
            return socket.create_connection(
                (self.host, self.port), timeout=self.settings.connect_timeout
            )
        except socket.timeout:
            raise GuacdError(f"Timed out connecting to guacd at {self.host}:{self.port}",
                             STATUS_UPSTREAM_TIMEOUT)
        except OSError as e:
            raise GuacdError(f"Cannot reach guacd at {self.host}:{self.port}: {e}",
                             STATUS_UPSTREAM_NOT_FOUND)

    def _expect(self, reader: _InstructionReader, opcode: str) -> list[str]:
        instruction = reader.read_instruction()
        if instruction[0] == "error":
            raise GuacdError(f"guacd refused connection: {instruction[1:]}")
        if instruction[0] != opcode:
            raise GuacdError(f"Expected '{opcode}' from guacd, got '{instruction[0]}'")
        return instruction[1:]

    def handshake(self, sock: socket.socket, reader: _InstructionReader,
                  descriptor: ConnectionDescriptor) -> str:
        """
        Run the guacd handshake and return the connection id.

        select -> args -> size/audio/video/image/timezone -> connect -> ready
        """
        protocol, params = guacd_parameters(descriptor.connection_string)
        settings = self.settings
        sock.settimeout(settings.handshake_timeout)

        sock.sendall(encode_instruction("select", protocol).encode("utf-8"))
        arg_names = self._expect(reader, "args")

        setup = [
            encode_instruction("size", settings.width, settings.height, settings.dpi),
            encode_instruction("audio", *settings.audio_mimetypes),
            encode_instruction("video", *settings.video_mimetypes),
            encode_instruction("image", *settings.image_mimetypes),
        ]
        if settings.timezone:
            setup.append(encode_instruction("timezone", settings.timezone))

        # The first argument guacd lists is its protocol version; echo it back
        values = [name if name.startswith("VERSION_") else params.get(name, "") for name in arg_names]
        setup.append(encode_instruction("connect", *values))
        sock.sendall("".join(setup).encode("utf-8"))

        ready = self._expect(reader, "ready")
        sock.settimeout(None)
        return ready[0] if ready else ""

    # -- Relay --------------------------------------------------------------

    def _pump_upstream(self, reader: _InstructionReader, ws: Server) -> None:
        try:
            while True:
                text = reader.read_text()
                if not text:
                    break
                ws.send(text)
        except (OSError, ProtocolError, ConnectionClosed) as e:
            logger.debug(f"Upstream relay stopped: {e}")
        finally:
            ws.close()

    def _pump_downstream(self, ws: Server, sock: socket.socket) -> None:
        ping_prefix = encode_instruction(INTERNAL_OPCODE, "ping")[:-1]
        try:
            while True:
                message = ws.receive()
                if message is None:
                    continue
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                if message.startswith(ping_prefix):
                    ws.send(message)
                    continue
                sock.sendall(message.encode("utf-8"))
        except (ConnectionClosed, OSError, UnicodeDecodeError) as e:
            logger.debug(f"Downstream relay stopped: {e}")

    def _fail(self, ws: Server, error: GuacdError) -> None:
        logger.warning(f"Tunnel setup failed: {error}")
        try:
            ws.send(encode_instruction("error", "Remote desktop server unavailable", error.status))
        except ConnectionClosed:
            pass
        ws.close()

    def open_tunnel(self, descriptor: ConnectionDescriptor, environ: dict[str, Any]) -> Response:
        ws = Server.accept(environ, subprotocols=[SUBPROTOCOL])

        try:
            sock = self._connect()
        except GuacdError as e:
            self._fail(ws, e)
            return _WebSocketResponse(ws)

        reader = _InstructionReader(sock)
        try:
            connection_id = self.handshake(sock, reader, descriptor)
        except (GuacdError, ProtocolError, OSError) as e:
            sock.close()
            if not isinstance(e, GuacdError):
                e = GuacdError(f"guacd handshake failed: {e}")
            self._fail(ws, e)
            return _WebSocketResponse(ws)

        logger.info(
            f"Tunnel opened for {descriptor.kind.value} connection",
            extra={"connection_id": connection_id},
        )
        self.sessions.started()
        upstream = threading.Thread(
            target=self._pump_upstream, args=(reader, ws), daemon=True
        )
        try:
            ws.send(encode_instruction(INTERNAL_OPCODE, connection_id))
            upstream.start()
            self._pump_downstream(ws, sock)
        except ConnectionClosed:
            pass
        finally:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
            ws.close()
            if upstream.ident is not None:
                upstream.join(timeout=UPSTREAM_JOIN_TIMEOUT)
            self.sessions.ended()
            logger.info("Tunnel closed", extra={"connection_id": connection_id})

        return _WebSocketResponse(ws)
