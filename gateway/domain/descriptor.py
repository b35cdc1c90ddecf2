"""
Connection descriptors and the builder that produces them.

A descriptor is the normalized, protocol-typed set of parameters for one
tunnel target. The only way from an untyped request payload to a descriptor
is :func:`build`, which validates every field and renders the canonical
connection string:

    ssh://root@10.0.0.5:22?password=p%40ss
    rdp://10.0.0.9:3389?username=bob&security=nla&ignore-cert=true
    ssh://root@kubernetes:22?ProxyCommand=kubectl%20exec%20-i%20...
"""

from __future__ import annotations

import dataclasses
import enum
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import quote

from gateway.config.settings import (
    DEFAULT_DESKTOP_PORT,
    DEFAULT_SHELL_PORT,
    HOST_PATTERN,
    K8S_NAME_PATTERN,
    KUBECONFIG_PATH_PATTERN,
    MAX_HOST_LENGTH,
    MAX_K8S_NAME_LENGTH,
    RDP_SECURITY_MODES,
)
from gateway.domain.errors import ValidationError


class ConnectionKind(str, enum.Enum):
    SHELL = "shell"
    DESKTOP = "desktop"
    CONTAINER_EXEC = "container-exec"


KIND_ALIASES: dict[str, ConnectionKind] = {
    "shell": ConnectionKind.SHELL,
    "ssh": ConnectionKind.SHELL,
    "desktop": ConnectionKind.DESKTOP,
    "rdp": ConnectionKind.DESKTOP,
    "container-exec": ConnectionKind.CONTAINER_EXEC,
    "kubernetes": ConnectionKind.CONTAINER_EXEC,
    "k8s": ConnectionKind.CONTAINER_EXEC,
}

DEFAULT_EXEC_COMMAND = "/bin/sh"
DEFAULT_EXEC_HOST = "kubernetes"
DEFAULT_NAMESPACE = "default"


def encode_component(value: str) -> str:
    """Percent-encode like JavaScript's encodeURIComponent."""
    return quote(value, safe="!*'()")


def _authority(username: str, host: str, port: int) -> str:
    if ":" in host:
        host = f"[{host}]"
    userinfo = f"{encode_component(username)}@" if username else ""
    return f"{userinfo}{host}:{port}"


def _render_uri(scheme: str, authority: str, params: list[tuple[str, str | None]]) -> str:
    query = "&".join(f"{name}={encode_component(value)}" for name, value in params if value)
    uri = f"{scheme}://{authority}"
    return f"{uri}?{query}" if query else uri


# =============================================================================
# Descriptors
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class ConnectionDescriptor:
    """Common fields of every descriptor.

    ``connection_string`` is rendered once in ``__post_init__`` and is not
    an ``__init__`` argument.
    """

    kind: ClassVar[ConnectionKind]

    host: str
    port: int
    username: str = ""
    expires_at: int | None = None
    connection_string: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "connection_string", self._render())

    def _render(self) -> str:
        raise NotImplementedError

    def _fields(self) -> dict[str, Any]:
        raise NotImplementedError

    def with_expiry(self, expires_at: int | None) -> ConnectionDescriptor:
        """Return a copy carrying ``expires_at``; the original is untouched."""
        return dataclasses.replace(self, expires_at=expires_at)

    def to_payload(self) -> dict[str, Any]:
        """
        Serialize to the canonical mapping accepted back by :func:`build`.

        Absent optional fields are omitted so that rebuilding the payload
        yields an equal descriptor.
        """
        payload: dict[str, Any] = {"kind": self.kind.value}
        payload.update({k: v for k, v in self._fields().items() if v is not None})
        payload["connection_string"] = self.connection_string
        if self.expires_at is not None:
            payload["expires_at"] = self.expires_at
        return payload


@dataclass(frozen=True, kw_only=True)
class ShellDescriptor(ConnectionDescriptor):
    kind: ClassVar[ConnectionKind] = ConnectionKind.SHELL

    port: int = DEFAULT_SHELL_PORT
    username: str = "root"
    password: str | None = field(default=None, repr=False)
    private_key: str | None = field(default=None, repr=False)
    passphrase: str | None = field(default=None, repr=False)
    host_key: str | None = None

    def _render(self) -> str:
        return _render_uri("ssh", _authority(self.username, self.host, self.port), [
            ("password", self.password),
            ("private-key", self.private_key),
            ("passphrase", self.passphrase),
            ("host-key", self.host_key),
        ])

    def _fields(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": self.password,
            "private-key": self.private_key,
            "passphrase": self.passphrase,
            "host-key": self.host_key,
        }


@dataclass(frozen=True, kw_only=True)
class DesktopDescriptor(ConnectionDescriptor):
    kind: ClassVar[ConnectionKind] = ConnectionKind.DESKTOP

    port: int = DEFAULT_DESKTOP_PORT
    password: str | None = field(default=None, repr=False)
    domain: str | None = None
    security: str = "any"
    ignore_cert: bool = False
    audio: bool = False

    def _render(self) -> str:
        return _render_uri("rdp", _authority("", self.host, self.port), [
            ("username", self.username),
            ("password", self.password),
            ("domain", self.domain),
            ("security", None if self.security == "any" else self.security),
            ("ignore-cert", "true" if self.ignore_cert else None),
            ("audio", "true" if self.audio else None),
        ])

    def _fields(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username or None,
            "password": self.password,
            "domain": self.domain,
            "security": self.security,
            "ignore-cert": self.ignore_cert,
            "audio": self.audio,
        }


@dataclass(frozen=True, kw_only=True)
class ContainerExecDescriptor(ConnectionDescriptor):
    """``kubectl exec`` into a pod, carried over an SSH-shaped URI.

    ``host``, ``username`` and ``port`` only shape the outer URI.
    """

    kind: ClassVar[ConnectionKind] = ConnectionKind.CONTAINER_EXEC

    host: str = DEFAULT_EXEC_HOST
    port: int = DEFAULT_SHELL_PORT
    username: str = "root"
    pod: str
    namespace: str = DEFAULT_NAMESPACE
    container: str | None = None
    command: str = DEFAULT_EXEC_COMMAND
    kubeconfig: str | None = None

    @property
    def exec_argv(self) -> list[str]:
        argv = ["kubectl", "exec", "-i", "-n", self.namespace]
        if self.container:
            argv += ["-c", self.container]
        argv += [self.pod, "--", *shlex.split(self.command)]
        return argv

    @property
    def exec_command(self) -> str:
        """The exec command line, every argument shell-quoted."""
        command = shlex.join(self.exec_argv)
        if self.kubeconfig:
            command = f"KUBECONFIG={shlex.quote(self.kubeconfig)} {command}"
        return command

    def _render(self) -> str:
        return _render_uri("ssh", _authority(self.username, self.host, self.port), [
            ("ProxyCommand", self.exec_command),
        ])

    def _fields(self) -> dict[str, Any]:
        return {
            "kubernetes": {
                k: v for k, v in {
                    "namespace": self.namespace,
                    "pod": self.pod,
                    "container": self.container,
                    "command": self.command,
                    "kubeconfig": self.kubeconfig,
                    "host": self.host,
                    "user": self.username,
                    "port": self.port,
                }.items() if v is not None
            },
        }


# =============================================================================
# Field helpers
# =============================================================================

def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    """First present value among ``keys``; empty strings count as absent."""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _optional_str(raw: Mapping[str, Any], *keys: str) -> str | None:
    value = _first(raw, *keys)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{keys[0]} must be a string")
    return value


def _host(value: Any, *, required: bool = True) -> str | None:
    if value is None:
        if required:
            raise ValidationError("missing host")
        return None
    if not isinstance(value, str):
        raise ValidationError("host must be a string")
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    if len(value) > MAX_HOST_LENGTH or not HOST_PATTERN.match(value):
        raise ValidationError(f"Invalid host: {value}")
    return value


def _port(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, str) and value.isascii() and value.isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 65535:
        raise ValidationError("port must be an integer between 1 and 65535")
    return value


def _flag(value: Any, name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"{name} must be a boolean")


def _k8s_name(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    if len(value) > MAX_K8S_NAME_LENGTH or not K8S_NAME_PATTERN.match(value):
        raise ValidationError(f"Invalid {name}: {value}")
    return value


# =============================================================================
# Builder
# =============================================================================

def _container_fields(raw: Mapping[str, Any]) -> Mapping[str, Any] | None:
    nested = raw.get("kubernetes")
    if nested is not None:
        if not isinstance(nested, Mapping):
            raise ValidationError("kubernetes must be an object")
        return nested
    if _first(raw, "pod", "podName") is not None:
        return raw
    return None


def resolve_kind(raw: Mapping[str, Any]) -> ConnectionKind:
    """
    Decide the descriptor kind.

    An explicit ``kind``/``type``/``protocol`` wins; otherwise container
    fields imply container-exec; otherwise shell.
    """
    explicit = _first(raw, "kind", "type", "protocol")
    if explicit is not None:
        if not isinstance(explicit, str) or explicit.lower() not in KIND_ALIASES:
            raise ValidationError(f"Unsupported connection type: {explicit}")
        return KIND_ALIASES[explicit.lower()]
    if _container_fields(raw) is not None:
        return ConnectionKind.CONTAINER_EXEC
    return ConnectionKind.SHELL


def _build_shell(raw: Mapping[str, Any]) -> ShellDescriptor:
    return ShellDescriptor(
        host=_host(_first(raw, "hostname", "host")),
        port=_port(_first(raw, "port"), DEFAULT_SHELL_PORT),
        username=_optional_str(raw, "username") or "root",
        password=_optional_str(raw, "password"),
        private_key=_optional_str(raw, "private-key", "privateKey"),
        passphrase=_optional_str(raw, "passphrase"),
        host_key=_optional_str(raw, "host-key", "hostKey"),
    )


def _build_desktop(raw: Mapping[str, Any]) -> DesktopDescriptor:
    security = _optional_str(raw, "security") or "any"
    if security not in RDP_SECURITY_MODES:
        raise ValidationError(f"Invalid security mode: {security}")
    return DesktopDescriptor(
        host=_host(_first(raw, "hostname", "host")),
        port=_port(_first(raw, "port"), DEFAULT_DESKTOP_PORT),
        username=_optional_str(raw, "username") or "",
        password=_optional_str(raw, "password"),
        domain=_optional_str(raw, "domain"),
        security=security,
        ignore_cert=_flag(_first(raw, "ignore-cert", "ignoreCert"), "ignore-cert"),
        audio=_flag(_first(raw, "audio"), "audio"),
    )


def _build_container_exec(raw: Mapping[str, Any], default_kubeconfig: str | None) -> ContainerExecDescriptor:
    k8s = _container_fields(raw) or {}

    pod = _first(k8s, "pod", "podName")
    if pod is None:
        raise ValidationError("missing pod")

    container = _first(k8s, "container", "containerName")
    command = _optional_str(k8s, "command") or DEFAULT_EXEC_COMMAND
    try:
        if not shlex.split(command):
            raise ValueError("empty command")
    except ValueError as e:
        raise ValidationError(f"Invalid command: {e}")

    kubeconfig = _optional_str(k8s, "kubeconfig") or default_kubeconfig
    if kubeconfig is not None and not KUBECONFIG_PATH_PATTERN.match(kubeconfig):
        raise ValidationError("Invalid kubeconfig path")

    return ContainerExecDescriptor(
        namespace=_k8s_name(_first(k8s, "namespace") or DEFAULT_NAMESPACE, "namespace"),
        pod=_k8s_name(pod, "pod"),
        container=_k8s_name(container, "container") if container is not None else None,
        command=command,
        kubeconfig=kubeconfig,
        host=_host(_first(k8s, "host"), required=False) or DEFAULT_EXEC_HOST,
        username=_optional_str(k8s, "user") or _optional_str(raw, "username") or "root",
        port=_port(_first(k8s, "port") or _first(raw, "port"), DEFAULT_SHELL_PORT),
    )


def build(raw: Mapping[str, Any], *, default_kubeconfig: str | None = None) -> ConnectionDescriptor:
    """
    Validate a raw connection object and build its descriptor.

    Args:
        raw: Connection object from a request body, a preset or a token payload
        default_kubeconfig: Kubeconfig path used when a container-exec
            connection does not name one

    Returns:
        ShellDescriptor, DesktopDescriptor or ContainerExecDescriptor

    Raises:
        ValidationError: If the object is not a valid connection
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("connection must be an object")

    kind = resolve_kind(raw)
    if kind is ConnectionKind.CONTAINER_EXEC:
        return _build_container_exec(raw, default_kubeconfig)
    if kind is ConnectionKind.DESKTOP:
        return _build_desktop(raw)
    return _build_shell(raw)
