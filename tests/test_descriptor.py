"""
Tests for gateway.domain.descriptor (connection descriptor builder).
"""

import dataclasses
from urllib.parse import parse_qs, urlsplit

import pytest

from gateway.domain.descriptor import (
    ConnectionKind,
    ContainerExecDescriptor,
    DesktopDescriptor,
    ShellDescriptor,
    build,
    encode_component,
    resolve_kind,
)
from gateway.domain.errors import ValidationError


# ---------------------------------------------------------------------------
# Kind selection
# ---------------------------------------------------------------------------

class TestResolveKind:

    def test_explicit_kind_wins_over_container_fields(self):
        assert resolve_kind({"kind": "shell", "host": "h", "pod": "p"}) is ConnectionKind.SHELL

    @pytest.mark.parametrize("value,expected", [
        ("ssh", ConnectionKind.SHELL),
        ("RDP", ConnectionKind.DESKTOP),
        ("kubernetes", ConnectionKind.CONTAINER_EXEC),
        ("k8s", ConnectionKind.CONTAINER_EXEC),
    ])
    def test_aliases(self, value, expected):
        assert resolve_kind({"protocol": value}) is expected

    def test_container_fields_imply_container_exec(self):
        assert resolve_kind({"kubernetes": {"pod": "p"}}) is ConnectionKind.CONTAINER_EXEC
        assert resolve_kind({"podName": "p"}) is ConnectionKind.CONTAINER_EXEC

    def test_default_is_shell(self):
        assert resolve_kind({"host": "h"}) is ConnectionKind.SHELL

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError, match="Unsupported connection type"):
            build({"kind": "telnet", "host": "h"})

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError):
            build(["host", "h"])


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------

class TestShell:

    def test_password_is_percent_encoded(self):
        d = build({"kind": "shell", "host": "10.0.0.5", "username": "alice", "password": "p@ss"})
        assert isinstance(d, ShellDescriptor)
        assert d.connection_string == "ssh://alice@10.0.0.5:22?password=p%40ss"

    def test_deterministic(self):
        raw = {"kind": "shell", "host": "10.0.0.5", "username": "alice", "password": "p@ss"}
        assert build(raw) == build(dict(raw))
        assert build(raw).connection_string == build(raw).connection_string

    def test_defaults(self):
        d = build({"host": "bastion.internal"})
        assert d.username == "root"
        assert d.port == 22
        assert d.connection_string == "ssh://root@bastion.internal:22"

    def test_missing_host(self):
        with pytest.raises(ValidationError, match="missing host"):
            build({"kind": "shell", "username": "alice"})

    def test_empty_string_counts_as_absent(self):
        d = build({"host": "h", "username": "", "password": ""})
        assert d.username == "root"
        assert "password" not in d.connection_string

    def test_all_credentials_in_fixed_order(self):
        d = build({
            "host": "h",
            "hostKey": "ssh-ed25519 AAAA",
            "passphrase": "pw",
            "privateKey": "-----BEGIN KEY-----\nabc\n",
            "password": "x",
        })
        query = urlsplit(d.connection_string).query
        assert [p.split("=")[0] for p in query.split("&")] == [
            "password", "private-key", "passphrase", "host-key",
        ]
        assert "\n" not in d.connection_string
        assert parse_qs(query)["private-key"] == ["-----BEGIN KEY-----\nabc\n"]

    def test_hostname_alias(self):
        assert build({"hostname": "h"}).host == "h"

    def test_ipv6_host_bracketed(self):
        assert build({"host": "fe80::1"}).connection_string == "ssh://root@[fe80::1]:22"

    def test_username_encoded(self):
        assert build({"host": "h", "username": "a b"}).connection_string.startswith("ssh://a%20b@h:22")

    def test_port_string_accepted(self):
        assert build({"host": "h", "port": "2222"}).port == 2222

    @pytest.mark.parametrize("port", [0, 65536, -1, "abc", True, 22.5])
    def test_invalid_port(self, port):
        with pytest.raises(ValidationError, match="port"):
            build({"host": "h", "port": port})

    @pytest.mark.parametrize("host", ["evil host", "h/../x", "a@b", "h?x=1"])
    def test_invalid_host(self, host):
        with pytest.raises(ValidationError):
            build({"host": host})

    def test_password_not_in_repr(self):
        d = build({"host": "h", "password": "hunter2"})
        assert "hunter2" not in repr(d)


# ---------------------------------------------------------------------------
# Desktop
# ---------------------------------------------------------------------------

class TestDesktop:

    def test_full_desktop(self):
        d = build({
            "kind": "rdp",
            "host": "10.0.0.9",
            "username": "bob",
            "password": "x y",
            "domain": "CORP",
            "security": "nla",
            "ignoreCert": True,
            "audio": "true",
        })
        assert isinstance(d, DesktopDescriptor)
        assert d.connection_string == (
            "rdp://10.0.0.9:3389?username=bob&password=x%20y&domain=CORP"
            "&security=nla&ignore-cert=true&audio=true"
        )

    def test_default_security_omitted(self):
        d = build({"kind": "desktop", "host": "h"})
        assert d.security == "any"
        assert d.port == 3389
        assert d.connection_string == "rdp://h:3389"

    def test_false_flags_omitted(self):
        d = build({"kind": "desktop", "host": "h", "ignore-cert": "false", "audio": False})
        assert d.connection_string == "rdp://h:3389"

    def test_invalid_security(self):
        with pytest.raises(ValidationError, match="security"):
            build({"kind": "desktop", "host": "h", "security": "none;rm"})

    def test_invalid_flag(self):
        with pytest.raises(ValidationError, match="audio"):
            build({"kind": "desktop", "host": "h", "audio": "yes"})

    def test_missing_host(self):
        with pytest.raises(ValidationError, match="missing host"):
            build({"kind": "desktop"})


# ---------------------------------------------------------------------------
# Container exec
# ---------------------------------------------------------------------------

class TestContainerExec:

    def test_minimal(self):
        d = build({"kind": "container-exec", "kubernetes": {"namespace": "web", "pod": "web-0"}})
        assert isinstance(d, ContainerExecDescriptor)
        assert d.exec_argv == ["kubectl", "exec", "-i", "-n", "web", "web-0", "--", "/bin/sh"]
        assert d.connection_string == (
            "ssh://root@kubernetes:22?ProxyCommand="
            "kubectl%20exec%20-i%20-n%20web%20web-0%20--%20%2Fbin%2Fsh"
        )

    def test_top_level_fields_with_kubeconfig(self):
        d = build({"pod": "api-1", "container": "app", "kubeconfig": "/etc/kube/config", "command": "bash -l"})
        assert d.kind is ConnectionKind.CONTAINER_EXEC
        assert d.namespace == "default"
        assert d.exec_command == "KUBECONFIG=/etc/kube/config kubectl exec -i -n default -c app api-1 -- bash -l"

    def test_default_kubeconfig(self):
        d = build({"pod": "p"}, default_kubeconfig="/k/config")
        assert d.kubeconfig == "/k/config"
        assert d.exec_command.startswith("KUBECONFIG=/k/config ")

    def test_outer_uri_fields(self):
        d = build({"kubernetes": {"pod": "p", "host": "jump.internal", "user": "ops", "port": 2200}})
        assert d.connection_string.startswith("ssh://ops@jump.internal:2200?ProxyCommand=")

    def test_username_and_port_fall_back_to_top_level(self):
        d = build({"username": "ops", "port": 2022, "kubernetes": {"pod": "p"}})
        assert (d.username, d.port, d.host) == ("ops", 2022, "kubernetes")

    @pytest.mark.parametrize("raw", [
        {"kind": "container-exec"},
        {"kind": "k8s", "kubernetes": {"namespace": "web"}},
        {"kind": "container-exec", "kubernetes": {"pod": ""}},
    ])
    def test_missing_pod(self, raw):
        with pytest.raises(ValidationError, match="missing pod"):
            build(raw)

    @pytest.mark.parametrize("field,value", [
        ("pod", "web-0; rm -rf /"),
        ("namespace", "a b"),
        ("container", "$(id)"),
        ("namespace", "Web"),
    ])
    def test_names_are_allow_listed(self, field, value):
        k8s = {"pod": "web-0", field: value}
        with pytest.raises(ValidationError):
            build({"kubernetes": k8s})

    def test_invalid_kubeconfig_path(self):
        with pytest.raises(ValidationError, match="kubeconfig"):
            build({"pod": "p", "kubeconfig": "/tmp/x; id"})

    def test_command_arguments_are_quoted(self):
        d = build({"pod": "p", "command": "sh -c 'echo $(id)'"})
        assert d.exec_argv[-3:] == ["sh", "-c", "echo $(id)"]
        assert d.exec_command.endswith("-- sh -c 'echo $(id)'")

    def test_unbalanced_command_rejected(self):
        with pytest.raises(ValidationError, match="command"):
            build({"pod": "p", "command": "sh -c 'oops"})

    def test_kubernetes_must_be_mapping(self):
        with pytest.raises(ValidationError):
            build({"kubernetes": "web-0"})


# ---------------------------------------------------------------------------
# Descriptor value semantics
# ---------------------------------------------------------------------------

class TestDescriptorValue:

    def test_connection_string_is_not_settable(self):
        d = build({"host": "h"})
        with pytest.raises(dataclasses.FrozenInstanceError):
            d.connection_string = "ssh://evil"
        with pytest.raises(TypeError):
            ShellDescriptor(host="h", connection_string="ssh://evil")

    def test_with_expiry_copies(self):
        d = build({"host": "h"})
        later = d.with_expiry(1234)
        assert later.expires_at == 1234
        assert d.expires_at is None
        assert later.connection_string == d.connection_string

    @pytest.mark.parametrize("raw", [
        {"host": "10.0.0.5", "username": "alice", "password": "p@ss", "host-key": "k"},
        {"kind": "desktop", "host": "10.0.0.9", "domain": "CORP", "ignore-cert": True},
        {"kubernetes": {"namespace": "web", "pod": "web-0", "container": "app", "command": "bash -l"}},
    ])
    def test_payload_rebuilds_equal_descriptor(self, raw):
        d = build(raw)
        payload = d.to_payload()
        assert payload["kind"] == d.kind.value
        assert payload["connection_string"] == d.connection_string
        assert build(payload) == d

    def test_encode_component_matches_uri_component_rules(self):
        assert encode_component("a b/c?d&e=f@g") == "a%20b%2Fc%3Fd%26e%3Df%40g"
        assert encode_component("-_.!~*'()") == "-_.!~*'()"
