"""
Preset registry: named connection templates loaded once at startup.

The source is a YAML or JSON mapping of preset name to connection object;
``.json`` files are read as JSON, anything else as YAML:

    lab-shell:
      kind: shell
      host: 10.0.0.5
      username: alice
    web-pod:
      kubernetes:
        namespace: web
        pod: web-0
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

import yaml

from gateway.config.settings import MAX_PRESET_NAME_LENGTH, PRESET_NAME_PATTERN
from gateway.domain.descriptor import ConnectionDescriptor, build
from gateway.domain.errors import ValidationError

logger = logging.getLogger("token-gateway")


@dataclass(frozen=True)
class PresetEntry:
    name: str
    descriptor: ConnectionDescriptor

    def clone(self) -> ConnectionDescriptor:
        """Per-request copy of the descriptor; the registry entry never changes."""
        return self.descriptor.with_expiry(None)


class PresetRegistry:
    """Read-only mapping of preset name to entry.

    Never mutated after construction, so concurrent lookups need no lock.
    """

    def __init__(self, entries: Mapping[str, PresetEntry] | None = None) -> None:
        self._entries = MappingProxyType(dict(entries or {}))

    @classmethod
    def load(cls, source: str | Path | None, default_kubeconfig: str | None = None) -> PresetRegistry:
        """
        Load presets from a YAML/JSON file.

        A missing or unreadable source yields an empty registry; entries that
        fail validation are skipped. Neither aborts startup.
        """
        if not source:
            logger.info("No preset source configured, presets disabled")
            return cls()

        path = Path(source)
        try:
            with open(path, "r") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except FileNotFoundError:
            logger.warning(f"Preset source not found, presets disabled: {path}")
            return cls()
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(f"Could not read preset source {path}, presets disabled: {e}")
            return cls()

        if data is None:
            data = {}
        if not isinstance(data, dict):
            logger.warning(f"Preset source {path} is not a mapping, presets disabled")
            return cls()

        return cls.from_mapping(data, default_kubeconfig=default_kubeconfig)

    @classmethod
    def from_mapping(cls, data: Mapping, default_kubeconfig: str | None = None) -> PresetRegistry:
        entries: dict[str, PresetEntry] = {}
        for name, raw in data.items():
            name = str(name)
            if len(name) > MAX_PRESET_NAME_LENGTH or not PRESET_NAME_PATTERN.match(name):
                logger.warning(f"Skipping preset with invalid name: {name!r}")
                continue
            try:
                descriptor = build(raw, default_kubeconfig=default_kubeconfig)
            except ValidationError as e:
                logger.warning(f"Skipping invalid preset '{name}': {e}")
                continue
            entries[name] = PresetEntry(name=name, descriptor=descriptor)

        logger.info(f"Loaded {len(entries)} preset(s)", extra={"presets": sorted(entries)})
        return cls(entries)

    def lookup(self, name: str) -> PresetEntry | None:
        return self._entries.get(name)

    def names(self) -> list[str]:
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())
