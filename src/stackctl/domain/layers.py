"""Compose layer merging.

A compose layer is parsed into a tree of three node kinds: scalar,
mapping and list. Layers are folded left to right:

* scalars: last writer wins
* mappings: merged key by key, recursively; later keys win
* lists: replaced wholesale by the last layer that defines them

A field whose kind differs between two layers is a configuration error.
``null`` is compatible with every kind (compose uses bare keys such as
``volumes: {dbdata: }``) and, like any other value, the later one wins.

The result depends only on the order of the layer paths passed in.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from stackctl.domain.errors import ConflictingTypeError, InvalidLayerError, LayerNotFoundError


class NodeKind(StrEnum):
    NULL = "null"
    SCALAR = "scalar"
    MAPPING = "mapping"
    LIST = "list"


def node_kind(value: Any) -> NodeKind:
    if value is None:
        return NodeKind.NULL
    if isinstance(value, Mapping):
        return NodeKind.MAPPING
    if isinstance(value, (list, tuple)):
        return NodeKind.LIST
    return NodeKind.SCALAR


def _plain(value: Any) -> Any:
    """Convert ruamel containers into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def load_layer(path: Path) -> dict[str, Any]:
    """Read one compose layer file into a plain tree."""
    if not path.is_file():
        raise LayerNotFoundError(f"Compose layer not found: {path}", layer=str(path))
    yaml = YAML(typ="safe")
    try:
        data = yaml.load(path.read_text(encoding="utf-8"))
    except YAMLError as exc:
        raise InvalidLayerError(f"Invalid YAML in {path}: {exc}", layer=str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise InvalidLayerError(
            f"Compose layer {path} must contain a mapping at the top level",
            layer=str(path),
        )
    return _plain(data)


def merge_trees(
    layers: Sequence[tuple[str, Mapping[str, Any]]],
) -> dict[str, Any]:
    """Fold ``(label, tree)`` pairs left to right into one tree.

    Labels only feed error messages.
    """
    result: dict[str, Any] = {}
    origins: dict[tuple[str, ...], str] = {}
    for label, tree in layers:
        _merge_into(result, tree, (), label, origins)
    return result


def _origin(origins: dict[tuple[str, ...], str], key_path: tuple[str, ...]) -> str:
    """Layer that last wrote *key_path* or its nearest written ancestor."""
    for end in range(len(key_path), 0, -1):
        label = origins.get(key_path[:end])
        if label is not None:
            return label
    return "?"


def _merge_into(
    target: dict[str, Any],
    source: Mapping[str, Any],
    path: tuple[str, ...],
    label: str,
    origins: dict[tuple[str, ...], str],
) -> None:
    for key, value in source.items():
        key_path = (*path, str(key))
        if key not in target:
            target[key] = copy.deepcopy(value)
            origins[key_path] = label
            continue

        current = target[key]
        old_kind, new_kind = node_kind(current), node_kind(value)
        if NodeKind.NULL not in (old_kind, new_kind) and old_kind != new_kind:
            dotted = ".".join(key_path)
            previous = _origin(origins, key_path)
            raise ConflictingTypeError(
                f"Field {dotted!r} is a {old_kind} in {previous} but a {new_kind} in {label}",
                field=dotted,
                layers=[previous, label],
                kinds=[str(old_kind), str(new_kind)],
            )
        if old_kind is NodeKind.MAPPING and new_kind is NodeKind.MAPPING:
            _merge_into(current, value, key_path, label, origins)
        else:
            target[key] = copy.deepcopy(value)
            for stale in [p for p in origins if p[: len(key_path)] == key_path]:
                del origins[stale]
            origins[key_path] = label


@dataclass(frozen=True)
class MergedLayer:
    """The effective compose definition for one start operation."""

    tree: dict[str, Any]
    sources: tuple[Path, ...] = field(default_factory=tuple)

    def _services(self) -> dict[str, Any]:
        services = self.tree.get("services") or {}
        return services if isinstance(services, dict) else {}

    def services(self) -> list[str]:
        """Logical service names in declaration order."""
        return list(self._services())

    def service(self, name: str) -> dict[str, Any]:
        return self._services().get(name) or {}

    def dependencies(self, name: str) -> list[str]:
        """``depends_on`` targets; both the list and the long mapping form."""
        deps = self.service(name).get("depends_on") or []
        if isinstance(deps, Mapping):
            return [str(d) for d in deps]
        return [str(d) for d in deps]

    def volumes(self, name: str) -> list[Any]:
        return list(self.service(name).get("volumes") or [])

    def to_compose(
        self,
        container_names: Iterable[tuple[str, str]],
        labels: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """Return a compose document pinning each service's container name.

        *labels* are added to every service, in whichever of the list or
        mapping forms the service already uses.
        """
        doc = copy.deepcopy(self.tree)
        services = doc.setdefault("services", {})
        for logical, container in container_names:
            service = services.get(logical)
            if service is None:
                service = services[logical] = {}
            service["container_name"] = container
            if labels:
                existing = service.get("labels")
                if isinstance(existing, list):
                    kept = [e for e in existing if str(e).partition("=")[0] not in labels]
                    service["labels"] = kept + [f"{k}={v}" for k, v in labels.items()]
                else:
                    service["labels"] = {**(existing or {}), **labels}
        return doc

    def dump(
        self,
        path: Path,
        container_names: Iterable[tuple[str, str]],
        labels: Mapping[str, str] | None = None,
    ) -> Path:
        """Write the rendered compose document to *path*."""
        path.parent.mkdir(parents=True, exist_ok=True)
        yaml = YAML()
        yaml.default_flow_style = False
        with path.open("w", encoding="utf-8") as fh:
            yaml.dump(self.to_compose(container_names, labels), fh)
        return path


def merge(layer_paths: Sequence[Path]) -> MergedLayer:
    """Merge the compose layers at *layer_paths*, in order."""
    missing = [p for p in layer_paths if not Path(p).is_file()]
    if missing:
        raise LayerNotFoundError(
            f"Compose layer not found: {missing[0]}",
            layer=str(missing[0]),
            missing=[str(p) for p in missing],
        )
    loaded = [(Path(p).name, load_layer(Path(p))) for p in layer_paths]
    return MergedLayer(tree=merge_trees(loaded), sources=tuple(Path(p) for p in layer_paths))
