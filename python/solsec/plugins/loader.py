"""File-based plugin store used by the command-line layer."""

import importlib.util
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..audit import AuditLogger
from ..errors import PluginLoadError
from .interface import PluginDescriptor
from .registry import PluginRegistry

logger = logging.getLogger(__name__)


ACTIONS = ("install", "list", "remove")


@dataclass
class PluginActionResult:
    """Outcome of a plugin install/list/remove action."""
    success: bool
    message: str
    descriptors: List[PluginDescriptor] = field(default_factory=list)
    errors: List[PluginLoadError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "descriptors": [d.to_dict() for d in self.descriptors],
            "errors": [{"plugin": e.plugin_name, "reason": e.reason} for e in self.errors],
        }


def load_plugin_file(path: Path) -> Any:
    """
    Import a plugin file and return its plugin object.

    The file must define ``create_plugin()`` or a ``PLUGIN`` object.

    Raises:
        PluginLoadError: The file cannot be imported or exposes no plugin
    """
    path = Path(path)
    name = path.stem
    spec = importlib.util.spec_from_file_location(f"solsec_plugin_{name}", path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(name, f"cannot import {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise PluginLoadError(name, f"import failed: {type(e).__name__}: {e}") from e

    factory = getattr(module, "create_plugin", None)
    if callable(factory):
        try:
            return factory()
        except Exception as e:
            raise PluginLoadError(name, f"create_plugin() raised {type(e).__name__}: {e}") from e
    plugin = getattr(module, "PLUGIN", None)
    if plugin is None:
        raise PluginLoadError(name, "defines neither create_plugin() nor PLUGIN")
    return plugin


class PluginStore:
    """
    A directory of plugin files.

    The registry never depends on this class; the store only turns files
    into plugin objects and hands them to a registry for validation.
    """

    def __init__(
        self,
        plugin_dir: str,
        reserved_rule_ids: Iterable[str] = (),
        audit_logger: Optional[AuditLogger] = None
    ):
        self.plugin_dir = Path(plugin_dir).expanduser()
        self._reserved_rule_ids = tuple(reserved_rule_ids)
        self._audit_logger = audit_logger

    def _new_registry(self) -> PluginRegistry:
        return PluginRegistry(
            reserved_rule_ids=self._reserved_rule_ids,
            audit_logger=self._audit_logger,
        )

    def plugin_files(self) -> List[Path]:
        if not self.plugin_dir.is_dir():
            return []
        return sorted(
            p for p in self.plugin_dir.glob("*.py")
            if p.is_file() and not p.name.startswith("_")
        )

    def load_into(self, registry: PluginRegistry) -> PluginRegistry:
        """Load every installed plugin into ``registry``."""
        for path in self.plugin_files():
            try:
                plugin = load_plugin_file(path)
            except PluginLoadError as e:
                registry.record_error(e)
                continue
            registry.register(plugin, path=str(path))
        return registry

    def load_registry(self) -> PluginRegistry:
        """A frozen registry with every installed plugin."""
        return self.load_into(self._new_registry()).freeze()

    def install(self, source: str) -> PluginActionResult:
        """Validate a plugin file and copy it into the store."""
        path = Path(source).expanduser()
        if not path.is_file() or path.suffix != ".py":
            return PluginActionResult(False, f"Not a plugin file: {source}")

        registry = self._new_registry()
        self.load_into(registry)
        try:
            plugin = load_plugin_file(path)
        except PluginLoadError as e:
            return PluginActionResult(False, f"Rejected {path.name}: {e.reason}", errors=[e])

        descriptor = registry.register(plugin, path=str(path))
        if descriptor is None:
            error = registry.errors[-1]
            return PluginActionResult(False, f"Rejected {path.name}: {error.reason}", errors=[error])

        destination = self.plugin_dir / path.name
        if destination.exists():
            return PluginActionResult(False, f"A plugin file named {path.name} is already installed")

        self.plugin_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, destination)
        logger.info(f"Installed plugin {descriptor.name} to {destination}")
        return PluginActionResult(
            True,
            f"Installed {descriptor.name} {descriptor.version}",
            descriptors=[descriptor],
        )

    def list(self) -> PluginActionResult:
        """Describe installed plugins; rejected ones are reported as errors."""
        registry = self.load_registry()
        descriptors = registry.descriptors()
        errors = list(registry.errors)
        message = f"{len(descriptors)} plugin(s) installed"
        if errors:
            message += f", {len(errors)} rejected"
        return PluginActionResult(True, message, descriptors=descriptors, errors=errors)

    def remove(self, name: str) -> PluginActionResult:
        """Remove a plugin by file name, file stem or declared plugin name."""
        target = self._find(name)
        if target is None:
            return PluginActionResult(False, f"No installed plugin named {name}")
        path, descriptor = target
        path.unlink()
        logger.info(f"Removed plugin file {path}")
        return PluginActionResult(
            True,
            f"Removed {descriptor.name if descriptor else path.stem}",
            descriptors=[descriptor] if descriptor else [],
        )

    def _find(self, name: str) -> Optional[Tuple[Path, Optional[PluginDescriptor]]]:
        wanted = Path(name).name
        stem = Path(wanted).stem
        for path in self.plugin_files():
            if path.name == wanted or path.stem == stem:
                return path, self._describe(path)
        for path in self.plugin_files():
            descriptor = self._describe(path)
            if descriptor and descriptor.name == name:
                return path, descriptor
        return None

    def _describe(self, path: Path) -> Optional[PluginDescriptor]:
        registry = self._new_registry()
        try:
            return registry.register(load_plugin_file(path), path=str(path))
        except PluginLoadError:
            return None

    def run(self, action: str, path: Optional[str] = None) -> PluginActionResult:
        """Dispatch a CLI plugin action."""
        if action == "install":
            if not path:
                return PluginActionResult(False, "install requires a plugin file path")
            return self.install(path)
        if action == "list":
            return self.list()
        if action == "remove":
            if not path:
                return PluginActionResult(False, "remove requires a plugin name")
            return self.remove(path)
        return PluginActionResult(False, f"Unknown plugin action: {action} (choose from {', '.join(ACTIONS)})")
