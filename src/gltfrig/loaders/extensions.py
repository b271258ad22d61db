"""
Document Extensions

Pluggable hooks consulted while importing and exporting documents.

Register extensions before loading. ``default_registry`` is the process
wide instance used when a loader is not given its own registry; tests
reset it with ``unregister_all()``.
"""

import logging
from typing import Iterable, Iterator, List, Optional, Sequence

from ..core.errors import StructuralError

logger = logging.getLogger(__name__)

# Extensions the codec handles without a plugin
BUILTIN_EXTENSIONS = ("KHR_mesh_quantization",)


class DocumentExtension:
    """
    Base class for document extensions.

    Every hook has a do-nothing default so subclasses only override what
    they need. Hooks returning a value follow "first non-None wins".
    """

    def get_supported_extensions(self) -> List[str]:
        """Extension names this plugin can read."""
        return []

    def import_preflight(self, state, extensions_used: Sequence[str]) -> bool:
        """Return False to sit out this document."""
        return True

    def parse_node_extensions(self, state, node, extensions: dict):
        """Return a Node to stand in for ``node``, or None to keep it."""
        return None

    def import_node(self, state, node_index: int, node):
        return None

    def import_post(self, state):
        return None

    def export_preflight(self, state) -> bool:
        return True

    def export_node(self, state, node_index: int, node_json):
        return None

    def export_post(self, state, gltf):
        return None

    def __repr__(self):
        return f"{type(self).__name__}()"


class ExtensionRegistry:
    """Ordered list of registered extensions."""

    def __init__(self, extensions: Optional[Iterable[DocumentExtension]] = None):
        self._extensions: List[DocumentExtension] = []
        for extension in extensions or ():
            self.register(extension)

    def register(self, extension: DocumentExtension, first_priority: bool = False):
        """Add an extension; already registered ones are ignored."""
        if extension in self._extensions:
            return
        if first_priority:
            self._extensions.insert(0, extension)
        else:
            self._extensions.append(extension)

    def unregister(self, extension: DocumentExtension):
        if extension in self._extensions:
            self._extensions.remove(extension)

    def unregister_all(self):
        self._extensions.clear()

    def __iter__(self) -> Iterator[DocumentExtension]:
        return iter(list(self._extensions))

    def __len__(self) -> int:
        return len(self._extensions)

    def __contains__(self, extension) -> bool:
        return extension in self._extensions

    def import_preflight(self, state, extensions_used: Sequence[str],
                         extensions_required: Sequence[str] = ()) -> 'ExtensionRegistry':
        """
        Select the extensions taking part in one import.

        Raises:
            StructuralError: If a required extension is supported by nobody
        """
        active = ExtensionRegistry(
            ext for ext in self._extensions if ext.import_preflight(state, list(extensions_used))
        )

        supported = set(BUILTIN_EXTENSIONS)
        for extension in active:
            supported.update(extension.get_supported_extensions())

        missing = [name for name in extensions_required if name not in supported]
        if missing:
            raise StructuralError(f"Required extensions not supported: {', '.join(missing)}")

        return active

    def first_result(self, method: str, *args):
        """Call ``method`` on each extension in order; first non-None result wins."""
        for extension in self._extensions:
            result = getattr(extension, method)(*args)
            if result is not None:
                return result
        return None

    def call_all(self, method: str, *args):
        """Call ``method`` on every extension in order."""
        for extension in self._extensions:
            getattr(extension, method)(*args)

    def __repr__(self):
        return f"ExtensionRegistry({self._extensions})"


default_registry = ExtensionRegistry()
