"""Document loading, export and extension hooks."""

from .document import MeshRecord, SceneState
from .extensions import DocumentExtension, ExtensionRegistry, default_registry
from .options import ExportOptions, ImportOptions
from .gltf_loader import GltfLoader
from .gltf_exporter import GltfExporter

__all__ = [
    'MeshRecord',
    'SceneState',
    'DocumentExtension',
    'ExtensionRegistry',
    'default_registry',
    'ExportOptions',
    'ImportOptions',
    'GltfLoader',
    'GltfExporter',
]
