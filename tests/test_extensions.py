"""Tests for the extension registry and import/export options"""

import pytest

from gltfrig.core.errors import StructuralError
from gltfrig.loaders import DocumentExtension, ExportOptions, ExtensionRegistry, ImportOptions, SceneState


class NamedExtension(DocumentExtension):
    def __init__(self, name, supported=(), active=True, calls=None, answer=None):
        self.name = name
        self.supported = list(supported)
        self.active = active
        self.calls = calls if calls is not None else []
        self.answer = answer

    def get_supported_extensions(self):
        return self.supported

    def import_preflight(self, state, extensions_used):
        return self.active

    def import_node(self, state, node_index, node):
        self.calls.append((self.name, node_index))

    def parse_node_extensions(self, state, node, extensions):
        return self.answer


def test_register_order_and_priority():
    """New extensions go last unless registered with first priority"""
    a, b, c = NamedExtension("a"), NamedExtension("b"), NamedExtension("c")
    registry = ExtensionRegistry()
    registry.register(a)
    registry.register(b)
    registry.register(c, first_priority=True)

    assert [ext.name for ext in registry] == ["c", "a", "b"]


def test_register_twice_is_ignored():
    """An extension is only registered once"""
    a = NamedExtension("a")
    registry = ExtensionRegistry([a])
    registry.register(a)
    registry.register(a, first_priority=True)

    assert len(registry) == 1


def test_unregister():
    """Extensions can be removed one at a time or all at once"""
    a, b = NamedExtension("a"), NamedExtension("b")
    registry = ExtensionRegistry([a, b])

    registry.unregister(a)
    assert a not in registry and b in registry

    registry.unregister_all()
    assert len(registry) == 0


def test_call_all_visits_in_order():
    """Every extension sees the hook, in registry order"""
    calls = []
    registry = ExtensionRegistry([NamedExtension("a", calls=calls), NamedExtension("b", calls=calls)])
    registry.register(NamedExtension("c", calls=calls), first_priority=True)

    registry.call_all("import_node", None, 4, None)

    assert calls == [("c", 4), ("a", 4), ("b", 4)]


def test_first_result_wins():
    """The first extension returning a value decides"""
    registry = ExtensionRegistry([
        NamedExtension("a"),
        NamedExtension("b", answer="from b"),
        NamedExtension("c", answer="from c"),
    ])

    assert registry.first_result("parse_node_extensions", None, None, {}) == "from b"


def test_preflight_filters_inactive():
    """Extensions declining a document sit out the import"""
    a, b = NamedExtension("a", active=False), NamedExtension("b")
    active = ExtensionRegistry([a, b]).import_preflight(SceneState(), [])

    assert list(active) == [b]


def test_preflight_required_extensions():
    """Required extensions must be supported by an active extension or built in"""
    registry = ExtensionRegistry([NamedExtension("draco", supported=["KHR_draco_mesh_compression"])])

    registry.import_preflight(SceneState(), [], ["KHR_draco_mesh_compression", "KHR_mesh_quantization"])
    with pytest.raises(StructuralError):
        registry.import_preflight(SceneState(), [], ["EXT_meshopt_compression"])


def test_inactive_extension_does_not_support():
    """An extension that declined the document cannot satisfy a requirement"""
    registry = ExtensionRegistry([
        NamedExtension("draco", supported=["KHR_draco_mesh_compression"], active=False),
    ])

    with pytest.raises(StructuralError):
        registry.import_preflight(SceneState(), [], ["KHR_draco_mesh_compression"])


def test_import_options_from_dict():
    """Options come from a dictionary with defaults for missing keys"""
    options = ImportOptions.from_dict({"bake_fps": "24", "trimming": True, "unknown": 1})

    assert options.bake_fps == 24.0
    assert options.trimming
    assert options.remove_immutable_tracks == ImportOptions().remove_immutable_tracks
    assert ImportOptions.from_dict(options.to_dict()) == options


def test_options_defaults():
    """No dictionary means default options"""
    assert ImportOptions.from_dict(None) == ImportOptions()
    assert ExportOptions.from_dict(None) == ExportOptions()


@pytest.mark.parametrize("cls", [ImportOptions, ExportOptions])
def test_options_reject_bad_fps(cls):
    """The bake rate must be positive"""
    with pytest.raises(ValueError):
        cls.from_dict({"bake_fps": 0})
