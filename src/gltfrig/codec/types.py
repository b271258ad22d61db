"""
Accessor Types

Component/element type tables and the buffer-view and accessor records.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import List, Optional, Tuple

import numpy as np

from ..core.errors import StructuralError


class ComponentType(IntEnum):
    """glTF component types (numeric values match the file format)."""
    BYTE = 5120
    UNSIGNED_BYTE = 5121
    SHORT = 5122
    UNSIGNED_SHORT = 5123
    UNSIGNED_INT = 5125
    FLOAT = 5126

    @property
    def size(self) -> int:
        """Size of one component in bytes."""
        return _COMPONENT_SIZES[self]

    @property
    def dtype(self) -> np.dtype:
        """Little-endian numpy dtype for one component."""
        return np.dtype(_COMPONENT_DTYPES[self])

    @property
    def normalization_divisor(self) -> Optional[float]:
        """Divisor mapping normalized integers to [-1, 1] / [0, 1]; None for int and float."""
        return _NORMALIZATION_DIVISORS.get(self)

    @property
    def label(self) -> str:
        return _COMPONENT_LABELS[self]

    @classmethod
    def from_value(cls, value) -> 'ComponentType':
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise StructuralError(f"Unsupported accessor component type: {value}") from None


_COMPONENT_SIZES = {
    ComponentType.BYTE: 1,
    ComponentType.UNSIGNED_BYTE: 1,
    ComponentType.SHORT: 2,
    ComponentType.UNSIGNED_SHORT: 2,
    ComponentType.UNSIGNED_INT: 4,
    ComponentType.FLOAT: 4,
}

_COMPONENT_DTYPES = {
    ComponentType.BYTE: '<i1',
    ComponentType.UNSIGNED_BYTE: '<u1',
    ComponentType.SHORT: '<i2',
    ComponentType.UNSIGNED_SHORT: '<u2',
    ComponentType.UNSIGNED_INT: '<u4',
    ComponentType.FLOAT: '<f4',
}

_NORMALIZATION_DIVISORS = {
    ComponentType.BYTE: 128.0,
    ComponentType.UNSIGNED_BYTE: 255.0,
    ComponentType.SHORT: 32768.0,
    ComponentType.UNSIGNED_SHORT: 65535.0,
}

_COMPONENT_LABELS = {
    ComponentType.BYTE: "Byte",
    ComponentType.UNSIGNED_BYTE: "UByte",
    ComponentType.SHORT: "Short",
    ComponentType.UNSIGNED_SHORT: "UShort",
    ComponentType.UNSIGNED_INT: "Int",
    ComponentType.FLOAT: "Float",
}


class ElementType(Enum):
    """Accessor element types."""
    SCALAR = "SCALAR"
    VEC2 = "VEC2"
    VEC3 = "VEC3"
    VEC4 = "VEC4"
    MAT2 = "MAT2"
    MAT3 = "MAT3"
    MAT4 = "MAT4"

    @property
    def component_count(self) -> int:
        return _COMPONENT_COUNTS[self]

    @classmethod
    def from_string(cls, name: str) -> 'ElementType':
        try:
            return cls(name)
        except ValueError:
            raise StructuralError(f"Unknown accessor type: {name!r}") from None


_COMPONENT_COUNTS = {
    ElementType.SCALAR: 1,
    ElementType.VEC2: 2,
    ElementType.VEC3: 3,
    ElementType.VEC4: 4,
    ElementType.MAT2: 4,
    ElementType.MAT3: 9,
    ElementType.MAT4: 16,
}


def alignment_quirk(component_type: ComponentType, element_type: ElementType) -> Tuple[int, int, Optional[int]]:
    """
    Column padding rules for small-component matrices.

    Matrix columns must start on 4-byte boundaries, so byte MAT2, byte MAT3
    and short MAT3 elements carry padding between columns.

    Returns:
        (skip_every, skip_bytes, element_size_override); (0, 0, None) when
        the pair needs no padding
    """
    if component_type in (ComponentType.BYTE, ComponentType.UNSIGNED_BYTE):
        if element_type == ElementType.MAT2:
            return 2, 2, 8
        if element_type == ElementType.MAT3:
            return 3, 1, 12
    elif component_type in (ComponentType.SHORT, ComponentType.UNSIGNED_SHORT):
        if element_type == ElementType.MAT3:
            return 6, 4, 16
    return 0, 0, None


def component_offsets(component_type: ComponentType, element_type: ElementType) -> List[int]:
    """Byte offset of every component inside one element, padding included."""
    skip_every, skip_bytes, _ = alignment_quirk(component_type, element_type)
    offsets = []
    position = 0
    for j in range(element_type.component_count):
        if skip_every and j > 0 and j % skip_every == 0:
            position += skip_bytes
        offsets.append(position)
        position += component_type.size
    return offsets


def element_size(component_type: ComponentType, element_type: ElementType) -> int:
    """Size of one element in bytes, padding included."""
    _, _, override = alignment_quirk(component_type, element_type)
    if override is not None:
        return override
    return component_type.size * element_type.component_count


@dataclass
class BufferView:
    """Byte range within a raw buffer."""
    buffer: int
    byte_length: int
    byte_offset: int = 0
    byte_stride: Optional[int] = None
    indices: bool = False  # Target is ELEMENT_ARRAY_BUFFER


@dataclass
class SparseAccessor:
    """Indexed overrides applied on top of an accessor's base data."""
    count: int
    indices_buffer_view: int
    indices_component_type: ComponentType
    values_buffer_view: int
    indices_byte_offset: int = 0
    values_byte_offset: int = 0


@dataclass
class Accessor:
    """Typed view over a buffer view."""
    component_type: ComponentType
    element_type: ElementType
    count: int
    buffer_view: int = -1
    byte_offset: int = 0
    normalized: bool = False
    min: Optional[List[float]] = None
    max: Optional[List[float]] = None
    sparse: Optional[SparseAccessor] = None

    @property
    def component_count(self) -> int:
        return self.element_type.component_count
