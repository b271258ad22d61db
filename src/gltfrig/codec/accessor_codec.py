"""
Accessor Codec

Converts between flat numeric arrays and packed, strided, possibly
sparse binary buffer regions.

Data alignment follows the glTF 2.0 binary layout:
https://github.com/KhronosGroup/glTF/tree/main/specification/2.0#data-alignment
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from pyrr import Matrix44

from ..config.settings import CMP_NORMALIZE_TOLERANCE, VERTEX_ALIGNMENT
from ..core.errors import StructuralError
from .types import (
    Accessor, BufferView, ComponentType, ElementType,
    component_offsets, element_size,
)

logger = logging.getLogger(__name__)


def _align(value: int, alignment: int) -> int:
    if value % alignment:
        value += alignment - (value % alignment)
    return value


def calc_min_max(values: np.ndarray, component_count: int) -> Tuple[List[float], List[float]]:
    """
    Compute per-column bounds of an element array.

    NaNs are replaced with 0 before the bounds are taken.

    Args:
        values: Flat or (count, component_count) array
        component_count: Components per element

    Returns:
        (min, max) lists with one entry per component
    """
    data = np.nan_to_num(np.asarray(values, dtype='f8').reshape(-1, component_count), nan=0.0)
    return data.min(axis=0).tolist(), data.max(axis=0).tolist()


class AccessorCodec:
    """
    Decodes accessors from raw buffers and encodes arrays into a working buffer.

    Holds the document's buffers, buffer views and accessors. Encoding
    always appends to buffer 0, which is created on demand.
    """

    def __init__(self, buffers: Optional[List[bytes]] = None,
                 buffer_views: Optional[List[BufferView]] = None,
                 accessors: Optional[List[Accessor]] = None):
        self.buffers: List[bytearray] = [bytearray(b) for b in buffers] if buffers else []
        self.buffer_views: List[BufferView] = list(buffer_views) if buffer_views else []
        self.accessors: List[Accessor] = list(accessors) if accessors else []

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def decode_buffer_view(self, buffer_view_index: int, component_type: ComponentType,
                           element_type: ElementType, count: int, normalized: bool,
                           byte_offset: int = 0, for_vertex: bool = False) -> np.ndarray:
        """
        Read ``count`` elements from a buffer view.

        Args:
            buffer_view_index: Buffer view to read from
            component_type: Component type of the stored data
            element_type: Element type of the stored data
            count: Number of elements
            normalized: Rescale integer components to [-1, 1] / [0, 1]
            byte_offset: Accessor offset inside the view
            for_vertex: Round the stride up to 4 bytes (vertex attribute rule)

        Returns:
            float64 array of shape (count, component_count)
        """
        if buffer_view_index < 0 or buffer_view_index >= len(self.buffer_views):
            raise StructuralError(f"Accessor references nonexistent buffer view {buffer_view_index}")
        bv = self.buffer_views[buffer_view_index]
        if bv.buffer < 0 or bv.buffer >= len(self.buffers):
            raise StructuralError(f"Buffer view {buffer_view_index} references nonexistent buffer {bv.buffer}")

        component_count = element_type.component_count
        offsets = component_offsets(component_type, element_type)
        size = element_size(component_type, element_type)
        span = max(size, offsets[-1] + component_type.size)

        stride = bv.byte_stride if bv.byte_stride is not None else size
        if for_vertex:
            stride = _align(stride, VERTEX_ALIGNMENT)

        buffer = self.buffers[bv.buffer]
        offset = bv.byte_offset + byte_offset

        logger.debug(
            "type %s component type: %s stride: %d amount %d",
            element_type.value, component_type.label, stride, count,
        )
        logger.debug(
            "accessor offset %d view offset: %d total buffer len: %d view len %d",
            byte_offset, bv.byte_offset, len(buffer), bv.byte_length,
        )

        output = np.zeros((count, component_count), dtype='f8')
        if count <= 0:
            return output

        buffer_end = stride * (count - 1) + span
        if byte_offset + buffer_end > bv.byte_length:
            raise StructuralError(
                f"Accessor range ({byte_offset + buffer_end} bytes) exceeds buffer view "
                f"{buffer_view_index} length {bv.byte_length}"
            )
        if offset + buffer_end > len(buffer):
            raise StructuralError(
                f"Accessor range ends at byte {offset + buffer_end}, buffer {bv.buffer} "
                f"holds {len(buffer)} bytes"
            )

        raw = np.frombuffer(buffer, dtype=np.uint8)
        dtype = component_type.dtype
        divisor = component_type.normalization_divisor if normalized else None

        for j, component_offset in enumerate(offsets):
            column = np.ndarray(
                shape=(count,), dtype=dtype, buffer=raw,
                offset=offset + component_offset, strides=(stride,),
            )
            values = column.astype('f8')
            if divisor is not None:
                values /= divisor
            output[:, j] = values

        return output

    def decode(self, accessor_index: int, for_vertex: bool = False) -> np.ndarray:
        """
        Decode an accessor into a flat array of doubles.

        Accessors without a buffer view decode to zeros; a sparse overlay
        then replaces the indexed elements.

        Args:
            accessor_index: Accessor to decode
            for_vertex: Apply the vertex stride alignment rule

        Returns:
            float64 array of length count * component_count
        """
        if accessor_index is None or accessor_index < 0 or accessor_index >= len(self.accessors):
            raise StructuralError(f"Reference to nonexistent accessor {accessor_index}")
        a = self.accessors[accessor_index]
        component_count = a.component_count

        if a.buffer_view >= 0:
            data = self.decode_buffer_view(
                a.buffer_view, a.component_type, a.element_type, a.count,
                a.normalized, a.byte_offset, for_vertex,
            )
        else:
            # No buffer view: base data is all zeros
            data = np.zeros((a.count, component_count), dtype='f8')

        if a.sparse is not None and a.sparse.count > 0:
            sparse = a.sparse
            indices = self.decode_buffer_view(
                sparse.indices_buffer_view, sparse.indices_component_type, ElementType.SCALAR,
                sparse.count, False, sparse.indices_byte_offset, False,
            )[:, 0].astype(np.int64)
            values = self.decode_buffer_view(
                sparse.values_buffer_view, a.component_type, a.element_type,
                sparse.count, a.normalized, sparse.values_byte_offset, for_vertex,
            )

            if indices.size and (indices.min() < 0 or indices.max() >= a.count):
                raise StructuralError(
                    f"Sparse index {int(indices.max())} out of range for accessor {accessor_index} "
                    f"with {a.count} elements"
                )
            data[indices] = values

        return data.reshape(-1)

    def decode_as_ints(self, accessor_index: int, for_vertex: bool = False) -> np.ndarray:
        """Decode an accessor and truncate every value to an integer."""
        return self.decode(accessor_index, for_vertex).astype(np.int64)

    def decode_as_floats(self, accessor_index: int, for_vertex: bool = False) -> np.ndarray:
        return self.decode(accessor_index, for_vertex)

    def decode_as_vec3(self, accessor_index: int, for_vertex: bool = False) -> np.ndarray:
        return self._decode_shaped(accessor_index, 3, for_vertex)

    def decode_as_quaternions(self, accessor_index: int, for_vertex: bool = False) -> np.ndarray:
        """
        Decode (x, y, z, w) quaternions.

        Returns:
            (count, 4) array with every non-zero row normalized
        """
        quats = self._decode_shaped(accessor_index, 4, for_vertex)
        lengths = np.linalg.norm(quats, axis=1)
        nonzero = lengths > 0.0
        quats[nonzero] /= lengths[nonzero, np.newaxis]
        return quats

    def decode_as_colors(self, accessor_index: int, for_vertex: bool = False) -> np.ndarray:
        """Decode VEC3/VEC4 colors as (count, 4) RGBA, alpha defaulting to 1."""
        a = self.accessors[accessor_index]
        data = self.decode(accessor_index, for_vertex)
        if a.element_type == ElementType.VEC3:
            rgb = data.reshape(-1, 3)
            return np.hstack([rgb, np.ones((rgb.shape[0], 1))])
        if a.element_type != ElementType.VEC4:
            raise StructuralError(f"Accessor {accessor_index} is not a color (type {a.element_type.value})")
        return data.reshape(-1, 4)

    def decode_as_matrices(self, accessor_index: int, for_vertex: bool = False) -> List[Matrix44]:
        """
        Decode MAT4 data into pyrr matrices.

        glTF stores matrices column-major; read row by row they are already
        in pyrr's row-major layout.
        """
        a = self.accessors[accessor_index]
        if a.element_type != ElementType.MAT4:
            raise StructuralError(f"Accessor {accessor_index} is {a.element_type.value}, expected MAT4")
        data = self.decode(accessor_index, for_vertex).reshape(-1, 4, 4)
        return [Matrix44(m) for m in data]

    def _decode_shaped(self, accessor_index: int, width: int, for_vertex: bool) -> np.ndarray:
        data = self.decode(accessor_index, for_vertex)
        if data.size % width:
            raise StructuralError(
                f"Accessor {accessor_index} holds {data.size} values, not a multiple of {width}"
            )
        return data.reshape(-1, width)

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _working_buffer(self) -> bytearray:
        if not self.buffers:
            self.buffers.append(bytearray())
        return self.buffers[0]

    def encode_buffer_view(self, values: Sequence[float], element_type: ElementType,
                           component_type: ComponentType, normalized: bool = False,
                           for_vertex: bool = False, dest_offset: Optional[int] = None) -> int:
        """
        Pack values into a new buffer view of buffer 0.

        Normalized values are multiplied by the component divisor and all
        integer encodings truncate toward zero.

        Args:
            dest_offset: Byte offset of the view in buffer 0. None appends at
                the aligned end; an explicit offset must be a multiple of 4
                and overwrites whatever bytes are already there.

        Returns:
            Index of the new buffer view
        """
        component_count = element_type.component_count
        data = np.asarray(values, dtype='f8').reshape(-1)
        if data.size % component_count:
            raise ValueError(f"{data.size} values do not form whole {element_type.value} elements")
        count = data.size // component_count
        data = data.reshape(count, component_count)

        offsets = component_offsets(component_type, element_type)
        size = element_size(component_type, element_type)
        span = offsets[-1] + component_type.size

        stride = max(size, span)
        if for_vertex or span > size:
            stride = _align(stride, VERTEX_ALIGNMENT)

        divisor = component_type.normalization_divisor if normalized else None
        if divisor is not None:
            data = data * divisor
        dtype = component_type.dtype
        if component_type != ComponentType.FLOAT:
            info = np.iinfo(dtype)
            data = np.clip(np.trunc(np.nan_to_num(data, nan=0.0)), info.min, info.max)

        packed = np.zeros(count * stride, dtype=np.uint8)
        for j, component_offset in enumerate(offsets if count else ()):
            column = np.ndarray(
                shape=(count,), dtype=dtype, buffer=packed,
                offset=component_offset, strides=(stride,),
            )
            column[:] = data[:, j].astype(dtype)

        buffer = self._working_buffer()
        if dest_offset is None:
            # Keep every view aligned for its component type
            buffer.extend(b"\x00" * (_align(len(buffer), VERTEX_ALIGNMENT) - len(buffer)))
            dest_offset = len(buffer)
        elif dest_offset < 0 or dest_offset % VERTEX_ALIGNMENT:
            raise ValueError(f"Buffer view offset {dest_offset} is not a multiple of {VERTEX_ALIGNMENT}")

        bv = BufferView(buffer=0, byte_length=int(packed.size), byte_offset=dest_offset)
        if stride != size:
            bv.byte_stride = stride

        logger.debug(
            "encoding type %s component type: %s stride: %d amount %d",
            element_type.value, component_type.label, stride, count,
        )

        buffer_end = stride * (count - 1) + span if count else 0
        if buffer_end > bv.byte_length:
            raise StructuralError(f"Encoded range {buffer_end} exceeds view length {bv.byte_length}")

        view_end = dest_offset + packed.size
        if view_end > len(buffer):
            buffer.extend(b"\x00" * (view_end - len(buffer)))
        buffer[dest_offset:view_end] = packed.tobytes()
        if bv.byte_offset + buffer_end > len(buffer):
            raise StructuralError("Encoded range exceeds the working buffer")

        self.buffer_views.append(bv)
        return len(self.buffer_views) - 1

    def encode_accessor(self, values: Sequence[float], element_type: ElementType,
                        component_type: ComponentType, normalized: bool = False,
                        for_vertex: bool = False, dest_offset: Optional[int] = None) -> int:
        """
        Encode values into a new accessor with min/max bounds.

        Returns:
            Accessor index, or -1 when there is nothing to encode
        """
        data = np.asarray(values, dtype='f8').reshape(-1)
        if data.size == 0:
            return -1

        component_count = element_type.component_count
        type_min, type_max = calc_min_max(data, component_count)

        buffer_view = self.encode_buffer_view(data, element_type, component_type, normalized, for_vertex, dest_offset)
        accessor = Accessor(
            component_type=component_type,
            element_type=element_type,
            count=data.size // component_count,
            buffer_view=buffer_view,
            byte_offset=0,
            normalized=normalized,
            min=type_min,
            max=type_max,
        )
        self.accessors.append(accessor)
        return len(self.accessors) - 1

    def encode_as_ints(self, values: Sequence[int], for_vertex: bool = False) -> int:
        data = np.round(np.asarray(values, dtype='f8'))
        return self.encode_accessor(data, ElementType.SCALAR, ComponentType.UNSIGNED_INT, False, for_vertex)

    def encode_as_floats(self, values: Sequence[float], for_vertex: bool = False) -> int:
        return self.encode_accessor(values, ElementType.SCALAR, ComponentType.FLOAT, False, for_vertex)

    def encode_as_vec3(self, values, for_vertex: bool = False) -> int:
        return self.encode_accessor(values, ElementType.VEC3, ComponentType.FLOAT, False, for_vertex)

    def encode_as_quaternions(self, values, for_vertex: bool = False) -> int:
        return self.encode_accessor(values, ElementType.VEC4, ComponentType.FLOAT, False, for_vertex)

    def encode_as_weights(self, values, for_vertex: bool = True) -> int:
        data = np.asarray(values, dtype='f8')
        data = np.round(data / CMP_NORMALIZE_TOLERANCE) * CMP_NORMALIZE_TOLERANCE
        return self.encode_accessor(data, ElementType.VEC4, ComponentType.FLOAT, False, for_vertex)

    def encode_as_joints(self, values, for_vertex: bool = True) -> int:
        data = np.round(np.asarray(values, dtype='f8'))
        return self.encode_accessor(data, ElementType.VEC4, ComponentType.UNSIGNED_SHORT, False, for_vertex)

    def encode_as_matrices(self, matrices: Sequence[Matrix44], for_vertex: bool = False) -> int:
        if not len(matrices):
            return -1
        data = np.array([np.asarray(m, dtype='f8').reshape(16) for m in matrices])
        return self.encode_accessor(data, ElementType.MAT4, ComponentType.FLOAT, False, for_vertex)

    def __repr__(self):
        return (
            f"AccessorCodec(buffers={len(self.buffers)}, buffer_views={len(self.buffer_views)}, "
            f"accessors={len(self.accessors)})"
        )
