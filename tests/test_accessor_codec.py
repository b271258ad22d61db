"""Tests for AccessorCodec"""

import time

import numpy as np
import pytest
from pyrr import Matrix44

from gltfrig.codec import (
    Accessor, AccessorCodec, BufferView, ComponentType, ElementType, SparseAccessor, calc_min_max,
)
from gltfrig.codec.types import alignment_quirk, component_offsets, element_size
from gltfrig.core.errors import StructuralError


@pytest.mark.parametrize("element_type", [ElementType.SCALAR, ElementType.VEC2, ElementType.VEC3, ElementType.VEC4])
def test_float_round_trip(element_type):
    """Float accessors decode to what was encoded"""
    rng = np.random.default_rng(7)
    values = rng.uniform(-100.0, 100.0, size=5 * element_type.component_count)

    codec = AccessorCodec()
    index = codec.encode_accessor(values, element_type, ComponentType.FLOAT)

    assert codec.accessors[index].count == 5
    assert np.allclose(codec.decode(index), values, rtol=1e-6, atol=1e-4)


@pytest.mark.parametrize("component_type", [
    ComponentType.BYTE, ComponentType.UNSIGNED_BYTE, ComponentType.SHORT, ComponentType.UNSIGNED_SHORT,
])
def test_normalized_bounds(component_type):
    """Every byte pattern decodes into [-1, 1] or [0, 1] when normalized"""
    raw = bytes(range(256)) * 2
    count = len(raw) // component_type.size
    codec = AccessorCodec(
        buffers=[raw],
        buffer_views=[BufferView(buffer=0, byte_length=len(raw))],
        accessors=[Accessor(component_type, ElementType.SCALAR, count, buffer_view=0, normalized=True)],
    )

    decoded = codec.decode(0)
    assert decoded.size == count
    if component_type in (ComponentType.BYTE, ComponentType.SHORT):
        assert decoded.min() >= -1.0 and decoded.max() <= 1.0
    else:
        assert decoded.min() >= 0.0 and decoded.max() <= 1.0


def test_normalized_encode_truncates():
    """Normalized integer encoding truncates instead of rounding"""
    codec = AccessorCodec()
    index = codec.encode_accessor([0.999], ElementType.SCALAR, ComponentType.UNSIGNED_BYTE, normalized=True)

    bv = codec.buffer_views[codec.accessors[index].buffer_view]
    assert codec.buffers[0][bv.byte_offset] == 254


def test_integer_encode_truncates_toward_zero():
    """Plain integer encodings drop the fraction"""
    codec = AccessorCodec()
    index = codec.encode_accessor([2.9, -1.7], ElementType.SCALAR, ComponentType.SHORT)

    assert codec.decode(index).tolist() == [2.0, -1.0]


def test_min_max_filters_nan():
    """Bounds are per column and NaN counts as 0"""
    type_min, type_max = calc_min_max(np.array([np.nan, 2.0, -1.0, 5.0]), 2)

    assert type_min == [-1.0, 2.0]
    assert type_max == [0.0, 5.0]


def test_encode_records_bounds():
    """Encoded accessors carry per component min/max"""
    codec = AccessorCodec()
    index = codec.encode_as_vec3([[1, 5, -2], [3, -4, 0]])

    assert codec.accessors[index].min == [1.0, -4.0, -2.0]
    assert codec.accessors[index].max == [3.0, 5.0, 0.0]


def test_encode_empty_returns_minus_one():
    """Nothing to encode yields no accessor"""
    codec = AccessorCodec()

    assert codec.encode_as_floats([]) == -1
    assert codec.accessors == []


def test_missing_buffer_view_zero_fills():
    """Accessors without a buffer view decode to zeros"""
    codec = AccessorCodec(accessors=[Accessor(ComponentType.FLOAT, ElementType.VEC3, 3)])

    assert codec.decode(0).tolist() == [0.0] * 9


def _sparse_codec(sparse_index):
    codec = AccessorCodec()
    indices_bv = codec.encode_buffer_view([sparse_index], ElementType.SCALAR, ComponentType.UNSIGNED_SHORT)
    values_bv = codec.encode_buffer_view([5.0, 6.0, 7.0], ElementType.VEC3, ComponentType.FLOAT)
    codec.accessors.append(Accessor(
        ComponentType.FLOAT, ElementType.VEC3, 3,
        sparse=SparseAccessor(1, indices_bv, ComponentType.UNSIGNED_SHORT, values_bv),
    ))
    return codec


def test_sparse_overlay():
    """Sparse values overwrite the indexed elements of the base data"""
    codec = _sparse_codec(1)

    assert codec.decode(0).tolist() == [0, 0, 0, 5, 6, 7, 0, 0, 0]


def test_sparse_index_out_of_range():
    """A sparse index past the element count is a structural error"""
    codec = _sparse_codec(5)
    with pytest.raises(StructuralError):
        codec.decode(0)


def test_range_beyond_view_is_rejected():
    """An accessor reaching past its buffer view is corrupt"""
    codec = AccessorCodec(
        buffers=[bytes(64)],
        buffer_views=[BufferView(buffer=0, byte_length=8)],
        accessors=[Accessor(ComponentType.FLOAT, ElementType.VEC3, 3, buffer_view=0)],
    )
    with pytest.raises(StructuralError):
        codec.decode(0)


def test_range_beyond_buffer_is_rejected():
    """A buffer view longer than its buffer is corrupt"""
    codec = AccessorCodec(
        buffers=[bytes(8)],
        buffer_views=[BufferView(buffer=0, byte_length=36)],
        accessors=[Accessor(ComponentType.FLOAT, ElementType.VEC3, 3, buffer_view=0)],
    )
    with pytest.raises(StructuralError):
        codec.decode(0)


def test_range_check_covers_last_component():
    """A short MAT3 needs 22 bytes for its last column, more than its 16 byte element size"""
    def codec_for(view_length):
        return AccessorCodec(
            buffers=[bytes(range(22))],
            buffer_views=[BufferView(buffer=0, byte_length=view_length)],
            accessors=[Accessor(ComponentType.SHORT, ElementType.MAT3, 1, buffer_view=0)],
        )

    with pytest.raises(StructuralError):
        codec_for(16).decode(0)
    assert codec_for(22).decode(0).shape == (9,)


def test_decode_reads_large_buffers_in_place():
    """Decoding a small accessor does not scale with the buffer size"""
    buffer = bytearray(64 * 1024 * 1024)
    buffer[:16] = np.array([1.0, 2.0, 3.0, 4.0], dtype='<f4').tobytes()
    codec = AccessorCodec(
        buffers=[buffer],
        buffer_views=[BufferView(buffer=0, byte_length=16)],
        accessors=[Accessor(ComponentType.FLOAT, ElementType.VEC4, 1, buffer_view=0)],
    )

    start = time.perf_counter()
    for _ in range(200):
        decoded = codec.decode(0)
    elapsed = time.perf_counter() - start

    assert decoded.tolist() == [1.0, 2.0, 3.0, 4.0]
    assert elapsed < 2.0


def test_encode_after_decode():
    """A decoded buffer can still grow when new data is encoded"""
    codec = AccessorCodec()
    first = codec.encode_as_floats([1.0, 2.0])
    assert codec.decode(first).tolist() == [1.0, 2.0]

    second = codec.encode_as_floats([3.0])
    assert codec.decode(second).tolist() == [3.0]
    assert codec.decode(first).tolist() == [1.0, 2.0]


def test_nonexistent_references():
    """Bad accessor and buffer view indices are structural errors"""
    codec = AccessorCodec(accessors=[Accessor(ComponentType.FLOAT, ElementType.SCALAR, 1, buffer_view=3)])

    with pytest.raises(StructuralError):
        codec.decode(4)
    with pytest.raises(StructuralError):
        codec.decode(0)


def test_matrix_quirk_tables():
    """Small component matrices pad their columns"""
    assert alignment_quirk(ComponentType.BYTE, ElementType.MAT2) == (2, 2, 8)
    assert alignment_quirk(ComponentType.UNSIGNED_BYTE, ElementType.MAT3) == (3, 1, 12)
    assert alignment_quirk(ComponentType.SHORT, ElementType.MAT3) == (6, 4, 16)
    assert alignment_quirk(ComponentType.FLOAT, ElementType.MAT3) == (0, 0, None)

    assert component_offsets(ComponentType.BYTE, ElementType.MAT2) == [0, 1, 4, 5]
    assert element_size(ComponentType.UNSIGNED_SHORT, ElementType.MAT3) == 16
    assert element_size(ComponentType.FLOAT, ElementType.MAT4) == 64


def test_byte_mat2_layout():
    """Byte MAT2 columns start on 4 byte boundaries"""
    codec = AccessorCodec()
    index = codec.encode_accessor([1, 2, 3, 4], ElementType.MAT2, ComponentType.BYTE)

    bv = codec.buffer_views[codec.accessors[index].buffer_view]
    raw = bytes(codec.buffers[0][bv.byte_offset:bv.byte_offset + bv.byte_length])
    assert raw == bytes([1, 2, 0, 0, 3, 4, 0, 0])
    assert codec.decode(index).tolist() == [1, 2, 3, 4]


def test_short_mat3_round_trip():
    """Short MAT3 elements keep their padding and decode back"""
    values = np.arange(18, dtype='f8') - 9
    codec = AccessorCodec()
    index = codec.encode_accessor(values, ElementType.MAT3, ComponentType.SHORT)

    bv = codec.buffer_views[codec.accessors[index].buffer_view]
    assert bv.byte_stride == 24
    assert codec.decode(index).tolist() == values.tolist()


def test_vertex_stride_alignment():
    """Vertex data strides are rounded up to 4 bytes"""
    codec = AccessorCodec()
    index = codec.encode_accessor([1, 2, 3, 4, 5, 6], ElementType.VEC3, ComponentType.UNSIGNED_BYTE, for_vertex=True)

    bv = codec.buffer_views[codec.accessors[index].buffer_view]
    assert bv.byte_stride == 4
    assert bv.byte_length == 8
    assert codec.decode(index, for_vertex=True).tolist() == [1, 2, 3, 4, 5, 6]


def test_views_are_four_byte_aligned():
    """Every new buffer view starts on a 4 byte boundary"""
    codec = AccessorCodec()
    codec.encode_accessor([1], ElementType.SCALAR, ComponentType.UNSIGNED_BYTE)
    index = codec.encode_as_floats([1.5])

    bv = codec.buffer_views[codec.accessors[index].buffer_view]
    assert bv.byte_offset % 4 == 0
    assert codec.decode(index).tolist() == [1.5]


def test_encode_at_explicit_offset():
    """A destination offset places the view there and grows the buffer to fit"""
    codec = AccessorCodec()
    first = codec.encode_as_floats([1.0, 2.0])
    second = codec.encode_accessor([7.0], ElementType.SCALAR, ComponentType.FLOAT, dest_offset=4)
    third = codec.encode_accessor([9.0], ElementType.SCALAR, ComponentType.FLOAT, dest_offset=16)

    assert codec.buffer_views[codec.accessors[second].buffer_view].byte_offset == 4
    assert codec.decode(first).tolist() == [1.0, 7.0]
    assert len(codec.buffers[0]) == 20
    assert codec.decode(third).tolist() == [9.0]


def test_encode_rejects_unaligned_offset():
    """Explicit view offsets must stay on a 4 byte boundary"""
    codec = AccessorCodec()
    with pytest.raises(ValueError):
        codec.encode_accessor([1.0], ElementType.SCALAR, ComponentType.FLOAT, dest_offset=2)


def test_matrices_round_trip():
    """MAT4 accessors decode into the same pyrr matrices"""
    matrices = [Matrix44.from_translation([1.0, 2.0, 3.0]), Matrix44.from_scale([2.0, 2.0, 2.0])]
    codec = AccessorCodec()
    index = codec.encode_as_matrices(matrices)

    decoded = codec.decode_as_matrices(index)
    assert len(decoded) == 2
    for original, result in zip(matrices, decoded):
        assert np.allclose(original, result)
    assert np.allclose(np.asarray(decoded[0])[3, :3], [1, 2, 3])


def test_quaternions_normalized():
    """Decoded quaternions are unit length"""
    codec = AccessorCodec()
    index = codec.encode_as_quaternions([[0.0, 0.0, 0.0, 2.0], [0.0, 3.0, 0.0, 4.0]])

    quats = codec.decode_as_quaternions(index)
    assert quats.shape == (2, 4)
    assert np.allclose(np.linalg.norm(quats, axis=1), 1.0)


def test_colors_get_alpha():
    """VEC3 colors decode with alpha 1"""
    codec = AccessorCodec()
    index = codec.encode_as_vec3([[0.5, 0.25, 1.0]])

    assert np.allclose(codec.decode_as_colors(index), [[0.5, 0.25, 1.0, 1.0]])


def test_ints_round_trip():
    """Integer helpers encode as unsigned ints and decode as int64"""
    codec = AccessorCodec()
    index = codec.encode_as_ints([0, 7, 65536])

    assert codec.accessors[index].component_type == ComponentType.UNSIGNED_INT
    decoded = codec.decode_as_ints(index)
    assert decoded.dtype == np.int64
    assert decoded.tolist() == [0, 7, 65536]


def test_unknown_types_rejected():
    """Unknown component and element types are structural errors"""
    with pytest.raises(StructuralError):
        ComponentType.from_value(5124)
    with pytest.raises(StructuralError):
        ElementType.from_string("VEC5")
