"""
Tests for tensor allocation and ark frame handling
"""

import numpy as np
import pytest

from inference_harness.ark import (
    HEADER_SIZE,
    INPUT_FRAME_SIZE,
    copy_frame,
    extract_payload,
    make_frame,
    write_ark,
)
from inference_harness.errors import InvalidShapeError, TruncatedFrameError
from inference_harness.tensors import allocate_tensors, tensor_length


class TestAllocate:
    """Tests for allocate_tensors"""

    def test_float_tensors(self):
        """Test default allocation uses float32"""
        tensors = allocate_tensors([1, 440], [1, 3425], is_quantized=False)

        assert tensors.input.size == 440
        assert tensors.input.dtype == np.float32
        assert tensors.output.size == 3425
        assert tensors.reference.size == 3425
        assert not tensors.input.any()

    def test_quantized_tensors(self):
        """Test quantized allocation uses uint8 with unchanged length"""
        tensors = allocate_tensors([1, 440], [1, 3425], is_quantized=True)

        assert tensors.input.size == 440
        assert tensors.input.dtype == np.uint8
        assert tensors.reference.dtype == np.uint8

    def test_buffers_are_independent(self):
        """Test output and reference never alias"""
        tensors = allocate_tensors([2, 2], [2, 2])

        tensors.output[:] = 7

        assert not np.shares_memory(tensors.output, tensors.reference)
        assert not tensors.reference.any()

    @pytest.mark.parametrize("shape", [[], [1, 0], [3, -2], None])
    def test_invalid_shape(self, shape):
        """Test empty shapes and non-positive dimensions"""
        with pytest.raises(InvalidShapeError):
            allocate_tensors(shape, [1])

    def test_tensor_length(self):
        assert tensor_length((2, 3, 4)) == 24
        assert tensor_length(np.array([5, 2])) == 10


class TestArkFrames:
    """Tests for ark frame parsing"""

    def test_payload_skips_header(self):
        """Test the header elements are skipped"""
        values = np.arange(HEADER_SIZE + 5, dtype=np.float32)

        payload = extract_payload(values.tobytes(), 5)

        assert list(payload) == [6.0, 7.0, 8.0, 9.0, 10.0]

    def test_copy_into_tensor(self):
        """Test copying starts at index 0 and fills the tensor"""
        tensor = np.zeros(INPUT_FRAME_SIZE, dtype=np.float32)
        payload = np.linspace(-1, 1, INPUT_FRAME_SIZE + 10, dtype=np.float32)

        copy_frame(tensor, make_frame(payload))

        np.testing.assert_array_equal(tensor, payload[:INPUT_FRAME_SIZE])

    def test_copy_into_quantized_tensor(self):
        tensor = np.zeros(3, dtype=np.uint8)

        copy_frame(tensor, make_frame(np.array([1.0, 2.0, 200.0])))

        assert list(tensor) == [1, 2, 200]

    def test_truncated_frame(self):
        """Test frames shorter than header plus payload"""
        frame = make_frame(np.ones(439))

        with pytest.raises(TruncatedFrameError) as exc:
            extract_payload(frame, 440)

        assert exc.value.expected == 446
        assert exc.value.actual == 445

    def test_partial_trailing_element_ignored(self):
        """Test trailing bytes that do not form an element are dropped"""
        frame = make_frame(np.ones(4)) + b"\x01\x02"

        assert extract_payload(frame, 4).size == 4
        with pytest.raises(TruncatedFrameError):
            extract_payload(frame, 5)

    def test_array_source(self):
        """Test numpy arrays are accepted as frames"""
        values = np.arange(10, dtype=np.float64)

        assert list(extract_payload(values, 2)) == [6.0, 7.0]

    def test_write_ark(self, tmp_path):
        """Test output export writes raw float32 values"""
        path = write_ark(tmp_path / "output.ark", np.array([0.5, 1.5], dtype=np.float32))

        np.testing.assert_array_equal(np.fromfile(path, dtype='<f4'), [0.5, 1.5])
