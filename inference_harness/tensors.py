"""
Tensor Allocation

Allocates the input, output and reference buffers used by the harness.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .errors import InvalidShapeError


@dataclass
class TensorSet:
    """The three buffers owned by a harness instance"""
    input: np.ndarray
    output: np.ndarray
    reference: np.ndarray


def tensor_length(shape: Sequence[int]) -> int:
    """Number of elements described by a shape."""
    if shape is None or len(shape) == 0:
        raise InvalidShapeError("Shape must have at least one dimension")

    length = 1
    for dim in shape:
        if isinstance(dim, bool) or not isinstance(dim, (int, np.integer)) or dim <= 0:
            raise InvalidShapeError(f"Invalid dimension {dim!r} in shape {list(shape)}")
        length *= int(dim)
    return length


def element_type(is_quantized: bool) -> np.dtype:
    return np.dtype(np.uint8) if is_quantized else np.dtype(np.float32)


def allocate_tensors(input_shape: Sequence[int],
                     output_shape: Sequence[int],
                     is_quantized: bool = False) -> TensorSet:
    """
    Allocate zeroed input, output and reference tensors.

    Args:
        input_shape: Model input dimensions
        output_shape: Model output dimensions (also used for the reference)
        is_quantized: Use 8-bit unsigned elements instead of float32

    Returns:
        TensorSet with three independent flat buffers
    """
    dtype = element_type(is_quantized)
    input_len = tensor_length(input_shape)
    output_len = tensor_length(output_shape)

    return TensorSet(
        input=np.zeros(input_len, dtype=dtype),
        output=np.zeros(output_len, dtype=dtype),
        reference=np.zeros(output_len, dtype=dtype),
    )
