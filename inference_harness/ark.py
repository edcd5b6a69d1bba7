"""
Ark Frames

Frame and reference data are float32 streams: a fixed header of
HEADER_SIZE elements followed by the payload.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np

from .errors import TruncatedFrameError

logger = logging.getLogger(__name__)

HEADER_SIZE = 6
INPUT_FRAME_SIZE = 440
REFERENCE_FRAME_SIZE = 3425

FrameData = Union[bytes, bytearray, memoryview, np.ndarray]


def as_float_array(data: FrameData) -> np.ndarray:
    """View raw frame bytes as float32 elements"""
    if isinstance(data, np.ndarray):
        return data.reshape(-1).astype(np.float32, copy=False)

    buffer = memoryview(data).cast('B')
    usable = len(buffer) - len(buffer) % 4
    return np.frombuffer(buffer[:usable], dtype='<f4')


def extract_payload(data: FrameData, length: int, header_size: int = HEADER_SIZE) -> np.ndarray:
    """
    Slice the payload out of an ark frame.

    Args:
        data: Raw frame bytes or float array
        length: Number of payload elements wanted
        header_size: Number of leading header elements to skip

    Returns:
        float32 array of exactly `length` elements

    Raises:
        TruncatedFrameError: Frame shorter than header_size + length
    """
    values = as_float_array(data)
    expected = header_size + length
    if values.size < expected:
        raise TruncatedFrameError(expected, int(values.size))
    return values[header_size:expected]


def copy_frame(tensor: np.ndarray, data: FrameData, header_size: int = HEADER_SIZE) -> np.ndarray:
    """Fill a tensor from index 0 with the payload of a frame"""
    payload = extract_payload(data, tensor.size, header_size)
    np.copyto(tensor, payload, casting='unsafe')
    return tensor


def write_ark(path: Union[str, Path], tensor: np.ndarray) -> Path:
    """Write a tensor's values as a float32 stream"""
    path = Path(path)
    np.asarray(tensor, dtype='<f4').tofile(path)
    logger.info(f"Converted output tensor to {path}")
    return path


def make_frame(payload: np.ndarray, header_size: int = HEADER_SIZE) -> bytes:
    """Build a frame with a zero header around a payload"""
    header = np.zeros(header_size, dtype='<f4')
    return np.concatenate([header, np.asarray(payload, dtype='<f4').reshape(-1)]).tobytes()
