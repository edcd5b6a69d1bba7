"""
Importer Contract

An importer compiles a raw model for a (backend, preference) pair and runs
inference on flat harness tensors.
"""

import abc
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from ..formats import RawModel


@dataclass
class ImporterConfig:
    """Everything an importer needs to compile a model"""
    raw_model: RawModel
    backend: str
    prefer: str
    softmax: bool = False
    input_shape: Optional[Tuple[int, ...]] = None
    output_shape: Optional[Tuple[int, ...]] = None


def softmax(values: np.ndarray, axis: int = -1) -> np.ndarray:
    shifted = values - np.max(values, axis=axis, keepdims=True)
    exp = np.exp(shifted)
    return exp / np.sum(exp, axis=axis, keepdims=True)


class ModelImporter(abc.ABC):
    """Abstract base class for format importers"""

    def __init__(self, config: ImporterConfig):
        self.config = config
        self.backend = config.backend
        self.prefer = config.prefer
        self.is_compiled = False

    @abc.abstractmethod
    async def create_compiled_model(self) -> str:
        """Compile the raw model; returns a status string"""
        pass

    @abc.abstractmethod
    async def compute(self, inputs: List[np.ndarray], outputs: List[np.ndarray]) -> str:
        """Run inference, writing results into outputs in place"""
        pass

    @abc.abstractmethod
    def get_required_ops(self) -> List[str]:
        """Operation identifiers the compiled model uses, in order"""
        pass

    def get_subgraphs_summary(self) -> List[Any]:
        """Backend partitioning summary, if the runtime reports one"""
        return []

    def cleanup(self) -> None:
        """Release runtime resources"""
        self.is_compiled = False

    # ============ Helpers ============

    def _shape_input(self, tensor: np.ndarray, shape: Optional[Sequence[Any]] = None) -> np.ndarray:
        shape = shape if shape is not None else self.config.input_shape
        if shape is None:
            return tensor
        dims = [d if isinstance(d, int) and d > 0 else -1 for d in shape]
        if dims.count(-1) > 1:
            dims = list(self.config.input_shape or (-1,))
        return tensor.reshape(dims)

    def _store_output(self, result: np.ndarray, output: np.ndarray) -> None:
        values = np.asarray(result)
        if self.config.softmax:
            values = softmax(values.astype(np.float32))
        values = values.reshape(-1)
        if values.size != output.size:
            raise ValueError(
                f"Backend produced {values.size} values for an output tensor of {output.size}"
            )
        np.copyto(output, values, casting='unsafe')
