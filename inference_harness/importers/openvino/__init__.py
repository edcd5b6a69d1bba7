"""
OpenVINO Importer

Compiles OpenVINO IR models (network XML + weights) with the OpenVINO
runtime.
"""

import asyncio
import os
from typing import Dict, List, Any, Optional
import logging

import numpy as np

from ...errors import UnsupportedBackendError
from ...formats import OpenVinoModel
from ..base import ImporterConfig, ModelImporter

logger = logging.getLogger(__name__)

DEVICES = ('CPU', 'GPU', 'NPU', 'AUTO')

PERFORMANCE_HINTS = {
    'fast': 'LATENCY',
    'sustained': 'THROUGHPUT',
    'low_power': 'LATENCY',
}

# Graph plumbing that is not a computation
_STRUCTURAL_OPS = {'Parameter', 'Result', 'Constant'}


def get_optimal_config(device: str, prefer: str) -> Dict[str, str]:
    """
    Compile configuration for a device and preference.

    Args:
        device: Target device (CPU, GPU, etc.)
        prefer: Harness preference ('fast', 'sustained', 'low_power')

    Returns:
        Configuration dictionary
    """
    if prefer not in PERFORMANCE_HINTS:
        raise UnsupportedBackendError(
            f"Unknown preference: {prefer}. Available: {list(PERFORMANCE_HINTS)}"
        )

    config = {
        "PERFORMANCE_HINT": PERFORMANCE_HINTS[prefer],
    }

    if device == "CPU":
        threads = 1 if prefer == 'low_power' else (os.cpu_count() or 4)
        config["INFERENCE_NUM_THREADS"] = str(threads)

    return config


class OpenVinoModelImporter(ModelImporter):
    """
    OpenVINO importer.

    The backend identifier names the OpenVINO device.
    """

    def __init__(self, config: ImporterConfig):
        super().__init__(config)
        if not isinstance(config.raw_model, OpenVinoModel):
            raise TypeError(f"OpenVinoModelImporter cannot import {type(config.raw_model).__name__}")

        self.device = self.backend.upper()
        if self.device not in DEVICES:
            raise UnsupportedBackendError(f"Unknown device: {self.backend}. Available: {list(DEVICES)}")

        self._core = None
        self._model = None
        self._compiled_model = None
        self._infer_request = None

    def _read_model(self):
        import openvino as ov

        raw = self.config.raw_model
        self._core = ov.Core()
        weights = ov.Tensor(np.frombuffer(raw.weights, dtype=np.uint8).copy())
        return self._core.read_model(model=raw.network, weights=weights)

    def _compile(self, compile_config: Dict[str, str]) -> None:
        self._model = self._read_model()
        self._compiled_model = self._core.compile_model(self._model, self.device, compile_config)
        self._infer_request = self._compiled_model.create_infer_request()

    async def create_compiled_model(self) -> str:
        compile_config = get_optimal_config(self.device, self.prefer)
        await asyncio.to_thread(self._compile, compile_config)
        self.is_compiled = True

        logger.info(f"Model compiled on {self.device} with {compile_config}")
        return 'SUCCESS'

    async def compute(self, inputs: List[np.ndarray], outputs: List[np.ndarray]) -> str:
        infer_request = self._infer_request
        if infer_request is None:
            raise RuntimeError("Model not compiled. Call create_compiled_model first.")

        feeds = {}
        for i, (port, tensor) in enumerate(zip(self._compiled_model.inputs, inputs)):
            shape = self._static_shape(port)
            feeds[i] = self._shape_input(tensor.astype(np.float32, copy=False), shape)

        await asyncio.to_thread(infer_request.infer, feeds)

        for i, output in enumerate(outputs):
            result = infer_request.get_output_tensor(i).data
            self._store_output(result, output)
        return 'SUCCESS'

    @staticmethod
    def _static_shape(port) -> Optional[List[int]]:
        partial = port.get_partial_shape()
        if partial.is_dynamic:
            return None
        return [int(d) for d in port.get_shape()]

    def get_required_ops(self) -> List[str]:
        if self._model is None:
            self._model = self._read_model()

        names = []
        for op in self._model.get_ordered_ops():
            name = op.get_type_name()
            if name not in _STRUCTURAL_OPS and name not in names:
                names.append(name)
        return names

    def get_subgraphs_summary(self) -> List[Any]:
        if self._compiled_model is None:
            return []
        try:
            devices = self._compiled_model.get_property("EXECUTION_DEVICES")
        except RuntimeError:
            return [{'device': self.device}]
        return [{'device': d} for d in devices]

    def cleanup(self) -> None:
        self._infer_request = None
        self._compiled_model = None
        self._model = None
        self._core = None
        super().cleanup()
