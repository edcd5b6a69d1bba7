"""
ONNX Runtime Importer

Compiles ONNX models into ONNX Runtime inference sessions.
"""

import asyncio
import logging
from typing import Any, Dict, List

import numpy as np

from ...errors import UnsupportedBackendError
from ...formats import OnnxModel, onnx_operator_names
from ..base import ImporterConfig, ModelImporter

logger = logging.getLogger(__name__)


# Execution providers per backend, in priority order
BACKEND_PROVIDERS: Dict[str, List[Any]] = {
    'cpu': ['CPUExecutionProvider'],
    'cuda': [
        ('CUDAExecutionProvider', {
            'arena_extend_strategy': 'kNextPowerOfTwo',
            'cudnn_conv_algo_search': 'EXHAUSTIVE',
        }),
        'CPUExecutionProvider',
    ],
    'rocm': ['MIGraphXExecutionProvider', 'ROCMExecutionProvider', 'CPUExecutionProvider'],
    'directml': ['DmlExecutionProvider', 'CPUExecutionProvider'],
    'tensorrt': [
        ('TensorrtExecutionProvider', {'trt_fp16_enable': True}),
        'CUDAExecutionProvider',
        'CPUExecutionProvider',
    ],
    'openvino': ['OpenVINOExecutionProvider', 'CPUExecutionProvider'],
}

PREFERENCES = ('fast', 'sustained', 'low_power')


def _provider_name(provider: Any) -> str:
    return provider[0] if isinstance(provider, tuple) else provider


def select_providers(backend: str, available: List[str]) -> List[Any]:
    """Requested providers that this onnxruntime build actually offers"""
    if backend not in BACKEND_PROVIDERS:
        raise UnsupportedBackendError(
            f"Unknown backend: {backend}. Available: {list(BACKEND_PROVIDERS.keys())}"
        )
    providers = [p for p in BACKEND_PROVIDERS[backend] if _provider_name(p) in available]
    if not providers:
        raise UnsupportedBackendError(f"No execution provider for backend '{backend}' is available")
    if _provider_name(providers[0]) != _provider_name(BACKEND_PROVIDERS[backend][0]):
        logger.warning(f"Backend '{backend}' falling back to {_provider_name(providers[0])}")
    return providers


class OnnxModelImporter(ModelImporter):
    """ONNX Runtime importer"""

    def __init__(self, config: ImporterConfig):
        super().__init__(config)
        if not isinstance(config.raw_model, OnnxModel):
            raise TypeError(f"OnnxModelImporter cannot import {type(config.raw_model).__name__}")
        if self.prefer not in PREFERENCES:
            raise UnsupportedBackendError(f"Unknown preference: {self.prefer}. Available: {list(PREFERENCES)}")
        self.session = None
        self.input_names: List[str] = []
        self.output_names: List[str] = []

    def _session_options(self):
        import onnxruntime as ort

        opts = ort.SessionOptions()
        if self.prefer == 'fast':
            opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
            opts.intra_op_num_threads = 0  # Use all cores
        elif self.prefer == 'sustained':
            opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED
        else:
            opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
            opts.intra_op_num_threads = 1
        return opts

    async def create_compiled_model(self) -> str:
        import onnxruntime as ort

        providers = select_providers(self.backend, ort.get_available_providers())
        model_bytes = self.config.raw_model.proto.SerializeToString()

        session = await asyncio.to_thread(
            ort.InferenceSession, model_bytes, self._session_options(), providers=providers
        )
        self.session = session
        self.input_names = [inp.name for inp in session.get_inputs()]
        self.output_names = [out.name for out in session.get_outputs()]
        self.is_compiled = True
        return 'SUCCESS'

    async def compute(self, inputs: List[np.ndarray], outputs: List[np.ndarray]) -> str:
        session = self.session
        if session is None:
            raise RuntimeError("Model not compiled. Call create_compiled_model first.")

        feeds = {}
        for meta, tensor in zip(session.get_inputs(), inputs):
            dtype = np.float32 if meta.type == 'tensor(float)' else tensor.dtype
            feeds[meta.name] = self._shape_input(tensor, meta.shape).astype(dtype, copy=False)

        results = await asyncio.to_thread(session.run, self.output_names, feeds)
        for result, output in zip(results, outputs):
            self._store_output(result, output)
        return 'SUCCESS'

    def get_required_ops(self) -> List[str]:
        return onnx_operator_names(self.config.raw_model.proto)

    def get_subgraphs_summary(self) -> List[Any]:
        if self.session is None:
            return []
        return [{'provider': p} for p in self.session.get_providers()]

    def cleanup(self) -> None:
        self.session = None
        super().cleanup()
