"""
TFLite Importer

Runs TFLite flatbuffers with the TFLite interpreter.
"""

import asyncio
import logging
import os
from typing import Any, List

import numpy as np

from ...errors import UnsupportedBackendError
from ...formats import TfliteModel, tflite_operator_names
from ..base import ImporterConfig, ModelImporter

logger = logging.getLogger(__name__)

BACKENDS = ('cpu',)

PREFERENCES = ('fast', 'sustained', 'low_power')


def load_interpreter_class():
    """Interpreter class from tflite_runtime"""
    try:
        from tflite_runtime.interpreter import Interpreter
    except ImportError:
        logger.error("tflite_runtime not available - install with 'pip install inference-harness[tflite-runtime]'")
        raise
    return Interpreter


class TfliteModelImporter(ModelImporter):
    """TFLite interpreter importer"""

    def __init__(self, config: ImporterConfig):
        super().__init__(config)
        if not isinstance(config.raw_model, TfliteModel):
            raise TypeError(f"TfliteModelImporter cannot import {type(config.raw_model).__name__}")
        if self.backend not in BACKENDS:
            raise UnsupportedBackendError(f"Unknown backend: {self.backend}. Available: {list(BACKENDS)}")
        if self.prefer not in PREFERENCES:
            raise UnsupportedBackendError(f"Unknown preference: {self.prefer}. Available: {list(PREFERENCES)}")
        self.interpreter = None

    def _num_threads(self) -> int:
        if self.prefer == 'low_power':
            return 1
        if self.prefer == 'sustained':
            return max(1, (os.cpu_count() or 2) // 2)
        return os.cpu_count() or 4

    async def create_compiled_model(self) -> str:
        Interpreter = load_interpreter_class()

        def build():
            interpreter = Interpreter(
                model_content=self.config.raw_model.buffer,
                num_threads=self._num_threads(),
            )
            interpreter.allocate_tensors()
            return interpreter

        self.interpreter = await asyncio.to_thread(build)
        self.is_compiled = True
        return 'SUCCESS'

    async def compute(self, inputs: List[np.ndarray], outputs: List[np.ndarray]) -> str:
        interpreter = self.interpreter
        if interpreter is None:
            raise RuntimeError("Model not compiled. Call create_compiled_model first.")

        for detail, tensor in zip(interpreter.get_input_details(), inputs):
            shaped = self._shape_input(tensor, [int(d) for d in detail['shape']])
            interpreter.set_tensor(detail['index'], shaped.astype(detail['dtype'], copy=False))

        await asyncio.to_thread(interpreter.invoke)

        for detail, output in zip(interpreter.get_output_details(), outputs):
            self._store_output(interpreter.get_tensor(detail['index']), output)
        return 'SUCCESS'

    def get_required_ops(self) -> List[str]:
        return tflite_operator_names(self.config.raw_model.model)

    def get_subgraphs_summary(self) -> List[Any]:
        model = self.config.raw_model.model
        return [
            {'subgraph': i, 'operators': model.Subgraphs(i).OperatorsLength()}
            for i in range(model.SubgraphsLength())
        ]

    def cleanup(self) -> None:
        self.interpreter = None
        super().cleanup()
