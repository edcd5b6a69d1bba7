"""Shared fakes and fixtures for the harness tests."""

import asyncio

import numpy as np
import pytest

from inference_harness.config import ModelConfig
from inference_harness.errors import FetchError
from inference_harness.importers import ModelImporter
from inference_harness.transport import Fetcher


class FakeFetcher(Fetcher):
    """Serves in-memory files; URLs listed in `gated` block until released."""

    def __init__(self, files, gated=()):
        super().__init__()
        self.files = dict(files)
        self.gated = set(gated)
        self.requests = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def _retrieve(self, url, binary, progress):
        self.requests.append(url)
        if url in self.gated:
            self.started.set()
            await self.release.wait()
        if url not in self.files:
            raise FetchError(url, 404)
        data = self.files[url]
        return data if binary else data.decode('utf-8')


class FakeImporter(ModelImporter):
    """Doubles its input; records every call."""

    instances = []

    def __init__(self, config, ops=("FULLY_CONNECTED", "RELU"), fail_compile=None):
        super().__init__(config)
        self.ops = list(ops)
        self.fail_compile = fail_compile
        self.compile_calls = 0
        self.compute_calls = 0
        self.cleaned_up = False
        FakeImporter.instances.append(self)

    async def create_compiled_model(self):
        self.compile_calls += 1
        await asyncio.sleep(0)
        if self.fail_compile is not None:
            raise self.fail_compile
        self.is_compiled = True
        return 'SUCCESS'

    async def compute(self, inputs, outputs):
        if self.cleaned_up:
            raise RuntimeError("Model not compiled. Call create_compiled_model first.")
        self.compute_calls += 1
        await asyncio.sleep(0)
        np.copyto(outputs[0], inputs[0][:outputs[0].size] * 2, casting='unsafe')
        return 'SUCCESS'

    def get_required_ops(self):
        return list(self.ops)

    def cleanup(self):
        self.cleaned_up = True
        super().cleanup()


def make_onnx_bytes(n=4, op_type="Relu"):
    """Serialized single-node ONNX model with [1, n] float input and output."""
    from onnx import TensorProto, helper

    x = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, n])
    y = helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, n])
    node = helper.make_node(op_type, ["x"], ["y"])
    graph = helper.make_graph([node], "single_node", [x], [y])
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    return model.SerializeToString()


def make_tflite_bytes(subgraphs=1, identifier=b"TFL3"):
    """Minimal TFLite flatbuffer: version 3 and empty subgraphs."""
    import flatbuffers

    builder = flatbuffers.Builder(0)
    graphs = []
    for _ in range(subgraphs):
        builder.StartObject(0)
        graphs.append(builder.EndObject())
    builder.StartVector(4, len(graphs), 4)
    for graph in reversed(graphs):
        builder.PrependUOffsetTRelative(graph)
    graph_vector = builder.EndVector()

    # Model table: version (slot 0), subgraphs (slot 2)
    builder.StartObject(5)
    builder.PrependUint32Slot(0, 3, 0)
    builder.PrependUOffsetTRelativeSlot(2, graph_vector, 0)
    builder.Finish(builder.EndObject(), file_identifier=identifier)
    return bytes(builder.Output())


@pytest.fixture
def tflite_bytes():
    pytest.importorskip("tflite")
    return make_tflite_bytes


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def fake_importer():
    FakeImporter.instances = []
    return FakeImporter


@pytest.fixture
def onnx_bytes():
    pytest.importorskip("onnx")
    return make_onnx_bytes()


@pytest.fixture
def model_config():
    def _make(model_file="models/relu.onnx", **overrides):
        values = dict(
            input_size=(1, 4),
            output_size=(1, 4),
            model_file=model_file,
        )
        values.update(overrides)
        return ModelConfig(**values)
    return _make
