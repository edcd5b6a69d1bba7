"""
Model Formats

Raw (decoded but not compiled) model representations for the supported
container formats, plus extension-based classification and decoding.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Union
from urllib.parse import urlparse

from .errors import InvalidModelError, UnrecognizedFormatError

logger = logging.getLogger(__name__)


class ModelFormat(Enum):
    TFLITE = "tflite"
    ONNX = "onnx"
    OPENVINO = "openvino"


EXTENSION_FORMATS = {
    'tflite': ModelFormat.TFLITE,
    'onnx': ModelFormat.ONNX,
    'bin': ModelFormat.OPENVINO,
}

TFLITE_IDENTIFIER = b"TFL3"


@dataclass(frozen=True)
class TfliteModel:
    """Decoded TFLite flatbuffer and the bytes it points into"""
    model: Any
    buffer: bytes
    format = ModelFormat.TFLITE


@dataclass(frozen=True)
class OnnxModel:
    """Decoded and verified onnx.ModelProto"""
    proto: Any
    format = ModelFormat.ONNX


@dataclass(frozen=True)
class OpenVinoModel:
    """OpenVINO IR network description paired with its weights"""
    network: str
    weights: bytes
    format = ModelFormat.OPENVINO


RawModel = Union[TfliteModel, OnnxModel, OpenVinoModel]


def file_extension(model_file: str) -> str:
    path = urlparse(model_file).path if "://" in model_file else model_file
    name = path.rsplit('/', 1)[-1]
    if '.' not in name:
        return ""
    return name.rsplit('.', 1)[-1]


def classify_format(model_file: str) -> ModelFormat:
    """Map a model file to its format by extension"""
    extension = file_extension(model_file)
    try:
        return EXTENSION_FORMATS[extension]
    except KeyError:
        raise UnrecognizedFormatError(extension) from None


def descriptor_file(model_file: str) -> str:
    """Path of the OpenVINO network description paired with a weights file"""
    if "://" in model_file:
        parsed = urlparse(model_file)
        if parsed.path.endswith('.bin'):
            return parsed._replace(path=parsed.path[:-3] + 'xml').geturl()
    elif model_file.endswith('.bin'):
        return model_file[:-3] + 'xml'
    raise UnrecognizedFormatError(file_extension(model_file))


# ============ Decoders ============

def decode_tflite(data: bytes) -> TfliteModel:
    from flatbuffers.util import BufferHasIdentifier
    from tflite.Model import Model

    buffer = bytes(data)
    if len(buffer) < 8 or not BufferHasIdentifier(buffer, 0, TFLITE_IDENTIFIER):
        raise InvalidModelError("missing TFL3 file identifier")

    try:
        model = Model.GetRootAs(buffer, 0)
        # Flatbuffers decode lazily; touch the root tables now
        model.Version()
        subgraphs = model.SubgraphsLength()
        model.OperatorCodesLength()
    except Exception as e:
        raise InvalidModelError(f"cannot parse TFLite flatbuffer: {e}") from e

    if subgraphs == 0:
        raise InvalidModelError("TFLite model has no subgraphs")

    return TfliteModel(model=model, buffer=buffer)


def decode_onnx(data: bytes) -> OnnxModel:
    import onnx
    from google.protobuf.message import DecodeError

    try:
        proto = onnx.load_model_from_string(bytes(data))
    except (DecodeError, ValueError, RuntimeError) as e:
        raise InvalidModelError(f"cannot decode ONNX protobuf: {e}") from e

    try:
        onnx.checker.check_model(proto)
    except onnx.checker.ValidationError as e:
        raise InvalidModelError(str(e)) from e

    return OnnxModel(proto=proto)


def decode_openvino(network: str, weights: bytes) -> OpenVinoModel:
    if not network or not network.strip():
        raise InvalidModelError("empty OpenVINO network description")
    return OpenVinoModel(network=network, weights=bytes(weights))


# ============ Introspection ============

def tflite_operator_names(model: Any) -> List[str]:
    """Builtin operator names in operator-code order"""
    from tflite.BuiltinOperator import BuiltinOperator

    names_by_code = {
        v: k for k, v in vars(BuiltinOperator).items()
        if not k.startswith('_') and isinstance(v, int)
    }

    names = []
    for i in range(model.OperatorCodesLength()):
        op_code = model.OperatorCodes(i)
        # Newer schemas keep the real code in BuiltinCode, older ones in the
        # deprecated int8 field
        code = max(op_code.BuiltinCode(), op_code.DeprecatedBuiltinCode())
        name = names_by_code.get(code, f"UNKNOWN_{code}")
        if name == "CUSTOM" and op_code.CustomCode():
            custom = op_code.CustomCode()
            custom = custom.decode('utf-8') if isinstance(custom, bytes) else str(custom)
            name = f"CUSTOM({custom})"
        if name not in names:
            names.append(name)
    return names


def onnx_operator_names(proto: Any) -> List[str]:
    """Distinct node op types in graph order"""
    names = []
    for node in proto.graph.node:
        if node.op_type not in names:
            names.append(node.op_type)
    return names


def describe_model(raw_model: RawModel) -> Dict[str, Any]:
    """Summary of a raw model for diagnostics"""
    if isinstance(raw_model, TfliteModel):
        model = raw_model.model
        return {
            'format': raw_model.format.value,
            'version': model.Version(),
            'subgraphs': model.SubgraphsLength(),
            'operators': tflite_operator_names(model),
        }
    if isinstance(raw_model, OnnxModel):
        graph = raw_model.proto.graph
        return {
            'format': raw_model.format.value,
            'ir_version': raw_model.proto.ir_version,
            'opsets': {o.domain or 'ai.onnx': o.version for o in raw_model.proto.opset_import},
            'inputs': [i.name for i in graph.input],
            'outputs': [o.name for o in graph.output],
            'nodes': len(graph.node),
            'operators': onnx_operator_names(raw_model.proto),
        }
    return {
        'format': raw_model.format.value,
        'network_chars': len(raw_model.network),
        'weights_bytes': len(raw_model.weights),
    }
