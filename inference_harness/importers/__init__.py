"""
Importers

One importer per raw model variant, selected by the variant's type.
"""

from typing import Callable, Dict, Type

from ..formats import OnnxModel, OpenVinoModel, RawModel, TfliteModel
from .base import ImporterConfig, ModelImporter, softmax
from .onnx import OnnxModelImporter
from .openvino import OpenVinoModelImporter
from .tflite import TfliteModelImporter

ImporterFactory = Callable[[ImporterConfig], ModelImporter]

# Importer registry
AVAILABLE_IMPORTERS: Dict[type, Type[ModelImporter]] = {
    TfliteModel: TfliteModelImporter,
    OnnxModel: OnnxModelImporter,
    OpenVinoModel: OpenVinoModelImporter,
}


def get_importer_class(raw_model: RawModel) -> Type[ModelImporter]:
    """Importer class for a raw model variant"""
    try:
        return AVAILABLE_IMPORTERS[type(raw_model)]
    except KeyError:
        raise TypeError(f"No importer for raw model type {type(raw_model).__name__}") from None


def create_importer(config: ImporterConfig) -> ModelImporter:
    """Construct the importer matching the config's raw model"""
    return get_importer_class(config.raw_model)(config)


__all__ = [
    "AVAILABLE_IMPORTERS",
    "ImporterConfig",
    "ImporterFactory",
    "ModelImporter",
    "OnnxModelImporter",
    "OpenVinoModelImporter",
    "TfliteModelImporter",
    "create_importer",
    "get_importer_class",
    "softmax",
]
