"""
Inference Harness

Loads TFLite, ONNX and OpenVINO models, compiles them for a backend, runs
inference on ark frames and validates the outputs against reference frames.
"""

from .analysis import (
    AccuracyComparator,
    ErrorAccumulator,
    ErrorReport,
    EvaluationSummary,
    FrameResult,
    build_report,
    compare_scores,
    std_dev_error,
    update_score_error,
)
from .config import HarnessSettings, ModelConfig
from .errors import (
    FetchError,
    HarnessError,
    InvalidModelError,
    InvalidShapeError,
    LoadError,
    NotInitializedError,
    NumericDomainError,
    TruncatedFrameError,
    UnrecognizedFormatError,
    UnsupportedBackendError,
)
from .formats import ModelFormat, OnnxModel, OpenVinoModel, TfliteModel, classify_format
from .importers import ImporterConfig, ModelImporter, create_importer
from .runner import (
    HarnessState,
    InferenceHarness,
    InferenceResult,
    InitStatus,
    LoadStatus,
    run_evaluation,
)
from .tensors import TensorSet, allocate_tensors
from .transport import Fetcher

__version__ = "1.0.0"
__all__ = [
    # Harness
    "InferenceHarness",
    "HarnessState",
    "LoadStatus",
    "InitStatus",
    "InferenceResult",
    "run_evaluation",

    # Configuration
    "ModelConfig",
    "HarnessSettings",

    # Models and importers
    "ModelFormat",
    "TfliteModel",
    "OnnxModel",
    "OpenVinoModel",
    "classify_format",
    "ImporterConfig",
    "ModelImporter",
    "create_importer",
    "Fetcher",

    # Tensors
    "TensorSet",
    "allocate_tensors",

    # Analysis
    "AccuracyComparator",
    "ErrorAccumulator",
    "ErrorReport",
    "EvaluationSummary",
    "FrameResult",
    "compare_scores",
    "update_score_error",
    "std_dev_error",
    "build_report",

    # Errors
    "HarnessError",
    "LoadError",
    "FetchError",
    "UnrecognizedFormatError",
    "InvalidModelError",
    "NotInitializedError",
    "UnsupportedBackendError",
    "InvalidShapeError",
    "TruncatedFrameError",
    "NumericDomainError",
]
