"""
Configuration

Model descriptors and harness settings.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


# Descriptor keys as written by the model zoo JSON files
_CAMEL_KEYS = {
    'inputSize': 'input_size',
    'outputSize': 'output_size',
    'sampleRate': 'sample_rate',
    'modelFile': 'model_file',
    'labelsFile': 'labels_file',
    'preOptions': 'pre_options',
    'postOptions': 'post_options',
    'isQuantized': 'is_quantized',
}


@dataclass(frozen=True)
class ModelConfig:
    """Description of a model to load"""
    input_size: Tuple[int, ...]
    output_size: Tuple[int, ...]
    model_file: str
    sample_rate: int = 0
    labels_file: str = ""
    pre_options: Dict[str, Any] = field(default_factory=dict)
    post_options: Dict[str, Any] = field(default_factory=dict)
    is_quantized: bool = False

    @property
    def softmax(self) -> bool:
        return bool(self.post_options.get('softmax', False))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelConfig':
        """Build a config from a descriptor using camelCase or snake_case keys"""
        normalized = {_CAMEL_KEYS.get(k, k): v for k, v in data.items()}

        return cls(
            input_size=tuple(normalized['input_size']),
            output_size=tuple(normalized['output_size']),
            model_file=normalized['model_file'],
            sample_rate=normalized.get('sample_rate') or 0,
            labels_file=normalized.get('labels_file') or "",
            pre_options=dict(normalized.get('pre_options') or {}),
            post_options=dict(normalized.get('post_options') or {}),
            is_quantized=bool(normalized.get('is_quantized', False)),
        )

    @classmethod
    def from_json(cls, path: str) -> 'ModelConfig':
        """Load a model descriptor from a JSON file"""
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'inputSize': list(self.input_size),
            'outputSize': list(self.output_size),
            'sampleRate': self.sample_rate,
            'modelFile': self.model_file,
            'labelsFile': self.labels_file,
            'preOptions': dict(self.pre_options),
            'postOptions': dict(self.post_options),
            'isQuantized': self.is_quantized,
        }


@dataclass
class HarnessSettings:
    """Tunables shared by the harness components"""
    threshold: float = 0.001
    header_size: int = 6
    fetch_timeout: float = 30.0
