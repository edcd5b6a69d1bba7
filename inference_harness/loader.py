"""
Model Loader

Fetches model files and decodes them into raw models.
"""

import logging

from .formats import (
    ModelFormat,
    RawModel,
    classify_format,
    decode_onnx,
    decode_openvino,
    decode_tflite,
    describe_model,
    descriptor_file,
)
from .transport import Fetcher

logger = logging.getLogger(__name__)


class ModelLoader:
    """
    Retrieves and decodes a model file.

    The model retrieval is the fetcher's tracked request, so a newer load
    abandons an older one still in flight.
    """

    def __init__(self, fetcher: Fetcher):
        self.fetcher = fetcher

    async def load(self, model_file: str) -> RawModel:
        """
        Fetch and decode a model.

        Args:
            model_file: URL or path ending in .tflite, .onnx or .bin

        Returns:
            The decoded raw model variant

        Raises:
            UnrecognizedFormatError: Unknown extension (raised before fetching)
            FetchError: Retrieval failed
            InvalidModelError: Decoding or verification failed
            RequestSupersededError: A newer load replaced this one
        """
        model_format = classify_format(model_file)

        data = await self.fetcher.fetch(model_file, binary=True, progress=True)
        logger.info(f"Fetched {model_file} ({len(data)} bytes)")

        if model_format is ModelFormat.TFLITE:
            raw_model = decode_tflite(data)
        elif model_format is ModelFormat.ONNX:
            raw_model = decode_onnx(data)
        else:
            network_file = descriptor_file(model_file)
            network = await self.fetcher.fetch(network_file, binary=False)
            raw_model = decode_openvino(network, data)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Model summary: {describe_model(raw_model)}")

        return raw_model
