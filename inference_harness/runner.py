#!/usr/bin/env python3
"""
Inference Harness - Runner

Sequences model loading, backend compilation, inference on ark frames and
accuracy comparison against reference frames.
"""

import asyncio
import logging
import time
from collections import Counter, deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlparse

import numpy as np

from .analysis import AccuracyComparator, EvaluationSummary, FrameResult
from .ark import FrameData, copy_frame, write_ark
from .config import HarnessSettings, ModelConfig
from .errors import InvalidShapeError, NotInitializedError, RequestSupersededError
from .formats import RawModel
from .importers import ImporterConfig, ImporterFactory, ModelImporter, create_importer
from .loader import ModelLoader
from .tensors import TensorSet, allocate_tensors
from .transport import Fetcher

logger = logging.getLogger(__name__)

FrameSource = Union[str, Path, FrameData]


class HarnessState(Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    INITIALIZED = "initialized"


class LoadStatus(Enum):
    SUCCESS = "SUCCESS"
    ALREADY_LOADED = "LOADED"
    SUPERSEDED = "SUPERSEDED"


class InitStatus(Enum):
    SUCCESS = "SUCCESS"
    ALREADY_INITIALIZED = "INITIALIZED"
    NOT_LOADED = "NOT_LOADED"
    SUPERSEDED = "SUPERSEDED"


@dataclass
class InferenceResult:
    """Result from a single inference run"""
    output: np.ndarray
    latency_ms: float
    memory_used_mb: float
    backend: str


class InferenceHarness:
    """
    Model lifecycle state machine.

    UNLOADED --load()--> LOADED --init()--> INITIALIZED. predict() and
    evaluate() need INITIALIZED. All calls are expected to come from one
    event loop.

    Usage:
        harness = InferenceHarness()
        await harness.load(ModelConfig.from_json("model.json"))
        await harness.init("cpu", "fast")
        result = await harness.predict("frames/0.ark")
    """

    def __init__(self,
                 settings: Optional[HarnessSettings] = None,
                 fetcher: Optional[Fetcher] = None,
                 importer_factory: Optional[ImporterFactory] = None):
        self.settings = settings or HarnessSettings()
        self.fetcher = fetcher or Fetcher(timeout=self.settings.fetch_timeout)
        self.loader = ModelLoader(self.fetcher)
        self.importer_factory = importer_factory or create_importer
        self.comparator = AccuracyComparator(self.settings.threshold)

        self.state = HarnessState.UNLOADED
        self.config: Optional[ModelConfig] = None
        self.raw_model: Optional[RawModel] = None
        self.importer: Optional[ModelImporter] = None
        self.backend = ''
        self.prefer = ''
        self.tensors: Optional[TensorSet] = None
        self.warmup_ms: Optional[float] = None

        self._load_generation = 0
        self._ops_waiters: Deque[asyncio.Future] = deque()
        self._backend_lock = asyncio.Lock()
        self._importers_in_use: Counter = Counter()

    # ============ Tensors ============

    @property
    def input_tensor(self) -> Optional[np.ndarray]:
        return self.tensors.input if self.tensors else None

    @property
    def output_tensor(self) -> Optional[np.ndarray]:
        return self.tensors.output if self.tensors else None

    @property
    def reference_tensor(self) -> Optional[np.ndarray]:
        return self.tensors.reference if self.tensors else None

    # ============ Loading ============

    def _reset(self) -> None:
        self.state = HarnessState.UNLOADED
        self.backend = self.prefer = ''
        self.raw_model = None
        self.warmup_ms = None
        self._release_importer()

    # ============ Backend ============

    def _release_importer(self) -> None:
        """Drop the current importer; one still in use is cleaned up by its last user"""
        importer = self.importer
        self.importer = None
        if importer is not None and not self._importers_in_use[importer]:
            importer.cleanup()

    @asynccontextmanager
    async def _using_backend(self, importer: ModelImporter):
        self._importers_in_use[importer] += 1
        try:
            async with self._backend_lock:
                yield
        finally:
            self._importers_in_use[importer] -= 1
            if not self._importers_in_use[importer]:
                del self._importers_in_use[importer]
                if self.importer is not importer:
                    importer.cleanup()

    async def load(self, config: ModelConfig) -> LoadStatus:
        """
        Load a model, replacing any previously loaded one.

        Args:
            config: Model descriptor

        Returns:
            LoadStatus.ALREADY_LOADED when the same model file is loaded,
            LoadStatus.SUPERSEDED when a newer load() replaced this one
            while it was in flight, LoadStatus.SUCCESS otherwise
        """
        if self.state is not HarnessState.UNLOADED and self.config.model_file == config.model_file:
            return LoadStatus.ALREADY_LOADED

        self._load_generation += 1
        generation = self._load_generation
        self.fetcher.cancel_outstanding()

        self._reset()
        self.config = config
        self.tensors = allocate_tensors(config.input_size, config.output_size, config.is_quantized)

        try:
            raw_model = await self.loader.load(config.model_file)
        except RequestSupersededError:
            logger.warning(f"Load of {config.model_file} superseded")
            return LoadStatus.SUPERSEDED

        if generation != self._load_generation:
            logger.warning(f"Load of {config.model_file} superseded")
            return LoadStatus.SUPERSEDED

        self.raw_model = raw_model
        self.state = HarnessState.LOADED
        logger.info(f"Loaded {config.model_file} as {raw_model.format.value}")
        return LoadStatus.SUCCESS

    # ============ Initialization ============

    async def init(self, backend: str, prefer: str) -> InitStatus:
        """
        Compile the loaded model for a backend and run one warm-up inference.

        Compilation errors from the importer propagate unchanged.
        """
        if self.state is HarnessState.UNLOADED:
            return InitStatus.NOT_LOADED
        if (self.state is HarnessState.INITIALIZED
                and backend == self.backend and prefer == self.prefer):
            return InitStatus.ALREADY_INITIALIZED

        self.state = HarnessState.LOADED
        self._release_importer()
        self.backend = backend
        self.prefer = prefer

        importer_config = ImporterConfig(
            raw_model=self.raw_model,
            backend=backend,
            prefer=prefer,
            softmax=self.config.softmax,
            input_shape=tuple(self.config.input_size),
            output_shape=tuple(self.config.output_size),
        )
        importer = self.importer_factory(importer_config)
        self.importer = importer

        async with self._using_backend(importer):
            if self.importer is not importer:
                return self._init_superseded(backend, prefer)

            result = await importer.create_compiled_model()
            logger.info(f"compilation result: {result}")

            if self.importer is not importer:
                return self._init_superseded(backend, prefer)

            start = time.perf_counter()
            await importer.compute([self.input_tensor], [self.output_tensor])
            elapsed = (time.perf_counter() - start) * 1000

        if self.importer is not importer:
            return self._init_superseded(backend, prefer)

        logger.info(f"warmup time: {elapsed:.2f} ms")
        self.warmup_ms = round(elapsed, 2)
        self.state = HarnessState.INITIALIZED

        self._resolve_ops_waiters()
        return InitStatus.SUCCESS

    def _init_superseded(self, backend: str, prefer: str) -> InitStatus:
        logger.warning(f"Initialization for {backend}/{prefer} superseded")
        return InitStatus.SUPERSEDED

    def _resolve_ops_waiters(self) -> None:
        ops = None
        while self._ops_waiters:
            waiter = self._ops_waiters.popleft()
            if waiter.done():
                continue
            if ops is None:
                ops = self.importer.get_required_ops()
            waiter.set_result(list(ops))

    async def get_required_ops(self) -> List[str]:
        """
        Operations required by the compiled model.

        Before initialization completes this waits for the next successful
        init() warm-up.
        """
        if self.state is HarnessState.INITIALIZED:
            return self.importer.get_required_ops()

        waiter = asyncio.get_running_loop().create_future()
        self._ops_waiters.append(waiter)
        return await waiter

    def get_subgraphs_summary(self) -> List[Any]:
        if self.importer is None or self.state is not HarnessState.INITIALIZED:
            return []
        return self.importer.get_subgraphs_summary()

    def cleanup(self) -> None:
        """Release the compiled backend, keeping the loaded model"""
        self._release_importer()
        if self.state is HarnessState.INITIALIZED:
            self.state = HarnessState.LOADED
        self.backend = self.prefer = ''

    # ============ Inference ============

    async def _read_frame(self, frame_source: FrameSource) -> FrameData:
        if isinstance(frame_source, (str, Path)):
            return await self.fetcher.fetch_untracked(str(frame_source), binary=True)
        return frame_source

    async def prepare_input_tensor(self, tensor: np.ndarray, frame_source: FrameSource) -> np.ndarray:
        """Copy the payload of an ark frame into a tensor"""
        data = await self._read_frame(frame_source)
        copy_frame(tensor, data, self.settings.header_size)
        logger.debug(f"Input tensor {tensor}")
        return tensor

    async def load_reference(self, frame_source: FrameSource) -> np.ndarray:
        """Fill the reference tensor from a reference ark frame"""
        if self.tensors is None:
            raise NotInitializedError("No model loaded. Call load() first.")
        data = await self._read_frame(frame_source)
        copy_frame(self.reference_tensor, data, self.settings.header_size)
        logger.debug(f"Reference tensor {self.reference_tensor}")
        return self.reference_tensor

    async def predict(self, frame_source: FrameSource) -> InferenceResult:
        """
        Run inference on one ark frame.

        The returned output is the harness-owned output tensor; the next
        predict() overwrites it.

        Raises:
            NotInitializedError: init() has not completed
            TruncatedFrameError: Frame shorter than header plus input size
        """
        if self.state is not HarnessState.INITIALIZED:
            raise NotInitializedError("Model not initialized. Call init() first.")

        data = await self._read_frame(frame_source)
        if self.state is not HarnessState.INITIALIZED:
            raise NotInitializedError("Model replaced while reading the frame.")

        importer, tensors = self.importer, self.tensors
        async with self._using_backend(importer):
            await self.prepare_input_tensor(tensors.input, data)

            start = time.perf_counter()
            await importer.compute([tensors.input], [tensors.output])
            elapsed = (time.perf_counter() - start) * 1000

        logger.debug(f"Output: {tensors.output}")

        return InferenceResult(
            output=tensors.output,
            latency_ms=round(elapsed, 2),
            memory_used_mb=self.get_memory_usage(),
            backend=importer.backend,
        )

    def get_memory_usage(self) -> float:
        import psutil
        return psutil.Process().memory_info().rss / (1024 * 1024)

    # ============ Evaluation ============

    def frame_dims(self) -> Tuple[int, int]:
        """Default (rows, cols) of an output frame"""
        size = tuple(self.config.output_size)
        if len(size) == 1:
            return 1, int(size[0])
        return int(size[0]), int(np.prod(size[1:]))

    async def evaluate(self,
                       frames: Iterable[Tuple[FrameSource, FrameSource]],
                       rows: Optional[int] = None,
                       cols: Optional[int] = None) -> EvaluationSummary:
        """
        Predict and compare a sequence of (input, reference) frames.

        Args:
            frames: Pairs of input frame and reference frame sources
            rows: Rows per output frame (default: first output dimension)
            cols: Columns per output frame (default: remaining dimensions)

        Returns:
            EvaluationSummary over all frames
        """
        if self.state is not HarnessState.INITIALIZED:
            raise NotInitializedError("Model not initialized. Call init() first.")

        default_rows, default_cols = self.frame_dims()
        if rows is None:
            rows = default_rows
        if cols is None:
            cols = default_cols
        if rows <= 0 or cols <= 0:
            raise InvalidShapeError(f"Invalid frame dimensions {rows}x{cols}")

        self.comparator.reset()
        results: List[FrameResult] = []

        for index, (input_source, reference_source) in enumerate(frames):
            result = await self.predict(input_source)
            await self.load_reference(reference_source)

            num_errors = self.comparator.compare_frame(
                self.output_tensor, self.reference_tensor, rows, cols
            )
            self.comparator.accumulate()

            frame = self.comparator.frame_error
            results.append(FrameResult(
                index=index,
                latency_ms=result.latency_ms,
                num_errors=num_errors,
                rms_error=frame.rms_error,
                max_error=frame.max_error,
            ))

        report = self.comparator.report(len(results))

        return EvaluationSummary(
            model_name=Path(urlparse(self.config.model_file).path).stem,
            backend=self.backend,
            prefer=self.prefer,
            frames=results,
            report=report,
            total_error=replace(self.comparator.total_error),
            warmup_ms=self.warmup_ms,
        )

    def export_output(self, path: Union[str, Path] = "output.ark") -> Path:
        """Write the current output tensor to a file"""
        if self.tensors is None:
            raise NotInitializedError("No output data. Call load() first.")
        return write_ark(path, self.output_tensor)


# ============ Command Line ============

async def run_evaluation(config: ModelConfig,
                         backend: str,
                         prefer: str,
                         frames: List[Tuple[str, str]],
                         rows: Optional[int] = None,
                         cols: Optional[int] = None,
                         settings: Optional[HarnessSettings] = None,
                         export_path: Optional[str] = None) -> EvaluationSummary:
    """Load, initialize and evaluate in one call"""
    harness = InferenceHarness(settings=settings)
    await harness.load(config)

    status = await harness.init(backend, prefer)
    if status is InitStatus.NOT_LOADED:
        raise NotInitializedError(f"Model {config.model_file} failed to load")

    logger.info(f"Required ops: {await harness.get_required_ops()}")
    try:
        summary = await harness.evaluate(frames, rows, cols)
        if export_path:
            harness.export_output(export_path)
        return summary
    finally:
        harness.cleanup()


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description='Verify backend inference against reference ark frames')
    parser.add_argument('descriptor', help='Path to JSON model descriptor')
    parser.add_argument('--backend', default='cpu', help='Backend to compile for')
    parser.add_argument('--prefer', default='fast',
                        choices=['fast', 'sustained', 'low_power'],
                        help='Execution preference')
    parser.add_argument('--frames', nargs='+', required=True, help='Input ark frames')
    parser.add_argument('--references', nargs='+', required=True, help='Reference ark frames')
    parser.add_argument('--rows', type=int, default=None, help='Rows per output frame')
    parser.add_argument('--cols', type=int, default=None, help='Columns per output frame')
    parser.add_argument('--threshold', type=float, default=0.001, help='Per-element error threshold')
    parser.add_argument('--output', default='accuracy_results.json', help='Output file')
    parser.add_argument('--report', default=None, help='Markdown report file')
    parser.add_argument('--plot', default=None, help='Per-frame error chart file')
    parser.add_argument('--export-ark', default=None, help='Write the last output tensor here')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    args = parser.parse_args(argv)

    if len(args.frames) != len(args.references):
        parser.error('--frames and --references must have the same length')

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    config = ModelConfig.from_json(args.descriptor)
    settings = HarnessSettings(threshold=args.threshold)

    summary = asyncio.run(run_evaluation(
        config,
        args.backend,
        args.prefer,
        list(zip(args.frames, args.references)),
        rows=args.rows,
        cols=args.cols,
        settings=settings,
        export_path=args.export_ark,
    ))

    summary.to_json(args.output)
    if args.report:
        with open(args.report, 'w') as f:
            f.write(summary.generate_report())
    if args.plot:
        from .visualization import plot_frame_errors
        plot_frame_errors(summary, args.plot)

    logger.info(f"Results saved to {args.output}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
