"""
Analysis Module

Accumulates per-frame error statistics between backend outputs and
reference outputs and derives aggregate accuracy metrics.
"""

import json
import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from datetime import datetime
import logging

import numpy as np

from .errors import InvalidShapeError, NumericDomainError

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.001
REL_EPSILON = 1e-20


@dataclass
class ErrorAccumulator:
    """Running error statistics for one frame or a whole evaluation"""
    num_scores: int = 0
    num_errors: int = 0
    threshold: float = DEFAULT_THRESHOLD
    max_error: float = 0.0
    rms_error: float = 0.0
    sum_error: float = 0.0
    sum_rms_error: float = 0.0
    sum_squared_error: float = 0.0
    max_rel_error: float = 0.0
    sum_rel_error: float = 0.0
    sum_squared_rel_error: float = 0.0

    def reset(self, threshold: Optional[float] = None) -> None:
        """Zero every statistic, keeping (or replacing) the threshold"""
        self.num_scores = 0
        self.num_errors = 0
        if threshold is not None:
            self.threshold = threshold
        self.max_error = 0.0
        self.rms_error = 0.0
        self.sum_error = 0.0
        self.sum_rms_error = 0.0
        self.sum_squared_error = 0.0
        self.max_rel_error = 0.0
        self.sum_rel_error = 0.0
        self.sum_squared_rel_error = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'num_scores': self.num_scores,
            'num_errors': self.num_errors,
            'threshold': self.threshold,
            'max_error': self.max_error,
            'rms_error': self.rms_error,
            'sum_error': self.sum_error,
            'sum_rms_error': self.sum_rms_error,
            'sum_squared_error': self.sum_squared_error,
            'max_rel_error': self.max_rel_error,
            'sum_rel_error': self.sum_rel_error,
            'sum_squared_rel_error': self.sum_squared_rel_error,
        }


@dataclass
class ErrorReport:
    """Aggregate accuracy metrics over an evaluation"""
    max_error: float
    avg_error: float
    avg_rms: float
    std_dev: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_error': self.max_error,
            'avg_error': self.avg_error,
            'avg_rms': self.avg_rms,
            'std_dev': self.std_dev,
        }


@dataclass
class FrameResult:
    """Outcome of one predict-and-compare pass"""
    index: int
    latency_ms: float
    num_errors: int
    rms_error: float
    max_error: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'latency_ms': self.latency_ms,
            'num_errors': self.num_errors,
            'rms_error': self.rms_error,
            'max_error': self.max_error,
        }


# ============ Frame Statistics ============

def compare_scores(output: np.ndarray,
                   reference: np.ndarray,
                   rows: int,
                   cols: int,
                   frame: ErrorAccumulator) -> int:
    """
    Compare one frame of scores against its reference.

    The accumulator is reset first. Elements are taken row-major from the
    first rows*cols entries of both buffers.

    Args:
        output: Scores produced by the backend
        reference: Trusted reference scores
        rows: Number of rows in the frame
        cols: Number of columns in the frame
        frame: Accumulator receiving the frame statistics

    Returns:
        Number of elements whose absolute error exceeds the threshold
    """
    if rows <= 0 or cols <= 0:
        raise InvalidShapeError(f"Invalid frame dimensions {rows}x{cols}")

    count = rows * cols
    output = np.asarray(output).reshape(-1)
    reference = np.asarray(reference).reshape(-1)
    if output.size < count or reference.size < count:
        raise InvalidShapeError(
            f"Frame of {rows}x{cols} needs {count} elements, "
            f"got output={output.size} reference={reference.size}"
        )

    frame.reset()

    scores = output[:count].astype(np.float64)
    ref_scores = reference[:count].astype(np.float64)

    errors = np.abs(ref_scores - scores)
    rel_errors = errors / (np.abs(ref_scores) + REL_EPSILON)

    num_errors = int(np.count_nonzero(errors > frame.threshold))

    frame.num_scores = count
    frame.sum_error = float(errors.sum())
    frame.sum_squared_error = float(np.square(errors).sum())
    frame.max_error = float(errors.max())
    frame.sum_rel_error = float(rel_errors.sum())
    frame.sum_squared_rel_error = float(np.square(rel_errors).sum())
    frame.max_rel_error = float(rel_errors.max())

    frame.rms_error = math.sqrt(frame.sum_squared_error / count)
    frame.sum_rms_error += frame.rms_error
    frame.num_errors = num_errors

    return num_errors


def update_score_error(frame: ErrorAccumulator, total: ErrorAccumulator) -> None:
    """Merge a frame's statistics into a running total"""
    total.num_errors += frame.num_errors
    total.num_scores += frame.num_scores
    # Each frame's RMS counts once regardless of the frame size
    total.sum_rms_error += frame.rms_error
    total.sum_error += frame.sum_error
    total.sum_squared_error += frame.sum_squared_error
    if frame.max_error > total.max_error:
        total.max_error = frame.max_error
    total.sum_rel_error += frame.sum_rel_error
    total.sum_squared_rel_error += frame.sum_squared_rel_error
    if frame.max_rel_error > total.max_rel_error:
        total.max_rel_error = frame.max_rel_error


def std_dev_error(total: ErrorAccumulator) -> float:
    """Population standard deviation of the per-element absolute errors"""
    if total.num_scores <= 0:
        raise NumericDomainError("Standard deviation needs at least one score")

    mean = total.sum_error / total.num_scores
    radicand = total.sum_squared_error / total.num_scores - mean * mean
    if radicand < 0:
        raise NumericDomainError(
            f"Negative variance {radicand!r} (sum_squared_error={total.sum_squared_error}, "
            f"sum_error={total.sum_error}, num_scores={total.num_scores})"
        )
    return math.sqrt(radicand)


def build_report(total: ErrorAccumulator, frames_count: int) -> ErrorReport:
    """Aggregate metrics over frames_count frames"""
    if total.num_scores <= 0:
        raise NumericDomainError("Average error needs at least one score")
    if frames_count <= 0:
        raise NumericDomainError("Average RMS error needs at least one frame")

    return ErrorReport(
        max_error=total.max_error,
        avg_error=total.sum_error / total.num_scores,
        avg_rms=total.sum_rms_error / frames_count,
        std_dev=std_dev_error(total),
    )


class AccuracyComparator:
    """
    Compares backend output frames against references.

    Owns the per-frame accumulator and the running total.
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold
        self.frame_error = ErrorAccumulator(threshold=threshold)
        self.total_error = ErrorAccumulator(threshold=threshold)

    def reset(self) -> None:
        """Start a new evaluation"""
        self.frame_error.reset(self.threshold)
        self.total_error.reset(self.threshold)

    def compare_frame(self,
                      output: np.ndarray,
                      reference: np.ndarray,
                      rows: int,
                      cols: int) -> int:
        num_errors = compare_scores(output, reference, rows, cols, self.frame_error)
        logger.debug(
            f"Frame: {num_errors} errors, max {self.frame_error.max_error:.6f}, "
            f"rms {self.frame_error.rms_error:.6f}"
        )
        return num_errors

    def accumulate(self,
                   frame: Optional[ErrorAccumulator] = None,
                   total: Optional[ErrorAccumulator] = None) -> ErrorAccumulator:
        total = self.total_error if total is None else total
        update_score_error(self.frame_error if frame is None else frame, total)
        return total

    def report(self,
               frames_count: int,
               total: Optional[ErrorAccumulator] = None) -> ErrorReport:
        report = build_report(self.total_error if total is None else total, frames_count)
        logger.info(f"         max error: {report.max_error}")
        logger.info(f"         avg error: {report.avg_error}")
        logger.info(f"         avg rms error: {report.avg_rms}")
        logger.info(f"         stdev error: {report.std_dev}")
        return report


# ============ Evaluation Summary ============

@dataclass
class EvaluationSummary:
    """Results of running and comparing a sequence of frames"""
    model_name: str
    backend: str
    prefer: str
    frames: List[FrameResult]
    report: ErrorReport
    total_error: ErrorAccumulator
    warmup_ms: Optional[float] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def frames_count(self) -> int:
        return len(self.frames)

    @property
    def mean_latency_ms(self) -> float:
        if not self.frames:
            return 0.0
        return float(np.mean([f.latency_ms for f in self.frames]))

    def passed(self, max_error_limit: float) -> bool:
        """True when no element error exceeded the limit"""
        return self.report.max_error <= max_error_limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_name': self.model_name,
            'backend': self.backend,
            'prefer': self.prefer,
            'frames_count': self.frames_count,
            'report': self.report.to_dict(),
            'total_error': self.total_error.to_dict(),
            'latency': {
                'warmup_ms': self.warmup_ms,
                'mean_ms': self.mean_latency_ms,
            },
            'frames': [f.to_dict() for f in self.frames],
            'timestamp': self.timestamp,
        }

    def to_json(self, path: str) -> None:
        """Save the summary to JSON."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dataframe(self):
        """Per-frame results as a pandas DataFrame."""
        import pandas as pd
        return pd.DataFrame([f.to_dict() for f in self.frames])

    def generate_report(self, format: str = 'markdown') -> str:
        """
        Render the summary.

        Args:
            format: Report format ('markdown', 'html')

        Returns:
            Report string
        """
        if format == 'html':
            return self._generate_html_report()
        return self._generate_markdown_report()

    def _generate_markdown_report(self) -> str:
        r = self.report
        lines = [
            f"# Accuracy Report",
            f"",
            f"**Model:** {self.model_name}",
            f"**Backend:** {self.backend} ({self.prefer})",
            f"**Frames:** {self.frames_count}",
            f"**Threshold:** {self.total_error.threshold}",
            f"",
            f"## Summary",
            f"",
            f"- **Max error:** {r.max_error:.6g}",
            f"- **Avg error:** {r.avg_error:.6g}",
            f"- **Avg RMS error:** {r.avg_rms:.6g}",
            f"- **Stdev error:** {r.std_dev:.6g}",
            f"- **Scores over threshold:** {self.total_error.num_errors} / {self.total_error.num_scores}",
        ]
        if self.warmup_ms is not None:
            lines.append(f"- **Warm-up time:** {self.warmup_ms:.2f} ms")

        lines.extend([
            f"",
            f"## Frames",
            f"",
            f"| Frame | Latency (ms) | Errors | RMS error | Max error |",
            f"|-------|--------------|--------|-----------|-----------|",
        ])
        for fr in self.frames:
            lines.append(
                f"| {fr.index} | {fr.latency_ms:.2f} | {fr.num_errors} | "
                f"{fr.rms_error:.6g} | {fr.max_error:.6g} |"
            )

        return "\n".join(lines)

    def _generate_html_report(self) -> str:
        r = self.report
        frame_rows = ""
        for fr in self.frames:
            row_class = 'worst' if fr.num_errors else ''
            frame_rows += f"""
            <tr class="{row_class}">
                <td>{fr.index}</td>
                <td>{fr.latency_ms:.2f}</td>
                <td>{fr.num_errors}</td>
                <td>{fr.rms_error:.6g}</td>
                <td>{fr.max_error:.6g}</td>
            </tr>
            """

        return f"""<!DOCTYPE html>
<html>
<head>
    <title>Accuracy Report: {self.model_name}</title>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 40px; background: #f5f5f5; }}
        .container {{ max-width: 1000px; margin: 0 auto; background: white; padding: 30px; border-radius: 8px; }}
        .summary {{ background: #e8f5e9; padding: 15px; border-radius: 5px; margin: 20px 0; }}
        table {{ width: 100%; border-collapse: collapse; margin: 20px 0; }}
        th, td {{ padding: 12px; text-align: left; border-bottom: 1px solid #ddd; }}
        th {{ background: #4CAF50; color: white; }}
        tr.worst {{ background: #ffcdd2; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Accuracy Report</h1>

        <div class="summary">
            <p><strong>Model:</strong> {self.model_name}</p>
            <p><strong>Backend:</strong> {self.backend} ({self.prefer})</p>
            <p><strong>Frames:</strong> {self.frames_count}</p>
            <p><strong>Max error:</strong> {r.max_error:.6g}</p>
            <p><strong>Avg error:</strong> {r.avg_error:.6g}</p>
            <p><strong>Avg RMS error:</strong> {r.avg_rms:.6g}</p>
            <p><strong>Stdev error:</strong> {r.std_dev:.6g}</p>
        </div>

        <h2>Frames</h2>
        <table>
            <tr>
                <th>Frame</th>
                <th>Latency (ms)</th>
                <th>Errors</th>
                <th>RMS error</th>
                <th>Max error</th>
            </tr>
            {frame_rows}
        </table>
    </div>
</body>
</html>"""

    @classmethod
    def load(cls, path: str) -> 'EvaluationSummary':
        """Load a summary saved with to_json()"""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            model_name=data['model_name'],
            backend=data['backend'],
            prefer=data['prefer'],
            frames=[FrameResult(**fr) for fr in data.get('frames', [])],
            report=ErrorReport(**data['report']),
            total_error=ErrorAccumulator(**data['total_error']),
            warmup_ms=data.get('latency', {}).get('warmup_ms'),
            timestamp=data.get('timestamp', ''),
        )
