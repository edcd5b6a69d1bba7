"""
Tests for the accuracy comparison engine

Per-frame statistics, accumulation across frames, aggregate reports and
evaluation summaries.
"""

import math
import os
import tempfile

import numpy as np
import pytest

from inference_harness.analysis import (
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
from inference_harness.errors import InvalidShapeError, NumericDomainError


# ============ Accumulator Tests ============

class TestErrorAccumulator:
    """Tests for ErrorAccumulator dataclass"""

    def test_defaults(self):
        """Test a fresh accumulator is zeroed with the default threshold"""
        acc = ErrorAccumulator()

        assert acc.num_scores == 0
        assert acc.num_errors == 0
        assert acc.threshold == 0.001
        assert acc.max_error == 0.0
        assert acc.sum_squared_rel_error == 0.0

    def test_reset(self):
        """Test reset zeroes statistics and keeps the threshold"""
        acc = ErrorAccumulator(threshold=0.01, num_scores=5, max_error=2.0, sum_rms_error=1.5)

        acc.reset()

        assert acc.num_scores == 0
        assert acc.max_error == 0.0
        assert acc.sum_rms_error == 0.0
        assert acc.threshold == 0.01

    def test_to_dict(self):
        """Test serialization"""
        data = ErrorAccumulator(num_scores=3, max_error=1.0).to_dict()

        assert data['num_scores'] == 3
        assert data['max_error'] == 1.0
        assert data['threshold'] == 0.001
        assert len(data) == 11


# ============ Frame Comparison Tests ============

class TestCompareFrame:
    """Tests for per-frame comparison"""

    def test_single_mismatch(self):
        """Test one differing element out of three"""
        comparator = AccuracyComparator()
        output = np.array([1, 2, 3], dtype=np.float32)
        reference = np.array([1, 2, 4], dtype=np.float32)

        num_errors = comparator.compare_frame(output, reference, 1, 3)
        frame = comparator.frame_error

        assert num_errors == 1
        assert frame.num_errors == 1
        assert frame.num_scores == 3
        assert frame.max_error == 1.0
        assert frame.sum_error == 1.0
        assert frame.sum_squared_error == 1.0
        assert frame.rms_error == pytest.approx(math.sqrt(1 / 3))
        assert frame.rms_error == pytest.approx(0.57735, abs=1e-5)
        assert frame.sum_rms_error == pytest.approx(frame.rms_error)
        assert frame.max_rel_error == pytest.approx(0.25)
        assert frame.sum_rel_error == pytest.approx(0.25)

    def test_threshold_is_strict(self):
        """Test errors equal to the threshold are not counted"""
        output = np.array([0.0, 0.0], dtype=np.float64)
        reference = np.array([0.001, 0.0015], dtype=np.float64)
        frame = ErrorAccumulator()

        assert compare_scores(output, reference, 1, 2, frame) == 1

    def test_relative_error_of_zero_reference(self):
        """Test a zero reference does not divide by zero"""
        frame = ErrorAccumulator()

        compare_scores(np.array([1e-10]), np.array([0.0]), 1, 1, frame)

        assert np.isfinite(frame.max_rel_error)
        assert frame.max_rel_error == pytest.approx(1e10)

    def test_quantized_buffers_do_not_wrap(self):
        """Test uint8 tensors are compared in floating point"""
        output = np.array([0, 10], dtype=np.uint8)
        reference = np.array([255, 10], dtype=np.uint8)
        frame = ErrorAccumulator()

        compare_scores(output, reference, 1, 2, frame)

        assert frame.max_error == 255.0

    def test_row_major_prefix(self):
        """Test only rows*cols leading elements are compared"""
        output = np.array([1, 1, 1, 1, 9, 9], dtype=np.float32)
        reference = np.ones(6, dtype=np.float32)
        frame = ErrorAccumulator()

        assert compare_scores(output, reference, 2, 2, frame) == 0
        assert frame.num_scores == 4

    def test_frame_is_reset_between_calls(self):
        """Test the frame accumulator does not carry over"""
        comparator = AccuracyComparator()
        comparator.compare_frame(np.array([0.0, 5.0]), np.array([0.0, 0.0]), 1, 2)
        comparator.compare_frame(np.array([1.0, 1.0]), np.array([1.0, 1.0]), 1, 2)

        assert comparator.frame_error.max_error == 0.0
        assert comparator.frame_error.num_scores == 2
        assert comparator.frame_error.sum_rms_error == 0.0

    def test_short_buffer(self):
        """Test buffers shorter than the frame are rejected"""
        with pytest.raises(InvalidShapeError):
            compare_scores(np.zeros(3), np.zeros(4), 2, 2, ErrorAccumulator())

    def test_invalid_dimensions(self):
        """Test non-positive rows or columns are rejected"""
        with pytest.raises(InvalidShapeError):
            compare_scores(np.zeros(3), np.zeros(3), 0, 3, ErrorAccumulator())


# ============ Accumulation Tests ============

class TestAccumulate:
    """Tests for merging frames into a running total"""

    def test_merge_two_frames(self):
        """Test additive fields sum and maxima are kept"""
        comparator = AccuracyComparator()

        comparator.compare_frame(np.array([1.0, 2.0, 3.0]), np.array([1.0, 2.0, 4.0]), 1, 3)
        first_rms = comparator.frame_error.rms_error
        comparator.accumulate()

        comparator.compare_frame(np.array([0.0, 0.0, 0.0]), np.array([0.5, 0.0, 0.0]), 1, 3)
        second_rms = comparator.frame_error.rms_error
        total = comparator.accumulate()

        assert total.num_scores == 6
        assert total.num_errors == 2
        assert total.max_error == 1.0
        assert total.sum_error == pytest.approx(1.5)
        assert total.sum_squared_error == pytest.approx(1.25)
        assert total.sum_rms_error == pytest.approx(first_rms + second_rms)

    def test_maxima_never_decrease(self):
        """Test a smaller frame maximum leaves the total maximum"""
        total = ErrorAccumulator(max_error=3.0, max_rel_error=2.0)
        frame = ErrorAccumulator(num_scores=3, max_error=1.0, max_rel_error=0.5)

        update_score_error(frame, total)

        assert total.max_error == 3.0
        assert total.max_rel_error == 2.0
        assert total.num_scores == 3

    def test_rms_weighted_per_frame(self):
        """Test each frame's RMS counts once regardless of size"""
        total = ErrorAccumulator()
        update_score_error(ErrorAccumulator(num_scores=1, rms_error=1.0), total)
        update_score_error(ErrorAccumulator(num_scores=1000, rms_error=3.0), total)
        total.sum_error = total.sum_squared_error = 1.0

        assert total.sum_rms_error == 4.0
        assert build_report(total, 2).avg_rms == 2.0

    def test_explicit_accumulators(self):
        """Test accumulate() accepts caller-owned accumulators"""
        comparator = AccuracyComparator()
        frame = ErrorAccumulator(num_scores=2, sum_error=0.5, max_error=0.4)
        total = ErrorAccumulator()

        result = comparator.accumulate(frame, total)

        assert result is total
        assert total.sum_error == 0.5
        assert comparator.total_error.num_scores == 0


# ============ Report Tests ============

class TestReport:
    """Tests for aggregate metrics"""

    def test_report_values(self):
        """Test averages and standard deviation for a single frame"""
        comparator = AccuracyComparator()
        comparator.compare_frame(np.array([1.0, 2.0, 3.0]), np.array([1.0, 2.0, 4.0]), 1, 3)
        comparator.accumulate()

        report = comparator.report(1)

        assert report.max_error == 1.0
        assert report.avg_error == pytest.approx(1 / 3)
        assert report.avg_rms == pytest.approx(math.sqrt(1 / 3))
        assert report.std_dev == pytest.approx(math.sqrt(2 / 9))

    def test_negative_variance_raises(self):
        """Test an inconsistent total surfaces a domain error"""
        total = ErrorAccumulator(num_scores=3, sum_error=6.0, sum_squared_error=10.0)

        with pytest.raises(NumericDomainError):
            std_dev_error(total)
        with pytest.raises(NumericDomainError):
            build_report(total, 1)

    def test_zero_variance(self):
        """Test identical outputs give zero deviation"""
        comparator = AccuracyComparator()
        comparator.compare_frame(np.ones(4), np.ones(4), 2, 2)
        comparator.accumulate()

        assert comparator.report(1).std_dev == 0.0

    def test_empty_total_raises(self):
        """Test averages over nothing are rejected"""
        with pytest.raises(NumericDomainError):
            build_report(ErrorAccumulator(), 1)

    def test_zero_frames_raises(self):
        """Test average RMS over zero frames is rejected"""
        total = ErrorAccumulator(num_scores=1, sum_error=1.0, sum_squared_error=1.0)
        with pytest.raises(NumericDomainError):
            build_report(total, 0)


# ============ Summary Tests ============

def _summary():
    return EvaluationSummary(
        model_name="tdnn",
        backend="cpu",
        prefer="fast",
        frames=[
            FrameResult(index=0, latency_ms=1.25, num_errors=0, rms_error=0.0001, max_error=0.0004),
            FrameResult(index=1, latency_ms=1.75, num_errors=2, rms_error=0.002, max_error=0.01),
        ],
        report=ErrorReport(max_error=0.01, avg_error=0.0005, avg_rms=0.00105, std_dev=0.001),
        total_error=ErrorAccumulator(num_scores=20, num_errors=2, max_error=0.01),
        warmup_ms=12.5,
    )


class TestEvaluationSummary:
    """Tests for EvaluationSummary"""

    def test_to_dict(self):
        """Test serialization"""
        data = _summary().to_dict()

        assert data['frames_count'] == 2
        assert data['report']['max_error'] == 0.01
        assert data['latency']['warmup_ms'] == 12.5
        assert data['latency']['mean_ms'] == pytest.approx(1.5)
        assert data['frames'][1]['num_errors'] == 2

    def test_passed(self):
        """Test the pass criterion uses the maximum error"""
        summary = _summary()

        assert summary.passed(0.05)
        assert not summary.passed(0.001)

    def test_markdown_report(self):
        """Test markdown report generation"""
        report = _summary().generate_report()

        assert "# Accuracy Report" in report
        assert "tdnn" in report
        assert "| 1 | 1.75 | 2 |" in report
        assert "12.50 ms" in report

    def test_html_report(self):
        """Test HTML report generation"""
        report = _summary().generate_report(format='html')

        assert report.startswith("<!DOCTYPE html>")
        assert 'class="worst"' in report

    def test_export_and_load(self):
        """Test JSON export and loading"""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            temp_path = f.name

        try:
            _summary().to_json(temp_path)
            loaded = EvaluationSummary.load(temp_path)

            assert loaded.model_name == "tdnn"
            assert loaded.frames[1].max_error == 0.01
            assert loaded.total_error.num_errors == 2
            assert loaded.warmup_ms == 12.5
        finally:
            os.unlink(temp_path)

    def test_to_dataframe(self):
        """Test per-frame DataFrame conversion"""
        pytest.importorskip("pandas")

        df = _summary().to_dataframe()

        assert list(df['index']) == [0, 1]
        assert df['num_errors'].sum() == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
