#!/usr/bin/env python3
"""
Inference Harness - Visualization

Charts of per-frame accuracy and latency from evaluation summaries.
"""

from pathlib import Path
from typing import List
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from .analysis import EvaluationSummary


def plot_frame_errors(summary: EvaluationSummary,
                      output_path: str = "frame_errors.png") -> None:
    """Per-frame RMS and max error, with the average RMS as reference line."""
    indices = [f.index for f in summary.frames]
    rms = [f.rms_error for f in summary.frames]
    max_err = [f.max_error for f in summary.frames]

    fig, ax = plt.subplots(figsize=(12, 6))

    ax.plot(indices, rms, 'o-', label='RMS error', color='#2ecc71', linewidth=2, markersize=4)
    ax.plot(indices, max_err, 's--', label='Max error', color='#e74c3c', linewidth=1, markersize=4)
    ax.axhline(summary.report.avg_rms, color='#2ecc71', alpha=0.5, linestyle=':',
               label=f'Avg RMS ({summary.report.avg_rms:.3g})')
    ax.axhline(summary.total_error.threshold, color='#7f8c8d', alpha=0.5, linestyle='-.',
               label=f'Threshold ({summary.total_error.threshold:g})')

    ax.set_xlabel('Frame')
    ax.set_ylabel('Error')
    ax.set_title(f'Per-frame Error: {summary.model_name} on {summary.backend.upper()}')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150)
    plt.close()
    print(f"Saved: {output_path}")


def plot_frame_latency(summary: EvaluationSummary,
                       output_path: str = "frame_latency.png") -> None:
    """Per-frame inference latency against the warm-up run."""
    indices = [f.index for f in summary.frames]
    latencies = [f.latency_ms for f in summary.frames]

    fig, ax = plt.subplots(figsize=(12, 6))

    ax.bar(indices, latencies, color='#3498db', label='Inference')
    if summary.warmup_ms is not None:
        ax.axhline(summary.warmup_ms, color='#e74c3c', linestyle='--',
                   label=f'Warm-up ({summary.warmup_ms:.2f} ms)')

    ax.set_xlabel('Frame')
    ax.set_ylabel('Latency (ms)')
    ax.set_title(f'Inference Latency: {summary.model_name} on {summary.backend.upper()}')
    ax.legend()
    ax.grid(axis='y', alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150)
    plt.close()
    print(f"Saved: {output_path}")


def plot_backend_accuracy(summaries: List[EvaluationSummary],
                          output_path: str = "backend_accuracy.png") -> None:
    """Compare aggregate error metrics of several backends."""
    if not summaries:
        print("No summaries to plot")
        return

    labels = [f"{s.backend.upper()}\n{s.prefer}" for s in summaries]
    max_err = [s.report.max_error for s in summaries]
    avg_err = [s.report.avg_error for s in summaries]
    avg_rms = [s.report.avg_rms for s in summaries]

    x = np.arange(len(summaries))
    width = 0.25

    fig, ax = plt.subplots(figsize=(10, 6))

    ax.bar(x - width, max_err, width, label='Max', color='#e74c3c')
    ax.bar(x, avg_err, width, label='Avg', color='#f39c12')
    ax.bar(x + width, avg_rms, width, label='Avg RMS', color='#2ecc71')

    ax.set_xlabel('Backend')
    ax.set_ylabel('Error')
    ax.set_yscale('log')
    ax.set_title('Accuracy by Backend')
    ax.set_xticks(x)
    ax.set_xticklabels(labels)
    ax.legend()
    ax.grid(axis='y', alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150)
    plt.close()
    print(f"Saved: {output_path}")


def generate_all_visualizations(summary_path: str,
                                output_dir: str = "visualizations") -> None:
    """Generate all visualizations from a saved evaluation summary."""
    output = Path(output_dir)
    output.mkdir(exist_ok=True)

    summary = EvaluationSummary.load(summary_path)

    plot_frame_errors(summary, str(output / "frame_errors.png"))
    plot_frame_latency(summary, str(output / "frame_latency.png"))
    with open(output / "report.html", 'w') as f:
        f.write(summary.generate_report(format='html'))
    print(f"Saved: {output / 'report.html'}")


if __name__ == '__main__':
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m inference_harness.visualization <summary.json> [output_dir]")
        sys.exit(1)

    summary_path = sys.argv[1]
    output_dir = sys.argv[2] if len(sys.argv) > 2 else "visualizations"

    generate_all_visualizations(summary_path, output_dir)
