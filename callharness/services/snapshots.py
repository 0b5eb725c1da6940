"""Baseline screenshot comparison for the rendered video grid."""
import io
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, ImageChops

from callharness.config import Settings, SnapshotUpdateMode

logger = logging.getLogger(__name__)

# RGB -> YIQ and the per-component weights of the pixelmatch color delta
YIQ_MATRIX = np.array([
    [0.29889531, 0.58662247, 0.11448223],
    [0.59597799, -0.27417610, -0.32180189],
    [0.21147017, -0.52261711, 0.31114694],
])
YIQ_WEIGHTS = (0.5053, 0.299, 0.1957)
MAX_YIQ_DELTA = 35215.0


class SnapshotMismatchError(AssertionError):
    """Raised when a screenshot differs from its baseline beyond tolerance."""
    pass


@dataclass
class SnapshotComparison:
    """Result of comparing an actual screenshot with its baseline."""
    differing_pixels: int
    total_pixels: int
    size_matches: bool = True

    @property
    def ratio(self) -> float:
        if not self.total_pixels:
            return 0.0
        return self.differing_pixels / self.total_pixels


class SnapshotService:
    """Stores baselines and compares screenshots against them."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def baseline_path(self, name: str) -> Path:
        """Baselines are kept per environment and platform."""
        stem = Path(name).stem
        return self.settings.snapshots_dir / self.settings.environment / f"{stem}-{sys.platform}.png"

    def _artifact_path(self, name: str, kind: str) -> Path:
        stem = Path(name).stem
        path = self.settings.results_dir / "snapshots" / f"{stem}-{kind}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def compare_images(self, expected_png: bytes, actual_png: bytes) -> SnapshotComparison:
        """
        Count pixels whose perceptual color distance exceeds the threshold.

        The distance is the weighted YIQ delta used by pixelmatch (and so by
        Playwright's screenshot assertions): a pixel differs when the delta
        exceeds MAX_YIQ_DELTA * threshold ** 2.

        Args:
            expected_png: Baseline image bytes
            actual_png: Freshly captured image bytes

        Returns:
            SnapshotComparison; size mismatches count every pixel as different
        """
        expected = Image.open(io.BytesIO(expected_png)).convert("RGB")
        actual = Image.open(io.BytesIO(actual_png)).convert("RGB")

        if expected.size != actual.size:
            total = actual.size[0] * actual.size[1]
            return SnapshotComparison(differing_pixels=total, total_pixels=total, size_matches=False)

        diff = np.asarray(expected, dtype=np.float64) - np.asarray(actual, dtype=np.float64)
        y, i, q = np.moveaxis(diff @ YIQ_MATRIX.T, -1, 0)
        delta = YIQ_WEIGHTS[0] * y ** 2 + YIQ_WEIGHTS[1] * i ** 2 + YIQ_WEIGHTS[2] * q ** 2
        limit = MAX_YIQ_DELTA * self.settings.snapshot_threshold ** 2
        differing = int(np.count_nonzero(delta > limit))
        return SnapshotComparison(differing_pixels=differing, total_pixels=delta.size)

    def _write_diff(self, name: str, expected_png: bytes, actual_png: bytes) -> None:
        self._artifact_path(name, "actual").write_bytes(actual_png)
        expected = Image.open(io.BytesIO(expected_png)).convert("RGB")
        actual = Image.open(io.BytesIO(actual_png)).convert("RGB")
        if expected.size == actual.size:
            ImageChops.difference(expected, actual).save(self._artifact_path(name, "diff"))

    def assert_matches(self, name: str, actual_png: bytes) -> SnapshotComparison:
        """
        Compare a screenshot with the baseline stored under name.

        Raises:
            SnapshotMismatchError: If the baseline is missing (update mode none),
                the sizes differ or too many pixels differ
        """
        baseline = self.baseline_path(name)
        mode = self.settings.update_snapshots

        if mode == SnapshotUpdateMode.ALL or (mode == SnapshotUpdateMode.MISSING and not baseline.exists()):
            baseline.parent.mkdir(parents=True, exist_ok=True)
            baseline.write_bytes(actual_png)
            logger.info(f"Wrote baseline snapshot: {baseline}")
            return SnapshotComparison(differing_pixels=0, total_pixels=0)

        if not baseline.exists():
            self._artifact_path(name, "actual").write_bytes(actual_png)
            raise SnapshotMismatchError(f"Baseline snapshot not found: {baseline}")

        expected_png = baseline.read_bytes()
        comparison = self.compare_images(expected_png, actual_png)

        if not comparison.size_matches:
            self._write_diff(name, expected_png, actual_png)
            raise SnapshotMismatchError(f"Snapshot {name} has a different size than baseline {baseline}")

        if comparison.ratio > self.settings.snapshot_max_diff_pixel_ratio:
            self._write_diff(name, expected_png, actual_png)
            raise SnapshotMismatchError(
                f"Snapshot {name} differs from baseline in {comparison.differing_pixels} pixels "
                f"({comparison.ratio:.1%} > {self.settings.snapshot_max_diff_pixel_ratio:.1%})"
            )

        logger.debug(f"Snapshot {name} matched baseline ({comparison.ratio:.2%} differing)")
        return comparison
