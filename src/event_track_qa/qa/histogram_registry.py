"""
Histogram bookkeeping for the QA output.

The registry is the metrics sink of the selection engine: histograms are
declared once with their binning and then filled additively by slash
separated path. Nothing in the selection logic reads them back. Registries
filled independently (e.g. on different input files) can be merged, and the
content is persisted as JSON in the same layout as the other histogram files
of this package (``counts`` and ``bin_edges`` per key).
"""

import copy
import json
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from event_track_qa.config.logging_config import get_logger


class Axis:
    """Binning of one histogram dimension."""

    def __init__(
        self,
        nbins: Optional[int] = None,
        low: Optional[float] = None,
        high: Optional[float] = None,
        title: str = "",
        edges: Optional[Sequence[float]] = None,
    ):
        if edges is not None:
            self.edges = np.asarray(edges, dtype=float)
        else:
            if nbins is None or low is None or high is None:
                raise ValueError("Axis needs either edges or (nbins, low, high)")
            self.edges = np.linspace(low, high, nbins + 1)
        if self.edges.size < 2 or np.any(np.diff(self.edges) <= 0):
            raise ValueError("Axis edges must be strictly increasing")
        self.title = title

    @classmethod
    def variable(cls, edges: Sequence[float], title: str = "") -> "Axis":
        return cls(edges=edges, title=title)

    @property
    def nbins(self) -> int:
        return self.edges.size - 1

    def find_bin(self, value: float) -> int:
        """Bin index, -1 for underflow and ``nbins`` for overflow or NaN."""
        if np.isnan(value):
            return self.nbins
        if value < self.edges[0]:
            return -1
        if value >= self.edges[-1]:
            return self.nbins
        return int(np.searchsorted(self.edges, value, side="right") - 1)

    def with_title(self, title: str) -> "Axis":
        return Axis(edges=self.edges, title=title)


class Histogram:
    """Weighted 1D or 2D histogram with under/overflow tracking."""

    kind = "hist"

    def __init__(
        self,
        path: str,
        axes: Sequence[Axis],
        title: str = "",
        bin_labels: Optional[list[str]] = None,
    ):
        if len(axes) not in (1, 2):
            raise ValueError(f"{path}: only 1D and 2D histograms are supported")
        self.path = path
        self.axes = list(axes)
        self.title = title
        self.bin_labels = bin_labels
        self.counts = np.zeros([axis.nbins for axis in self.axes], dtype=float)
        self.entries = 0
        self.underflow = 0.0
        self.overflow = 0.0

    @property
    def ndim(self) -> int:
        return len(self.axes)

    def fill(self, value: float, value2: Optional[float] = None, weight: float = 1.0):
        self.entries += 1
        if self.ndim == 1:
            if value2 is not None:
                raise ValueError(f"{self.path}: 1D histogram filled with two values")
            index = (self.axes[0].find_bin(value),)
        else:
            if value2 is None:
                raise ValueError(f"{self.path}: 2D histogram needs two values")
            index = (self.axes[0].find_bin(value), self.axes[1].find_bin(value2))

        if any(i < 0 for i in index):
            self.underflow += weight
        elif any(i >= axis.nbins for i, axis in zip(index, self.axes)):
            self.overflow += weight
        else:
            self.counts[index] += weight

    def merge(self, other: "Histogram") -> None:
        if self.counts.shape != other.counts.shape:
            raise ValueError(f"{self.path}: cannot merge histograms of different shape")
        self.counts += other.counts
        self.entries += other.entries
        self.underflow += other.underflow
        self.overflow += other.overflow

    def integral(self) -> float:
        return float(self.counts.sum())

    def to_dict(self) -> dict:
        result = {
            "kind": self.kind,
            "title": self.title,
            "counts": self.counts.tolist(),
            "bin_edges": [axis.edges.tolist() for axis in self.axes],
            "axis_titles": [axis.title for axis in self.axes],
            "entries": self.entries,
            "underflow": self.underflow,
            "overflow": self.overflow,
        }
        if self.bin_labels:
            result["bin_labels"] = self.bin_labels
        return result


class Profile(Histogram):
    """Mean of a second quantity in bins of the first."""

    kind = "profile"

    def __init__(self, path: str, axes: Sequence[Axis], title: str = ""):
        if len(axes) != 1:
            raise ValueError(f"{path}: a profile is binned along one axis")
        super().__init__(path, axes, title)
        self.sum_y = np.zeros(self.axes[0].nbins, dtype=float)
        self.sum_y2 = np.zeros(self.axes[0].nbins, dtype=float)

    def fill(self, value: float, value2: Optional[float] = None, weight: float = 1.0):
        if value2 is None:
            raise ValueError(f"{self.path}: a profile needs two values")
        self.entries += 1
        index = self.axes[0].find_bin(value)
        if index < 0:
            self.underflow += weight
        elif index >= self.axes[0].nbins or np.isnan(value2):
            self.overflow += weight
        else:
            self.counts[index] += weight
            self.sum_y[index] += weight * value2
            self.sum_y2[index] += weight * value2 * value2

    def merge(self, other: "Profile") -> None:
        super().merge(other)
        self.sum_y += other.sum_y
        self.sum_y2 += other.sum_y2

    def means(self) -> np.ndarray:
        with np.errstate(invalid="ignore", divide="ignore"):
            return np.where(self.counts > 0, self.sum_y / self.counts, 0.0)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["means"] = self.means().tolist()
        result["sum_y"] = self.sum_y.tolist()
        result["sum_y2"] = self.sum_y2.tolist()
        return result


class HistogramRegistry:
    """Path-keyed collection of histograms with additive filling."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self._histograms: dict[str, Histogram] = {}

    def add(
        self,
        path: str,
        axes: Union[Axis, Sequence[Axis]],
        kind: str = "hist",
        title: str = "",
        bin_labels: Optional[list[str]] = None,
    ) -> Histogram:
        """
        Declare a histogram.

        Args:
            path: Slash-separated name, e.g. "Events/posZ"
            axes: One axis for 1D histograms and profiles, two for 2D
            kind: "hist" or "profile"
            title: Free-form title
            bin_labels: Optional labels of the x-axis bins

        Returns:
            The newly created histogram
        """
        if path in self._histograms:
            raise ValueError(f"Histogram already declared: {path}")
        if isinstance(axes, Axis):
            axes = [axes]
        if kind == "profile":
            histogram = Profile(path, axes, title)
        elif kind == "hist":
            histogram = Histogram(path, axes, title, bin_labels)
        else:
            raise ValueError(f"Unknown histogram kind: {kind}")
        self._histograms[path] = histogram
        return histogram

    def fill(
        self,
        path: str,
        value: float,
        value2: Optional[float] = None,
        weight: float = 1.0,
    ) -> None:
        """Add one sample to the histogram at ``path``."""
        try:
            histogram = self._histograms[path]
        except KeyError:
            raise KeyError(f"Histogram not declared: {path}") from None
        histogram.fill(value, value2, weight)

    # Name used by the selection engine for its metrics sink
    record = fill

    def get(self, path: str) -> Histogram:
        return self._histograms[path]

    def __contains__(self, path: str) -> bool:
        return path in self._histograms

    def __len__(self) -> int:
        return len(self._histograms)

    def paths(self) -> list[str]:
        return list(self._histograms)

    def merge(self, other: "HistogramRegistry") -> None:
        """Add the content of ``other``. Histograms missing here are adopted."""
        for path, histogram in other._histograms.items():
            if path in self._histograms:
                self._histograms[path].merge(histogram)
            else:
                self._histograms[path] = copy.deepcopy(histogram)

    def to_dict(self) -> dict:
        return {path: hist.to_dict() for path, hist in self._histograms.items()}

    def save(self, file_path: Union[str, Path], metadata: Optional[dict] = None) -> None:
        """Save all histograms to a JSON file.

        Args:
            file_path: Path where to save the JSON histogram data
            metadata: Optional dictionary stored under the "_metadata" key
        """
        file_path = Path(file_path)
        hist_data = self.to_dict()
        if metadata:
            hist_data["_metadata"] = metadata

        # Ensure directory exists
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w") as f:
            json.dump(hist_data, f, indent=4)

        self.logger.info(f"Saved {len(self._histograms)} histograms to {file_path}")

    @classmethod
    def load(cls, file_path: Union[str, Path]) -> tuple["HistogramRegistry", Optional[dict]]:
        """Load histograms saved with :meth:`save`.

        Returns:
            Tuple of (registry, metadata or None)
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Histogram file not found: {file_path}")

        with open(file_path) as f:
            data = json.load(f)

        registry = cls()
        for path, value in data.items():
            if path.startswith("_"):
                continue
            axes = [
                Axis.variable(edges, title)
                for edges, title in zip(value["bin_edges"], value["axis_titles"])
            ]
            histogram = registry.add(
                path,
                axes,
                kind=value["kind"],
                title=value["title"],
                bin_labels=value.get("bin_labels"),
            )
            histogram.counts = np.asarray(value["counts"], dtype=float)
            histogram.entries = value["entries"]
            histogram.underflow = value["underflow"]
            histogram.overflow = value["overflow"]
            if isinstance(histogram, Profile):
                histogram.sum_y = np.asarray(value["sum_y"], dtype=float)
                histogram.sum_y2 = np.asarray(value["sum_y2"], dtype=float)
        return registry, data.get("_metadata")
