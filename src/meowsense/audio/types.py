"""Audio pipeline data types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True, eq=False)
class AudioSignal:
    """A mono clip tagged with its sample rate.

    The samples are copied into a read-only float64 array on construction,
    so a signal can be shared without copying.
    """

    samples: np.ndarray
    sample_rate: float

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float64)
        if samples.ndim != 1:
            raise ValueError(f"Expected mono samples, got shape {samples.shape}")
        if samples.size == 0:
            raise ValueError("Audio signal must not be empty")
        if self.sample_rate is None or not (
            np.isfinite(self.sample_rate) and self.sample_rate > 0
        ):
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return self.samples.size

    @property
    def duration(self) -> float:
        """Return clip duration in seconds."""
        return self.samples.size / float(self.sample_rate)


@dataclass(frozen=True)
class ClassLabel:
    """One classifier output: a short label and a human-readable phrase."""

    index: int
    label: str
    phrase: str


class ClassLabelTable:
    """Ordered, immutable mapping from class index to label.

    The order must be exactly the one the classifier was trained on.
    Index 0 is the background/environment class used by stub results.
    """

    def __init__(self, labels: Sequence[ClassLabel]):
        labels = tuple(labels)
        if not labels:
            raise ValueError("Class label table must not be empty")
        for position, entry in enumerate(labels):
            if entry.index != position:
                raise ValueError(
                    f"Class indices must be contiguous from 0, "
                    f"found {entry.index} at position {position}"
                )
        self._labels: Tuple[ClassLabel, ...] = labels

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "ClassLabelTable":
        """Build a table from ordered (label, phrase) pairs."""
        return cls([
            ClassLabel(index=i, label=label, phrase=phrase)
            for i, (label, phrase) in enumerate(pairs)
        ])

    def __len__(self) -> int:
        return len(self._labels)

    def __getitem__(self, index: int) -> ClassLabel:
        return self._labels[index]

    def __iter__(self):
        return iter(self._labels)

    def __repr__(self) -> str:
        return f"ClassLabelTable({[entry.label for entry in self._labels]})"

    @property
    def labels(self) -> Tuple[str, ...]:
        """Return the short labels in class order."""
        return tuple(entry.label for entry in self._labels)

    @property
    def background(self) -> ClassLabel:
        """Return the background/environment class."""
        return self._labels[0]


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """Log-mel features of one clip, shaped (bands, target_frame_count)."""

    values: np.ndarray
    # Frames actually analysed before padding or truncation
    frame_count: int = 0

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 2:
            raise ValueError(f"Feature matrix must be 2-D, got shape {values.shape}")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def n_bands(self) -> int:
        return self.values.shape[0]

    @property
    def n_frames(self) -> int:
        return self.values.shape[1]

    def count_non_finite(self, dtype=None) -> int:
        """Return how many cells are NaN or infinite.

        Args:
            dtype: Floating tensor type the values will be cast to. Cells
                outside its range count as infinite.
        """
        values = self.values
        if dtype is not None and np.issubdtype(dtype, np.floating):
            with np.errstate(over="ignore"):
                values = values.astype(dtype)
        return int(np.count_nonzero(~np.isfinite(values)))

    def to_tensor(self, dtype=np.float32) -> np.ndarray:
        """Return the model input laid out as 1 x bands x frames x 1."""
        return self.values.astype(dtype)[np.newaxis, :, :, np.newaxis]


class ResultStatus(Enum):
    """How a classification result was produced."""

    CLASSIFIED = "classified"
    # Short-circuit: silent, near-silent or non-finite input
    SILENT = "silent"
    # Short-circuit: unusable spectrogram or non-finite features
    INVALID = "invalid"


@dataclass(frozen=True)
class ClassificationResult:
    """Result of sound classification."""

    label: str
    phrase: str
    confidence: int
    probabilities: Tuple[float, ...]
    diagnostic: Optional[str] = None
    status: ResultStatus = ResultStatus.CLASSIFIED
    signal_strength: Optional[float] = None
    labels: Tuple[str, ...] = field(default=(), repr=False)

    @property
    def index(self) -> int:
        """Return the index of the reported class."""
        return self.labels.index(self.label) if self.labels else 0

    @property
    def is_stub(self) -> bool:
        """Check if the result came from a short-circuit path."""
        return self.status is not ResultStatus.CLASSIFIED

    @property
    def all_probabilities(self) -> Dict[str, float]:
        """Return probabilities keyed by class label."""
        return dict(zip(self.labels, self.probabilities))

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "label": self.label,
            "phrase": self.phrase,
            "confidence": self.confidence,
            "probabilities": list(self.probabilities),
            "diagnostic": self.diagnostic,
            "status": self.status.value,
            "signal_strength": self.signal_strength,
        }

    @classmethod
    def silent(
        cls,
        labels: ClassLabelTable,
        diagnostic: str,
        signal_strength: Optional[float] = None,
    ) -> "ClassificationResult":
        """Confident background result for quiet or unusable input."""
        background = labels.background
        probabilities = tuple(1.0 if i == background.index else 0.0 for i in range(len(labels)))
        return cls(
            label=background.label,
            phrase=background.phrase,
            confidence=100,
            probabilities=probabilities,
            diagnostic=diagnostic,
            status=ResultStatus.SILENT,
            signal_strength=signal_strength,
            labels=labels.labels,
        )

    @classmethod
    def invalid(
        cls,
        labels: ClassLabelTable,
        diagnostic: str,
        signal_strength: Optional[float] = None,
    ) -> "ClassificationResult":
        """Zero-confidence result: nothing could be detected."""
        background = labels.background
        return cls(
            label=background.label,
            phrase=background.phrase,
            confidence=0,
            probabilities=(0.0,) * len(labels),
            diagnostic=diagnostic,
            status=ResultStatus.INVALID,
            signal_strength=signal_strength,
            labels=labels.labels,
        )


@dataclass(frozen=True, eq=False)
class GateDecision:
    """Outcome of the signal gate: proceed with samples or stop with a result."""

    samples: Optional[np.ndarray] = None
    result: Optional[ClassificationResult] = None
    signal_strength: Optional[float] = None

    @property
    def should_proceed(self) -> bool:
        return self.result is None
