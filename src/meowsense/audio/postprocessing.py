"""Turn raw model outputs into a classification result."""

import logging
from typing import List, Optional

import numpy as np

from ..constants import EnhancementConfig, get_enhancement_config, get_label_table
from .types import ClassificationResult, ClassLabelTable, ResultStatus

logger = logging.getLogger(__name__)


def softmax(logits) -> np.ndarray:
    """Numerically stable softmax over a 1-D logits vector."""
    logits = np.asarray(logits, dtype=np.float64)
    if logits.ndim != 1 or logits.size == 0:
        raise ValueError(f"Expected a non-empty 1-D logits vector, got shape {logits.shape}")
    exp = np.exp(logits - np.max(logits))
    return exp / exp.sum()


def enhance_confidence(
    probabilities,
    config: Optional[EnhancementConfig] = None,
) -> np.ndarray:
    """Sharpen an under-confident distribution towards its top class.

    This is a tuning heuristic layered on top of the model's calibration,
    not a probability-preserving transform. The top class is boosted up to a
    cap and the remaining mass is shared by the other classes in proportion
    to their original weights, so the output still sums to 1.

    Args:
        probabilities: Probability vector (non-negative, sums to 1)
        config: Enhancement constants (uses global config if None)

    Returns:
        A new probability vector
    """
    cfg = config or get_enhancement_config()
    probs = np.asarray(probabilities, dtype=np.float64)
    if probs.size < 2:
        return probs.copy()

    order = np.argsort(-probs, kind="stable")
    top_idx = int(order[0])
    top = float(probs[top_idx])
    margin = top - float(probs[order[1]])

    if top > cfg.min_top and margin > cfg.min_margin:
        boost = cfg.aggressive_boost_high if top > cfg.strong_top else cfg.aggressive_boost
        cap = cfg.aggressive_cap
    elif cfg.gentle_min_top < top <= cfg.min_top:
        boost = cfg.gentle_boost
        cap = cfg.gentle_cap
    else:
        return probs.copy()

    new_top = max(top, min(top * boost, cap))
    if new_top == top:
        return probs.copy()

    others = probs.copy()
    others[top_idx] = 0.0
    remaining = 1.0 - new_top
    other_mass = others.sum()

    if other_mass > 0:
        enhanced = others * (remaining / other_mass)
    else:
        enhanced = np.full(probs.size, remaining / (probs.size - 1))
    enhanced[top_idx] = new_top

    logger.debug(f"Enhanced top class {top_idx}: {top:.3f} -> {new_top:.3f}")
    return enhanced


def to_percent(probability: float) -> int:
    """Round a probability to a whole percentage, halves rounding up."""
    return int(np.floor(probability * 100.0 + 0.5))


class Postprocessor:
    """Softmax, optional confidence enhancement and result assembly."""

    def __init__(
        self,
        labels: Optional[ClassLabelTable] = None,
        enhancement: Optional[EnhancementConfig] = None,
        outputs_probabilities: bool = False,
    ):
        """Initialize postprocessor.

        Args:
            labels: Ordered class table (uses global config if None)
            enhancement: Enhancement constants (uses global config if None)
            outputs_probabilities: Model output is already a distribution
        """
        self.labels = labels or get_label_table()
        self.enhancement = enhancement or get_enhancement_config()
        self.outputs_probabilities = outputs_probabilities

    @property
    def enhancement_enabled(self) -> bool:
        return self.enhancement.enabled

    def probabilities(self, logits) -> np.ndarray:
        """Convert model output to a probability vector."""
        if not self.outputs_probabilities:
            return softmax(logits)

        scores = np.clip(np.asarray(logits, dtype=np.float64), 0.0, None)
        total = scores.sum()
        if total <= 0:
            raise ValueError("Model output holds no positive probability")
        return scores / total

    def classify(
        self,
        logits,
        signal_strength: Optional[float] = None,
        duration: Optional[float] = None,
    ) -> ClassificationResult:
        """Build the classification result for one clip.

        Args:
            logits: Raw model output, one value per class
            signal_strength: Mean normalized amplitude reported by the gate
            duration: Clip duration in seconds

        Returns:
            ClassificationResult for the most probable class
        """
        logits = np.asarray(logits, dtype=np.float64).ravel()
        if logits.size != len(self.labels):
            raise ValueError(
                f"Expected {len(self.labels)} model outputs, got {logits.size}"
            )

        probs = self.probabilities(logits)
        if self.enhancement.enabled:
            probs = enhance_confidence(probs, self.enhancement)

        idx = int(np.argmax(probs))
        entry = self.labels[idx]
        confidence = to_percent(probs[idx])

        logger.info(f"Detected {entry.label} ({confidence}%)")

        return ClassificationResult(
            label=entry.label,
            phrase=entry.phrase,
            confidence=confidence,
            probabilities=tuple(float(p) for p in probs),
            diagnostic=self.describe(probs, idx, signal_strength, duration),
            status=ResultStatus.CLASSIFIED,
            signal_strength=signal_strength,
            labels=self.labels.labels,
        )

    def describe(
        self,
        probs: np.ndarray,
        idx: int,
        signal_strength: Optional[float] = None,
        duration: Optional[float] = None,
    ) -> str:
        """Human-readable breakdown of a prediction."""
        entry = self.labels[idx]
        lines: List[str] = [
            "Cat Sound Analysis:",
            f"Detected Context: {entry.phrase}",
            f"Detected Label: {entry.label}",
            f"Confidence: {to_percent(probs[idx])}%",
        ]
        if signal_strength is not None:
            lines.append(f"Signal Strength: {signal_strength:.4f}")
        if duration is not None:
            lines.append(f"Audio Duration: {duration:.1f} seconds")

        lines += ["", "Debug Info:"]
        lines += [
            f"Class {i} ({label.label}): {probs[i] * 100:.1f}%"
            for i, label in enumerate(self.labels)
        ]
        return "\n".join(lines)
