"""Audio preprocessing: loading, resampling, normalization and gating."""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from ..constants import get_audio_processing_config, get_label_table
from .types import AudioSignal, ClassificationResult, ClassLabelTable, GateDecision

logger = logging.getLogger(__name__)

SILENT_DIAGNOSTIC = "silent or invalid audio."


class AudioPreprocessor:
    """Audio preprocessing: loading and resampling to the model rate."""

    def __init__(self, target_sample_rate: Optional[float] = None):
        """Initialize audio preprocessor.

        Args:
            target_sample_rate: Rate clips are resampled to (uses config if None)
        """
        if target_sample_rate is None:
            target_sample_rate = get_audio_processing_config().target_sample_rate
        if target_sample_rate <= 0:
            raise ValueError(f"Target sample rate must be positive, got {target_sample_rate}")
        self.target_sample_rate = target_sample_rate

    def load(self, audio_path: Union[str, Path]) -> AudioSignal:
        """Load an audio file at its native sample rate.

        Only the first channel is kept.

        Args:
            audio_path: Path to audio file

        Returns:
            The decoded signal
        """
        import librosa

        audio, sample_rate = librosa.load(str(audio_path), sr=None, mono=False)
        if audio.ndim > 1:
            logger.debug(f"Keeping channel 0 of {audio.shape[0]} in {audio_path}")
            audio = audio[0]

        signal = AudioSignal(audio, sample_rate)
        logger.info(
            f"Loaded {audio_path}: {signal.duration:.2f}s at {sample_rate} Hz"
        )
        return signal

    def resample(
        self,
        signal: AudioSignal,
        target_sample_rate: Optional[float] = None,
    ) -> np.ndarray:
        """Resample by linear interpolation between neighbouring samples.

        Args:
            signal: Input signal (never modified)
            target_sample_rate: Output rate (uses the preprocessor's if None)

        Returns:
            A new array of resampled samples
        """
        target = target_sample_rate or self.target_sample_rate
        samples = signal.samples

        if abs(signal.sample_rate - target) < 1.0:
            return samples.copy()

        ratio = signal.sample_rate / target
        n_in = samples.size
        n_out = int(np.floor(n_in / ratio + 0.5))

        positions = np.arange(n_out) * ratio
        left = np.floor(positions).astype(np.int64)
        frac = positions - left

        resampled = np.zeros(n_out, dtype=np.float64)

        pair = left + 1 < n_in
        resampled[pair] = (
            samples[left[pair]] * (1.0 - frac[pair])
            + samples[left[pair] + 1] * frac[pair]
        )

        # Right boundary: nearest sample, or silence past the end
        single = ~pair & (left < n_in)
        resampled[single] = samples[left[single]]

        logger.debug(
            f"Resampled {n_in} samples {signal.sample_rate} Hz -> {n_out} samples {target} Hz"
        )
        return resampled

    @staticmethod
    def normalize(audio: np.ndarray) -> Tuple[np.ndarray, float]:
        """Normalize audio to [-1, 1] range.

        Args:
            audio: Audio data

        Returns:
            Tuple of (normalized audio, peak absolute amplitude). The audio is
            returned unscaled when the peak is zero or not finite.
        """
        audio = np.asarray(audio, dtype=np.float64)
        max_val = float(np.max(np.abs(audio))) if audio.size else 0.0
        if max_val > 0 and np.isfinite(max_val):
            return audio / max_val, max_val
        return audio, max_val

    @staticmethod
    def signal_strength(audio: np.ndarray) -> float:
        """Mean absolute amplitude."""
        return float(np.mean(np.abs(audio))) if len(audio) else 0.0


class SignalGate:
    """Peak-normalizes a clip and stops near-silent input early."""

    def __init__(
        self,
        labels: Optional[ClassLabelTable] = None,
        threshold: Optional[float] = None,
    ):
        """Initialize signal gate.

        Args:
            labels: Class table used for short-circuit results
            threshold: Minimum mean normalized amplitude (uses config if None)
        """
        self.labels = labels or get_label_table()
        if threshold is None:
            threshold = get_audio_processing_config().signal_strength_threshold
        self.threshold = threshold

    def gate(self, samples: np.ndarray) -> GateDecision:
        """Decide whether a clip carries enough signal to classify.

        Args:
            samples: Audio samples at the model rate

        Returns:
            GateDecision with normalized samples, or a background stub result
        """
        normalized, max_abs = AudioPreprocessor.normalize(samples)

        if max_abs == 0 or not np.isfinite(max_abs):
            logger.warning(f"Silent or non-finite audio (peak={max_abs})")
            return GateDecision(
                result=ClassificationResult.silent(self.labels, SILENT_DIAGNOSTIC),
            )

        strength = AudioPreprocessor.signal_strength(normalized)
        logger.debug(f"Signal strength: {strength:.6f}")

        if strength < self.threshold:
            logger.warning(
                f"Signal strength {strength:.6f} below threshold {self.threshold}"
            )
            diagnostic = (
                f"{SILENT_DIAGNOSTIC} Signal strength {strength:.6f} "
                f"is below threshold {self.threshold}."
            )
            return GateDecision(
                result=ClassificationResult.silent(self.labels, diagnostic, strength),
                signal_strength=strength,
            )

        return GateDecision(samples=normalized, signal_strength=strength)
