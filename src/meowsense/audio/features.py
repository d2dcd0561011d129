"""Audio feature extraction.

Hand-rolled log-mel spectrogram: framing, Hann window, real FFT power
spectrum, triangular mel filterbank and per-clip relative dB scaling. Every
step must reproduce the transform the classifier was trained against.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import numpy as np

from ..constants import AudioProcessingConfig, get_audio_processing_config
from ..exceptions import ConfigurationError, SpectrogramError
from .types import FeatureMatrix

logger = logging.getLogger(__name__)


def is_power_of_two(n: int) -> bool:
    """Check if n is a positive power of two."""
    return isinstance(n, (int, np.integer)) and n > 0 and (n & (n - 1)) == 0


def hz_to_mel(freq):
    """Convert Hz to mels (HTK formula)."""
    return 2595.0 * np.log10(1.0 + np.asarray(freq, dtype=np.float64) / 700.0)


def mel_to_hz(mel):
    """Convert mels to Hz (HTK formula)."""
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window, w[i] = 0.5 * (1 - cos(2*pi*i / (size - 1)))."""
    return np.hanning(size)


def frame_signal(samples: np.ndarray, frame_size: int, hop_size: int) -> np.ndarray:
    """Slice a signal into overlapping frames.

    Args:
        samples: 1-D audio samples
        frame_size: Samples per frame
        hop_size: Samples between frame starts

    Returns:
        Array of shape (n_frames, frame_size). n_frames is 0 when the signal
        is shorter than one frame.
    """
    if frame_size <= 0 or hop_size <= 0:
        raise ValueError(f"Frame and hop size must be positive, got {frame_size}/{hop_size}")

    samples = np.asarray(samples, dtype=np.float64)
    n_frames = max(0, (samples.size - frame_size) // hop_size + 1)
    if n_frames == 0:
        return np.zeros((0, frame_size))

    # Zero tail so a frame running past the end reads silence
    padded = np.concatenate([samples, np.zeros(frame_size)])
    starts = np.arange(n_frames) * hop_size
    return padded[starts[:, np.newaxis] + np.arange(frame_size)[np.newaxis, :]]


def apply_window(frames: np.ndarray, window: np.ndarray) -> np.ndarray:
    """Return a new array of frames multiplied by the window."""
    return frames * window[np.newaxis, :]


def power_spectrum(frames: np.ndarray, n_fft: int) -> np.ndarray:
    """Squared-magnitude spectrum of each frame.

    Args:
        frames: Windowed frames, shape (n_frames, frame_size <= n_fft)
        n_fft: FFT size (power of two)

    Returns:
        Array of shape (n_frames, n_fft // 2 + 1) holding re^2 + im^2
    """
    n_bins = n_fft // 2 + 1
    if frames.shape[0] == 0:
        return np.zeros((0, n_bins))

    spectrum = np.fft.rfft(frames, n=n_fft, axis=-1)
    return spectrum.real ** 2 + spectrum.imag ** 2


def _triangle(freqs: np.ndarray, left: float, center: float, right: float) -> np.ndarray:
    """Triangle rising 0 -> 1 over [left, center] and falling 1 -> 0 over [center, right]."""
    rising = (freqs - left) / (center - left)
    falling = (right - freqs) / (right - center)
    return np.maximum(0.0, np.minimum(rising, falling))


@dataclass(frozen=True, eq=False)
class MelFilterbank:
    """Triangular mel filterbank over linear FFT bins.

    Rows are ordered by ascending centre frequency. Arrays are read-only,
    so one instance can be shared by concurrent classifications.
    """

    sample_rate: float
    n_fft: int
    n_mels: int
    fmin: float
    fmax: float
    # n_mels + 2 boundary frequencies: band m spans hz_points[m:m + 3]
    hz_points: np.ndarray
    weights: np.ndarray

    @classmethod
    def build(
        cls,
        sample_rate: float,
        n_fft: int,
        n_mels: int,
        fmin: float = 0.0,
        fmax: Optional[float] = None,
    ) -> "MelFilterbank":
        """Construct the filterbank.

        Args:
            sample_rate: Sample rate of the analysed signal
            n_fft: FFT size (power of two)
            n_mels: Number of mel bands
            fmin: Lowest band edge in Hz
            fmax: Highest band edge in Hz (Nyquist if None)

        Returns:
            A read-only MelFilterbank
        """
        if fmax is None:
            fmax = sample_rate / 2.0
        if sample_rate <= 0:
            raise ConfigurationError(f"Sample rate must be positive, got {sample_rate}")
        if not is_power_of_two(n_fft):
            raise ConfigurationError(f"FFT size must be a power of two, got {n_fft}")
        if n_mels <= 0:
            raise ConfigurationError(f"Number of mel bands must be positive, got {n_mels}")
        if fmin < 0 or fmin >= fmax:
            raise ConfigurationError(f"Invalid mel frequency range: {fmin}-{fmax} Hz")
        if fmax > sample_rate / 2.0:
            logger.warning(
                f"fmax {fmax} Hz is above Nyquist ({sample_rate / 2.0} Hz); "
                f"upper bands will be truncated"
            )

        mel_points = np.linspace(hz_to_mel(fmin), hz_to_mel(fmax), n_mels + 2)
        hz_points = mel_to_hz(mel_points)
        bin_freqs = np.arange(n_fft // 2 + 1) * sample_rate / n_fft

        weights = np.zeros((n_mels, bin_freqs.size))
        for band in range(n_mels):
            left, center, right = hz_points[band:band + 3]
            weights[band] = _triangle(bin_freqs, left, center, right)

        empty = int(np.count_nonzero(weights.max(axis=1) == 0))
        if empty:
            logger.warning(
                f"{empty} of {n_mels} mel bands cover no FFT bin; "
                f"consider fewer bands or a larger FFT"
            )

        hz_points.setflags(write=False)
        weights.setflags(write=False)
        logger.debug(
            f"Built mel filterbank: {n_mels} bands, {fmin}-{fmax} Hz, "
            f"n_fft={n_fft}, sr={sample_rate}"
        )
        return cls(
            sample_rate=sample_rate,
            n_fft=n_fft,
            n_mels=n_mels,
            fmin=fmin,
            fmax=fmax,
            hz_points=hz_points,
            weights=weights,
        )

    @property
    def n_bins(self) -> int:
        return self.weights.shape[1]

    @property
    def center_frequencies(self) -> np.ndarray:
        """Return the peak frequency of each band."""
        return self.hz_points[1:-1]

    def response(self, band: int, freqs) -> np.ndarray:
        """Evaluate one band's triangle at arbitrary frequencies."""
        left, center, right = self.hz_points[band:band + 3]
        return _triangle(np.asarray(freqs, dtype=np.float64), left, center, right)

    def apply(self, power_frames: np.ndarray) -> np.ndarray:
        """Map power spectra (n_frames, n_bins) to mel energies (n_frames, n_mels)."""
        return power_frames @ self.weights.T


@lru_cache(maxsize=8)
def get_filterbank(
    sample_rate: float,
    n_fft: int,
    n_mels: int,
    fmin: float,
    fmax: float,
) -> MelFilterbank:
    """Return the shared filterbank for a configuration, building it once."""
    return MelFilterbank.build(sample_rate, n_fft, n_mels, fmin, fmax)


class FeatureExtractor:
    """Extract fixed-shape log-mel features for classification."""

    def __init__(self, config: Optional[AudioProcessingConfig] = None):
        """Initialize feature extractor.

        Args:
            config: Pipeline configuration (uses global config if None)

        Raises:
            ConfigurationError: If the framing or filterbank settings are unusable
        """
        self.config = config or get_audio_processing_config()
        cfg = self.config

        if not is_power_of_two(cfg.n_fft):
            raise ConfigurationError(f"FFT size must be a power of two, got {cfg.n_fft}")
        if not 0 < cfg.frame_size <= cfg.n_fft:
            raise ConfigurationError(
                f"Frame size must be in (0, n_fft={cfg.n_fft}], got {cfg.frame_size}"
            )
        if cfg.hop_length <= 0:
            raise ConfigurationError(f"Hop length must be positive, got {cfg.hop_length}")
        if cfg.target_frame_count <= 0:
            raise ConfigurationError(
                f"Target frame count must be positive, got {cfg.target_frame_count}"
            )

        self.filterbank = get_filterbank(
            cfg.target_sample_rate, cfg.n_fft, cfg.n_mels, cfg.fmin, cfg.fmax,
        )
        self._window = hann_window(cfg.frame_size)
        self._window.setflags(write=False)

    @property
    def n_mels(self) -> int:
        return self.config.n_mels

    @property
    def target_frame_count(self) -> int:
        return self.config.target_frame_count

    def frames(self, samples: np.ndarray) -> np.ndarray:
        """Windowed frames, shape (n_frames, frame_size)."""
        raw = frame_signal(samples, self.config.frame_size, self.config.hop_length)
        return apply_window(raw, self._window)

    def power_spectra(self, samples: np.ndarray) -> np.ndarray:
        """Power spectrum of every windowed frame, shape (n_frames, n_fft // 2 + 1)."""
        return power_spectrum(self.frames(samples), self.config.n_fft)

    def assemble(
        self,
        power_frames: np.ndarray,
        target_frame_count: Optional[int] = None,
    ) -> FeatureMatrix:
        """Turn per-frame power spectra into the fixed-shape log-mel matrix.

        Args:
            power_frames: Power spectra, shape (n_frames, n_bins)
            target_frame_count: Output width (uses config if None)

        Returns:
            FeatureMatrix of shape (n_mels, target_frame_count). Values are dB
            relative to the clip's loudest cell; padding columns are 0.

        Raises:
            SpectrogramError: If frames exist but hold no finite positive energy
        """
        target = target_frame_count or self.config.target_frame_count
        n_frames = power_frames.shape[0]

        if n_frames == 0:
            logger.debug("No complete frame in signal; returning zero features")
            return FeatureMatrix(np.zeros((self.n_mels, target)), frame_count=0)

        # Non-finite cells stay non-finite and are rejected before inference
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            mel_spec = self.filterbank.apply(power_frames).T

            finite_positive = mel_spec[np.isfinite(mel_spec) & (mel_spec > 0)]
            if finite_positive.size == 0:
                raise SpectrogramError(
                    f"Mel spectrogram of {n_frames} frames has no finite positive energy"
                )
            max_power = float(finite_positive.max())
            logger.debug(f"Mel spectrogram: {n_frames} frames, peak power {max_power:.6g}")

            log_mel = 10.0 * np.log10(
                np.maximum(mel_spec, self.config.log_epsilon) / max_power
            )

        return FeatureMatrix(self.pad_or_truncate(log_mel, target), frame_count=n_frames)

    @staticmethod
    def pad_or_truncate(features: np.ndarray, target_frame_count: int) -> np.ndarray:
        """Pad or truncate the frame axis to target length.

        Args:
            features: Matrix of shape (bands, frames)
            target_frame_count: Target number of frames

        Returns:
            Matrix of shape (bands, target_frame_count), zero-padded on the right
        """
        n_frames = features.shape[1]
        if n_frames > target_frame_count:
            return features[:, :target_frame_count]
        elif n_frames < target_frame_count:
            padding = target_frame_count - n_frames
            return np.pad(features, ((0, 0), (0, padding)), mode="constant")
        return features

    def extract(self, samples: np.ndarray) -> FeatureMatrix:
        """Run framing, FFT, mel projection and scaling on normalized samples."""
        return self.assemble(self.power_spectra(samples))
