"""Sound classification."""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from ..constants import (
    AudioProcessingConfig,
    EnhancementConfig,
    get_audio_processing_config,
    get_config,
    get_label_table,
)
from ..exceptions import ConfigurationError, InferenceError, SpectrogramError
from .features import FeatureExtractor
from .inference import InferenceAdapter, load_adapter
from .postprocessing import Postprocessor
from .preprocessing import AudioPreprocessor, SignalGate
from .types import AudioSignal, ClassificationResult, ClassLabelTable, FeatureMatrix

logger = logging.getLogger(__name__)

AudioInput = Union[np.ndarray, AudioSignal, str, Path]


class SoundClassifier:
    """Classify one audio clip at a time with a fixed-input-shape model.

    A classifier holds no per-call state, so one instance may serve
    concurrent calls. The mel filterbank and label table it shares are
    read-only.
    """

    def __init__(
        self,
        adapter: Optional[InferenceAdapter] = None,
        model_path: Optional[Union[str, Path]] = None,
        labels: Optional[ClassLabelTable] = None,
        config: Optional[AudioProcessingConfig] = None,
        enhancement: Optional[EnhancementConfig] = None,
        outputs_probabilities: Optional[bool] = None,
    ):
        """Initialize sound classifier.

        Args:
            adapter: Inference backend (takes precedence over model_path)
            model_path: Path to trained model file
            labels: Ordered class table (uses global config if None)
            config: Feature pipeline config (uses global config if None)
            enhancement: Confidence enhancement config (uses global config if None)
            outputs_probabilities: Model output is already a distribution
                (defaults to the adapter's own setting)

        Raises:
            ConfigurationError: If the model cannot be loaded, the pipeline
                settings are unusable, or the model's output size cannot be
                measured or does not match the label table
        """
        self.config = config or get_audio_processing_config()
        self.labels = labels or get_label_table()

        if adapter is None and model_path is not None:
            adapter = load_adapter(model_path, outputs_probabilities=bool(outputs_probabilities))
        self.adapter = adapter

        self._preprocessor = AudioPreprocessor(self.config.target_sample_rate)
        self._gate = SignalGate(self.labels, self.config.signal_strength_threshold)
        self._feature_extractor = FeatureExtractor(self.config)

        if adapter is not None:
            self._check_output_size(adapter)

        if outputs_probabilities is None:
            outputs_probabilities = adapter.outputs_probabilities if adapter else False
        self._postprocessor = Postprocessor(self.labels, enhancement, outputs_probabilities)

    def _check_output_size(self, adapter: InferenceAdapter) -> None:
        """Fail fast if the model's output length differs from the label table.

        Backends that cannot report their output size are run once on a
        silent feature matrix to measure it.
        """
        n_outputs = adapter.num_classes
        if n_outputs is None:
            blank = FeatureMatrix(
                np.zeros((self.config.n_mels, self.config.target_frame_count))
            )
            try:
                n_outputs = adapter.predict(blank).size
            except InferenceError as e:
                raise ConfigurationError(
                    f"Could not determine {adapter.name} output size: {e}"
                ) from e
            logger.debug(f"Measured {n_outputs} outputs from {adapter.name}")

        if n_outputs != len(self.labels):
            raise ConfigurationError(
                f"Model has {n_outputs} outputs but the label table "
                f"has {len(self.labels)} classes"
            )

    @classmethod
    def from_config(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        model_path: Optional[Union[str, Path]] = None,
        enhancement_enabled: Optional[bool] = None,
    ) -> "SoundClassifier":
        """Build a classifier from the YAML configuration.

        Args:
            config_path: Config file to load (keeps the current one if None)
            model_path: Overrides the configured model path
            enhancement_enabled: Overrides the configured enhancement switch
        """
        cfg = get_config()
        if config_path is not None:
            cfg.reload(Path(config_path))

        enhancement = cfg.enhancement
        if enhancement_enabled is not None:
            enhancement = replace(enhancement, enabled=enhancement_enabled)

        return cls(
            model_path=model_path or cfg.model.path,
            labels=cfg.labels,
            config=cfg.audio_processing,
            enhancement=enhancement,
            outputs_probabilities=cfg.model.outputs_probabilities,
        )

    @property
    def is_loaded(self) -> bool:
        """Check if a model is attached."""
        return self.adapter is not None

    @property
    def model_type(self) -> Optional[str]:
        """Get attached backend name."""
        return self.adapter.name if self.adapter else None

    @property
    def classes(self) -> Tuple[str, ...]:
        return self.labels.labels

    @property
    def filterbank(self):
        return self._feature_extractor.filterbank

    def _to_signal(self, audio: AudioInput, sr: Optional[float]) -> AudioSignal:
        if isinstance(audio, AudioSignal):
            return audio
        if isinstance(audio, (str, Path)):
            return self._preprocessor.load(audio)
        if sr is None:
            sr = self.config.target_sample_rate
        return AudioSignal(audio, sr)

    def _extract(
        self,
        signal: AudioSignal,
    ) -> Tuple[Union[FeatureMatrix, ClassificationResult], Optional[float]]:
        """Run resample, gate and feature extraction for one clip."""
        samples = self._preprocessor.resample(signal)

        decision = self._gate.gate(samples)
        if not decision.should_proceed:
            return decision.result, decision.signal_strength

        try:
            features = self._feature_extractor.extract(decision.samples)
        except SpectrogramError as e:
            logger.warning(f"Invalid spectrogram: {e}")
            stub = ClassificationResult.invalid(
                self.labels,
                f"Invalid spectrogram: {e}.",
                decision.signal_strength,
            )
            return stub, decision.signal_strength

        logger.debug(
            f"Features {features.shape} from {features.frame_count} frames, "
            f"range [{features.values.min():.1f}, {features.values.max():.1f}] dB"
        )
        return features, decision.signal_strength

    def extract_features(
        self,
        audio: AudioInput,
        sr: Optional[float] = None,
    ) -> Union[FeatureMatrix, ClassificationResult]:
        """Compute the model input for a clip without running the model.

        Args:
            audio: Samples, an AudioSignal, or a path to an audio file
            sr: Sample rate of raw samples (uses the target rate if None)

        Returns:
            The feature matrix, or the stub result when the clip short-circuits
        """
        features, _ = self._extract(self._to_signal(audio, sr))
        return features

    def classify(
        self,
        audio: AudioInput,
        sr: Optional[float] = None,
    ) -> ClassificationResult:
        """Classify a sound.

        Args:
            audio: Samples, an AudioSignal, or a path to an audio file
            sr: Sample rate of raw samples (uses the target rate if None)

        Returns:
            Classification result

        Raises:
            InferenceError: If the model fails or no model is attached
        """
        return self.classify_signal(self._to_signal(audio, sr))

    def classify_signal(self, signal: AudioSignal) -> ClassificationResult:
        """Run the full pipeline on one signal."""
        features, strength = self._extract(signal)
        if isinstance(features, ClassificationResult):
            return features
        return self.classify_features(features, strength, signal.duration)

    def classify_features(
        self,
        features: FeatureMatrix,
        signal_strength: Optional[float] = None,
        duration: Optional[float] = None,
    ) -> ClassificationResult:
        """Validate a feature matrix, run the model and postprocess.

        Args:
            features: Log-mel features of shape (n_mels, target_frame_count)
            signal_strength: Gate measurement, reported in the diagnostic
            duration: Clip duration in seconds, reported in the diagnostic

        Returns:
            Classification result, or the invalid-data stub when the matrix
            holds NaN or infinite values (the model is not called)

        Raises:
            InferenceError: If the model fails or no model is attached
        """
        expected = (self.config.n_mels, self.config.target_frame_count)
        if features.shape != expected:
            raise ValueError(f"Feature matrix shape {features.shape}, expected {expected}")

        # Counted in the model's input type so float32 overflow is caught too
        bad = features.count_non_finite(self.adapter.input_dtype if self.adapter else None)
        if bad:
            logger.warning(f"Rejecting feature matrix with {bad} non-finite values")
            return ClassificationResult.invalid(
                self.labels,
                f"Invalid feature values: {bad} of {features.values.size} cells are "
                f"NaN or infinite; input rejected before inference.",
                signal_strength,
            )

        if self.adapter is None:
            raise InferenceError("No inference model loaded")

        logits = self.adapter.predict(features)
        if logits.size != len(self.labels):
            raise InferenceError(
                f"Model returned {logits.size} scores for {len(self.labels)} classes"
            )

        try:
            return self._postprocessor.classify(logits, signal_strength, duration)
        except ValueError as e:
            raise InferenceError(f"Unusable model output: {e}") from e

    def classify_file(self, audio_path: Union[str, Path]) -> ClassificationResult:
        """Convenience method to classify an audio file."""
        return self.classify(audio_path)

    def close(self) -> None:
        """Release the model backend."""
        if self.adapter is not None:
            self.adapter.close()
