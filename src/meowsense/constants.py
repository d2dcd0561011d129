"""Centralized constants and configuration loader.

This module provides access to configuration values and sensible defaults
for every processing constant used by the pipeline. Values are loaded from
config/config.yaml when available, otherwise defaults are used. The
defaults must match the feature settings the classifier was trained with.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

# Path to the default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "config.yaml"

# Class order is the order the model was trained on. Index 0 is background.
DEFAULT_CLASSES: Tuple[Tuple[str, str], ...] = (
    ("Environment", "Environment Sounds"),
    ("Growl", "I'm angry. Get away from me!"),
    ("Hissing", "I feel threatened and scared. Leave me alone!"),
    ("Satisfied", "I am super satisfied! I love you!"),
    ("Attention", "Pet me! I want to play with you"),
    ("Isolation", "I feel lonely. Where are you?"),
    ("Hungry", "I'm hungry! Feed me now, please!"),
)


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. Uses default if None.

    Returns:
        Configuration dictionary.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    try:
        if path.exists():
            with open(path, "r") as f:
                return yaml.safe_load(f) or {}
        if config_path:
            logger.warning(f"Config file not found: {path}")
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")

    return {}


def _get_nested(config: Dict, *keys: str, default: Any = None) -> Any:
    """Get nested config value with default fallback."""
    value = config
    for key in keys:
        if isinstance(value, dict):
            value = value.get(key)
        else:
            return default
        if value is None:
            return default
    return value


# ============================================================
# Audio Processing Constants
# ============================================================

@dataclass(frozen=True)
class AudioProcessingConfig:
    """Feature pipeline constants."""
    # Rate every clip is resampled to before analysis
    target_sample_rate: int = 22050

    # Framing and FFT
    n_fft: int = 2048
    frame_size: int = 2048
    hop_length: int = 512

    # Mel filterbank
    n_mels: int = 128
    fmin: float = 0.0
    fmax: float = 8000.0

    # Fixed model input width in frames
    target_frame_count: int = 174

    # Mean normalized amplitude below which a clip counts as silent
    signal_strength_threshold: float = 0.001
    log_epsilon: float = 1e-10

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "AudioProcessingConfig":
        """Create from config dictionary."""
        ap = _get_nested(config, "audio_processing") or {}
        features = ap.get("features", {}) or {}
        n_fft = features.get("n_fft", 2048)

        return cls(
            target_sample_rate=ap.get("target_sample_rate", 22050),
            n_fft=n_fft,
            frame_size=features.get("frame_size", n_fft),
            hop_length=features.get("hop_length", 512),
            n_mels=features.get("n_mels", 128),
            fmin=float(features.get("fmin", 0.0)),
            fmax=float(features.get("fmax", 8000.0)),
            target_frame_count=features.get("target_frame_count", 174),
            signal_strength_threshold=ap.get("signal_strength_threshold", 0.001),
            log_epsilon=features.get("log_epsilon", 1e-10),
        )


# ============================================================
# Confidence Enhancement Constants
# ============================================================

@dataclass(frozen=True)
class EnhancementConfig:
    """Post-softmax confidence recalibration constants."""
    enabled: bool = True

    # Aggressive branch: top probability and margin over the runner-up
    min_top: float = 0.2
    min_margin: float = 0.02
    strong_top: float = 0.3
    aggressive_boost: float = 2.0
    aggressive_boost_high: float = 2.5
    aggressive_cap: float = 0.92

    # Gentle branch for modestly confident predictions
    gentle_min_top: float = 0.15
    gentle_boost: float = 1.5
    gentle_cap: float = 0.80

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "EnhancementConfig":
        """Create from config dictionary."""
        en = _get_nested(config, "enhancement") or {}
        aggressive = en.get("aggressive", {}) or {}
        gentle = en.get("gentle", {}) or {}

        return cls(
            enabled=en.get("enabled", True),
            min_top=aggressive.get("min_top", 0.2),
            min_margin=aggressive.get("min_margin", 0.02),
            strong_top=aggressive.get("strong_top", 0.3),
            aggressive_boost=aggressive.get("boost", 2.0),
            aggressive_boost_high=aggressive.get("boost_high", 2.5),
            aggressive_cap=aggressive.get("cap", 0.92),
            gentle_min_top=gentle.get("min_top", 0.15),
            gentle_boost=gentle.get("boost", 1.5),
            gentle_cap=gentle.get("cap", 0.80),
        )


# ============================================================
# Model Constants
# ============================================================

@dataclass(frozen=True)
class ModelConfig:
    """Classifier model location and output convention."""
    path: Optional[str] = None
    # Set when the exported graph already ends in a softmax layer
    outputs_probabilities: bool = False

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ModelConfig":
        """Create from config dictionary."""
        model = _get_nested(config, "model") or {}

        return cls(
            path=model.get("path"),
            outputs_probabilities=model.get("outputs_probabilities", False),
        )


def _classes_from_config(config: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Read the ordered class list, falling back to the built-in table."""
    classes = _get_nested(config, "classes")
    if not classes:
        return list(DEFAULT_CLASSES)

    entries = []
    for entry in classes:
        if isinstance(entry, dict):
            label = entry["label"]
            entries.append((label, entry.get("phrase", label)))
        else:
            entries.append((str(entry), str(entry)))
    return entries


# ============================================================
# Global Config Instance (lazy loaded)
# ============================================================

class Config:
    """Global configuration singleton."""

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load()
        return cls._instance

    def _load(self, config_path: Optional[Path] = None) -> None:
        """Load configuration from file."""
        self._config = load_config(config_path)
        self._config_path = config_path
        # Reset cached configs
        self._audio_processing: Optional[AudioProcessingConfig] = None
        self._enhancement: Optional[EnhancementConfig] = None
        self._model: Optional[ModelConfig] = None
        self._labels = None

    def reload(self, config_path: Optional[Path] = None) -> None:
        """Reload configuration from file."""
        self._load(config_path)

    @property
    def audio_processing(self) -> AudioProcessingConfig:
        """Get audio processing config."""
        if self._audio_processing is None:
            self._audio_processing = AudioProcessingConfig.from_config(self._config)
        return self._audio_processing

    @property
    def enhancement(self) -> EnhancementConfig:
        """Get confidence enhancement config."""
        if self._enhancement is None:
            self._enhancement = EnhancementConfig.from_config(self._config)
        return self._enhancement

    @property
    def model(self) -> ModelConfig:
        """Get model config."""
        if self._model is None:
            self._model = ModelConfig.from_config(self._config)
        return self._model

    @property
    def labels(self):
        """Get the class label table."""
        if self._labels is None:
            from .audio.types import ClassLabelTable
            self._labels = ClassLabelTable.from_pairs(_classes_from_config(self._config))
        return self._labels

    def get(self, *keys: str, default: Any = None) -> Any:
        """Get a config value by key path."""
        return _get_nested(self._config, *keys, default=default)


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()


# Convenience accessors
def get_audio_processing_config() -> AudioProcessingConfig:
    """Get audio processing configuration."""
    return get_config().audio_processing


def get_enhancement_config() -> EnhancementConfig:
    """Get confidence enhancement configuration."""
    return get_config().enhancement


def get_model_config() -> ModelConfig:
    """Get model configuration."""
    return get_config().model


def get_label_table():
    """Get the ordered class label table."""
    return get_config().labels
