"""Pytest configuration and fixtures."""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

CAPTURE_RATE = 44100
N_CLASSES = 7


@pytest.fixture(autouse=True)
def reset_global_config():
    """Drop the configuration singleton so tests never leak config reloads."""
    yield
    from meowsense.constants import Config
    Config._instance = None


@pytest.fixture
def capture_rate():
    return CAPTURE_RATE


@pytest.fixture
def silent_clip():
    """Create a silent clip (3 seconds at 44100 Hz)."""
    return np.zeros(3 * CAPTURE_RATE, dtype=np.float32)


@pytest.fixture
def tone_clip():
    """Create a 440 Hz sine tone (3 seconds at 44100 Hz, amplitude 0.5)."""
    t = np.arange(3 * CAPTURE_RATE) / CAPTURE_RATE
    return (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)


@pytest.fixture
def noise_clip():
    """Create a white noise clip (1 second at 44100 Hz)."""
    rng = np.random.default_rng(42)
    return (0.3 * rng.standard_normal(CAPTURE_RATE)).astype(np.float32)


@pytest.fixture
def labels():
    """Default class label table."""
    from meowsense.audio import ClassLabelTable
    from meowsense.constants import DEFAULT_CLASSES
    return ClassLabelTable.from_pairs(DEFAULT_CLASSES)


@pytest.fixture
def audio_config():
    """Default feature pipeline configuration."""
    from meowsense.constants import AudioProcessingConfig
    return AudioProcessingConfig()


@pytest.fixture
def recording_model():
    """Stand-in model that records every input tensor it receives."""
    from meowsense.audio import CallableAdapter

    calls = []

    def fn(tensor):
        calls.append(np.array(tensor))
        return np.linspace(-1.0, 1.0, N_CLASSES)

    adapter = CallableAdapter(fn, num_classes=N_CLASSES, name="recording")
    adapter.calls = calls
    return adapter


@pytest.fixture
def make_classifier(labels, audio_config):
    """Factory for classifiers with default tables and a given adapter."""
    from meowsense.audio import SoundClassifier
    from meowsense.constants import EnhancementConfig

    def factory(adapter=None, enhancement=None, config=None):
        return SoundClassifier(
            adapter=adapter,
            labels=labels,
            config=config or audio_config,
            enhancement=enhancement or EnhancementConfig(),
        )

    return factory
