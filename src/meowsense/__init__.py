"""meowsense - Main Package.

This package turns short mono audio clips into cat-vocalization context
classifications: signal conditioning, mel-spectrogram feature extraction,
model inference adapters and confidence postprocessing.
"""

__version__ = "0.1.0"
__author__ = "meowsense developers"

from . import audio
from .audio import ClassificationResult, SoundClassifier

__all__ = ["audio", "ClassificationResult", "SoundClassifier", "__version__"]
