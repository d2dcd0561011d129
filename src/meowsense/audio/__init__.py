"""Audio processing module.

Contains:
- AudioPreprocessor: Audio loading and resampling
- SignalGate: Peak normalization and silence short-circuit
- FeatureExtractor: Log-mel feature extraction on a shared MelFilterbank
- InferenceAdapter: Model backends (TFLite, Keras, ONNX, callable)
- Postprocessor: Softmax, confidence enhancement and result assembly
- SoundClassifier: The end-to-end classification pipeline
"""

from .preprocessing import AudioPreprocessor, SignalGate
from .features import FeatureExtractor, MelFilterbank, get_filterbank
from .inference import (
    CallableAdapter,
    InferenceAdapter,
    KerasAdapter,
    ONNXAdapter,
    TFLiteAdapter,
    load_adapter,
)
from .postprocessing import Postprocessor, enhance_confidence, softmax
from .classifier import SoundClassifier
from .types import (
    AudioSignal,
    ClassificationResult,
    ClassLabel,
    ClassLabelTable,
    FeatureMatrix,
    GateDecision,
    ResultStatus,
)

__all__ = [
    "AudioPreprocessor",
    "SignalGate",
    "FeatureExtractor",
    "MelFilterbank",
    "get_filterbank",
    "InferenceAdapter",
    "CallableAdapter",
    "TFLiteAdapter",
    "KerasAdapter",
    "ONNXAdapter",
    "load_adapter",
    "Postprocessor",
    "enhance_confidence",
    "softmax",
    "SoundClassifier",
    "AudioSignal",
    "ClassificationResult",
    "ClassLabel",
    "ClassLabelTable",
    "FeatureMatrix",
    "GateDecision",
    "ResultStatus",
]
