"""Model inference backends.

The pipeline only needs one operation from a model: given a feature matrix,
return one raw score per class. Each backend wraps a runtime (TFLite, Keras,
ONNX, or a plain Python callable) behind that contract.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

import numpy as np

from ..exceptions import ConfigurationError, InferenceError
from .types import FeatureMatrix

logger = logging.getLogger(__name__)


class InferenceAdapter(ABC):
    """Abstract base class for classifier backends."""

    # Set when the model's last layer is already a softmax
    outputs_probabilities: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of the backend."""
        pass

    @property
    def num_classes(self) -> Optional[int]:
        """Return the output vector length, if the backend knows it."""
        return None

    @property
    def input_dtype(self):
        return np.float32

    @abstractmethod
    def _invoke(self, tensor: np.ndarray) -> np.ndarray:
        """Run the model on a 1 x bands x frames x 1 tensor."""
        pass

    def _release(self, tensor: np.ndarray) -> None:
        """Free backend resources tied to one input tensor."""
        pass

    @contextmanager
    def _model_input(self, features: FeatureMatrix) -> Iterator[np.ndarray]:
        """Build the input tensor and release it on every exit path."""
        tensor = features.to_tensor(self.input_dtype)
        try:
            yield tensor
        finally:
            self._release(tensor)

    def predict(self, features: FeatureMatrix) -> np.ndarray:
        """Return raw class scores for one feature matrix.

        Args:
            features: Fixed-shape log-mel features

        Returns:
            1-D float array with one score per class

        Raises:
            InferenceError: If the backend fails or returns unusable output
        """
        with self._model_input(features) as tensor:
            try:
                output = self._invoke(tensor)
            except InferenceError:
                raise
            except Exception as e:
                logger.error(f"{self.name} inference failed: {e}")
                raise InferenceError(f"{self.name} inference failed: {e}") from e

        scores = np.asarray(output, dtype=np.float64).reshape(-1)
        expected = self.num_classes
        if expected is not None and scores.size != expected:
            raise InferenceError(
                f"{self.name} returned {scores.size} scores, expected {expected}"
            )
        if not np.all(np.isfinite(scores)):
            raise InferenceError(f"{self.name} returned non-finite scores")
        return scores

    def close(self) -> None:
        """Release the underlying runtime."""
        pass

    def __enter__(self) -> "InferenceAdapter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class CallableAdapter(InferenceAdapter):
    """Wrap a Python callable taking the input tensor and returning scores."""

    def __init__(
        self,
        fn: Callable[[np.ndarray], np.ndarray],
        num_classes: Optional[int] = None,
        release: Optional[Callable[[np.ndarray], None]] = None,
        outputs_probabilities: bool = False,
        name: str = "callable",
    ):
        """Initialize callable adapter.

        Args:
            fn: Model function, tensor -> scores
            num_classes: Expected output length (unchecked if None)
            release: Called with each input tensor once inference is over
            outputs_probabilities: fn already returns a distribution
            name: Backend name used in logs and errors
        """
        self._fn = fn
        self._num_classes = num_classes
        self._release_fn = release
        self._name = name
        self.outputs_probabilities = outputs_probabilities

    @property
    def name(self) -> str:
        return self._name

    @property
    def num_classes(self) -> Optional[int]:
        return self._num_classes

    def _invoke(self, tensor: np.ndarray) -> np.ndarray:
        return self._fn(tensor)

    def _release(self, tensor: np.ndarray) -> None:
        if self._release_fn is not None:
            self._release_fn(tensor)


class TFLiteAdapter(InferenceAdapter):
    """Classifier backed by a TensorFlow Lite interpreter."""

    def __init__(self, model_path: Union[str, Path], outputs_probabilities: bool = False):
        """Load a .tflite model.

        Args:
            model_path: Path to the TFLite model
            outputs_probabilities: Model ends in a softmax layer
        """
        try:
            import tflite_runtime.interpreter as tflite
        except ImportError:
            try:
                import tensorflow.lite as tflite
            except ImportError as e:
                raise ConfigurationError(
                    "TFLite not installed. Install with: "
                    "pip install tflite-runtime or pip install tensorflow"
                ) from e

        self.outputs_probabilities = outputs_probabilities
        self._interpreter = tflite.Interpreter(model_path=str(model_path))
        self._interpreter.allocate_tensors()
        self._input_details = self._interpreter.get_input_details()
        self._output_details = self._interpreter.get_output_details()
        # One interpreter holds one set of tensors
        self._lock = threading.Lock()
        logger.info(f"Loaded TFLite model from {model_path}")

    @property
    def name(self) -> str:
        return "tflite"

    @property
    def num_classes(self) -> Optional[int]:
        return int(self._output_details[0]["shape"][-1])

    @property
    def input_dtype(self):
        return self._input_details[0]["dtype"]

    def _invoke(self, tensor: np.ndarray) -> np.ndarray:
        if self._interpreter is None:
            raise InferenceError("TFLite interpreter is closed")
        with self._lock:
            self._interpreter.set_tensor(self._input_details[0]["index"], tensor)
            self._interpreter.invoke()
            return self._interpreter.get_tensor(self._output_details[0]["index"])[0].copy()

    def close(self) -> None:
        self._interpreter = None


class KerasAdapter(InferenceAdapter):
    """Classifier backed by a Keras model."""

    def __init__(self, model_path: Union[str, Path], outputs_probabilities: bool = False):
        """Load a .h5 or .keras model.

        Args:
            model_path: Path to the Keras model
            outputs_probabilities: Model ends in a softmax layer
        """
        try:
            from tensorflow import keras
        except ImportError as e:
            raise ConfigurationError(
                "TensorFlow not installed. Install with: pip install tensorflow"
            ) from e

        self.outputs_probabilities = outputs_probabilities
        self._model = keras.models.load_model(str(model_path), compile=False)
        logger.info(f"Loaded Keras model from {model_path}")

    @property
    def name(self) -> str:
        return "keras"

    @property
    def num_classes(self) -> Optional[int]:
        return int(self._model.output_shape[-1])

    def _invoke(self, tensor: np.ndarray) -> np.ndarray:
        return self._model.predict(tensor, verbose=0)[0]


class ONNXAdapter(InferenceAdapter):
    """Classifier backed by an ONNX Runtime session."""

    def __init__(self, model_path: Union[str, Path], outputs_probabilities: bool = False):
        """Load a .onnx model.

        Args:
            model_path: Path to the ONNX model
            outputs_probabilities: Model ends in a softmax layer
        """
        try:
            import onnxruntime as ort
        except ImportError as e:
            raise ConfigurationError(
                "ONNX Runtime not installed. Install with: pip install onnxruntime"
            ) from e

        self.outputs_probabilities = outputs_probabilities
        self._session = ort.InferenceSession(str(model_path))
        self._input_name = self._session.get_inputs()[0].name
        logger.info(f"Loaded ONNX model from {model_path}")

    @property
    def name(self) -> str:
        return "onnx"

    @property
    def num_classes(self) -> Optional[int]:
        last = self._session.get_outputs()[0].shape[-1]
        # Symbolic dimensions come back as strings
        return last if isinstance(last, int) else None

    def _invoke(self, tensor: np.ndarray) -> np.ndarray:
        outputs = self._session.run(None, {self._input_name: tensor})
        return outputs[0][0]


BACKENDS = {
    ".tflite": TFLiteAdapter,
    ".h5": KerasAdapter,
    ".keras": KerasAdapter,
    ".onnx": ONNXAdapter,
}


def load_adapter(
    model_path: Union[str, Path],
    outputs_probabilities: bool = False,
) -> InferenceAdapter:
    """Load a model file with the backend matching its suffix.

    Args:
        model_path: Path to model file (.tflite, .h5, .keras or .onnx)
        outputs_probabilities: Model ends in a softmax layer

    Returns:
        Ready-to-use inference adapter

    Raises:
        ConfigurationError: If the file is missing or the format unsupported
    """
    path = Path(model_path)
    if not path.exists():
        raise ConfigurationError(f"Model file not found: {model_path}")

    suffix = path.suffix.lower()
    if suffix not in BACKENDS:
        raise ConfigurationError(
            f"Unsupported model format: {suffix}. "
            f"Available: {list(BACKENDS.keys())}"
        )

    try:
        return BACKENDS[suffix](path, outputs_probabilities=outputs_probabilities)
    except ConfigurationError:
        raise
    except Exception as e:
        logger.error(f"Failed to load model: {e}")
        raise ConfigurationError(f"Failed to load model {model_path}: {e}") from e
