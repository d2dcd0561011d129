"""Tests for model inference backends."""

import sys
import types
from unittest.mock import patch

import pytest
import numpy as np


def _features(value=-10.0):
    from meowsense.audio import FeatureMatrix
    return FeatureMatrix(np.full((128, 174), value))


class FakeInterpreter:
    """Minimal stand-in for tflite_runtime.interpreter.Interpreter."""

    def __init__(self, model_path):
        self.model_path = model_path
        self.allocated = False
        self.inputs = []

    def allocate_tensors(self):
        self.allocated = True

    def get_input_details(self):
        return [{"index": 0, "dtype": np.float32, "shape": np.array([1, 128, 174, 1])}]

    def get_output_details(self):
        return [{"index": 1, "shape": np.array([1, 7])}]

    def set_tensor(self, index, tensor):
        self.inputs.append(tensor)

    def invoke(self):
        pass

    def get_tensor(self, index):
        return np.array([[0.0, 0.0, 4.0, 0.0, 0.0, 0.0, 0.0]], dtype=np.float32)


@pytest.fixture
def fake_tflite():
    """Install a fake tflite_runtime package."""
    interpreter = types.ModuleType("tflite_runtime.interpreter")
    interpreter.Interpreter = FakeInterpreter
    package = types.ModuleType("tflite_runtime")
    package.interpreter = interpreter

    with patch.dict(sys.modules, {
        "tflite_runtime": package,
        "tflite_runtime.interpreter": interpreter,
    }):
        yield interpreter


class TestCallableAdapter:
    """Test cases for CallableAdapter."""

    def test_tensor_layout(self):
        """Test the model receives a 1 x bands x frames x 1 float32 tensor."""
        from meowsense.audio import CallableAdapter

        seen = []
        adapter = CallableAdapter(lambda x: seen.append(x) or np.zeros(7), num_classes=7)
        scores = adapter.predict(_features())

        assert seen[0].shape == (1, 128, 174, 1)
        assert seen[0].dtype == np.float32
        assert np.all(seen[0] == -10.0)
        assert scores.shape == (7,)

    def test_release_after_success(self):
        """Test the input tensor is released once inference returns."""
        from meowsense.audio import CallableAdapter

        released = []
        adapter = CallableAdapter(lambda x: np.zeros(7), release=released.append)
        adapter.predict(_features())

        assert len(released) == 1
        assert released[0].shape == (1, 128, 174, 1)

    def test_release_after_failure(self):
        """Test the input tensor is released when the model raises."""
        from meowsense.audio import CallableAdapter
        from meowsense.exceptions import InferenceError

        def broken(tensor):
            raise RuntimeError("delegate crashed")

        released = []
        adapter = CallableAdapter(broken, release=released.append)

        with pytest.raises(InferenceError, match="delegate crashed"):
            adapter.predict(_features())
        assert len(released) == 1

    def test_failure_is_chained(self):
        """Test the backend error is kept as the cause."""
        from meowsense.audio import CallableAdapter
        from meowsense.exceptions import InferenceError

        def broken(tensor):
            raise MemoryError("out of memory")

        with pytest.raises(InferenceError) as excinfo:
            CallableAdapter(broken).predict(_features())
        assert isinstance(excinfo.value.__cause__, MemoryError)

    def test_wrong_output_length(self):
        """Test an output of the wrong size is an inference error."""
        from meowsense.audio import CallableAdapter
        from meowsense.exceptions import InferenceError

        adapter = CallableAdapter(lambda x: np.zeros(5), num_classes=7)

        with pytest.raises(InferenceError):
            adapter.predict(_features())

    def test_non_finite_output(self):
        """Test NaN scores are an inference error."""
        from meowsense.audio import CallableAdapter
        from meowsense.exceptions import InferenceError

        adapter = CallableAdapter(lambda x: np.full(7, np.nan), num_classes=7)

        with pytest.raises(InferenceError):
            adapter.predict(_features())

    def test_context_manager(self):
        """Test adapters close on context exit."""
        from meowsense.audio import CallableAdapter

        with CallableAdapter(lambda x: np.zeros(7)) as adapter:
            assert adapter.name == "callable"


class TestTFLiteAdapter:
    """Test cases for TFLiteAdapter with a fake interpreter."""

    def test_predict(self, fake_tflite, tmp_path):
        """Test the interpreter is fed and read back."""
        from meowsense.audio import TFLiteAdapter

        model = tmp_path / "model.tflite"
        model.write_bytes(b"\0")

        adapter = TFLiteAdapter(model)
        scores = adapter.predict(_features())

        assert adapter.name == "tflite"
        assert adapter.num_classes == 7
        assert adapter._interpreter.allocated
        assert adapter._interpreter.inputs[0].shape == (1, 128, 174, 1)
        assert int(np.argmax(scores)) == 2

    def test_closed_interpreter(self, fake_tflite, tmp_path):
        """Test predicting after close fails cleanly."""
        from meowsense.audio import TFLiteAdapter
        from meowsense.exceptions import InferenceError

        model = tmp_path / "model.tflite"
        model.write_bytes(b"\0")

        adapter = TFLiteAdapter(model)
        adapter.close()

        with pytest.raises(InferenceError):
            adapter.predict(_features())


class TestLoadAdapter:
    """Test cases for load_adapter."""

    def test_missing_file(self, tmp_path):
        """Test a missing model file is a configuration error."""
        from meowsense.audio import load_adapter
        from meowsense.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError, match="not found"):
            load_adapter(tmp_path / "missing.tflite")

    def test_unsupported_format(self, tmp_path):
        """Test an unknown suffix is a configuration error."""
        from meowsense.audio import load_adapter
        from meowsense.exceptions import ConfigurationError

        model = tmp_path / "model.pkl"
        model.write_bytes(b"\0")

        with pytest.raises(ConfigurationError, match="Unsupported"):
            load_adapter(model)

    def test_dispatch_by_suffix(self, fake_tflite, tmp_path):
        """Test .tflite files load through the TFLite backend."""
        from meowsense.audio import TFLiteAdapter, load_adapter

        model = tmp_path / "model.TFLITE"
        model.write_bytes(b"\0")

        adapter = load_adapter(model, outputs_probabilities=True)

        assert isinstance(adapter, TFLiteAdapter)
        assert adapter.outputs_probabilities

    def test_backend_load_failure(self, fake_tflite, tmp_path):
        """Test a runtime failure while loading is a configuration error."""
        from meowsense.audio import load_adapter
        from meowsense.exceptions import ConfigurationError

        model = tmp_path / "model.tflite"
        model.write_bytes(b"\0")

        with patch.object(FakeInterpreter, "allocate_tensors", side_effect=ValueError("corrupt")):
            with pytest.raises(ConfigurationError, match="corrupt"):
                load_adapter(model)
