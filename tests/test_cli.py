"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest
import numpy as np


@pytest.fixture
def tone_wav(tmp_path, tone_clip, capture_rate):
    """Write the tone fixture to a WAV file."""
    sf = pytest.importorskip("soundfile")
    path = tmp_path / "tone.wav"
    sf.write(str(path), tone_clip, capture_rate)
    return path


class TestCLI:
    """Test cases for CLI commands."""

    def test_no_command_prints_help(self, capsys):
        """Test running without a command exits cleanly."""
        from meowsense.cli import main

        with pytest.raises(SystemExit) as excinfo:
            main([])

        assert excinfo.value.code == 0
        assert "classify" in capsys.readouterr().out

    def test_info(self, capsys):
        """Test info lists the pipeline settings and classes."""
        from meowsense.cli import main

        main(["info"])
        out = capsys.readouterr().out

        assert "22050 Hz" in out
        assert "2048 / 2048 / 512" in out
        assert "0: Environment - Environment Sounds" in out
        assert "6: Hungry" in out

    def test_self_test(self):
        """Test the built-in component checks pass."""
        from meowsense.cli import main

        main(["test"])

    def test_self_test_reports_failure(self):
        """Test a failing component check exits with an error."""
        from meowsense.audio import MelFilterbank
        from meowsense.cli import main

        with patch.object(MelFilterbank, "response", return_value=np.array(0.5)):
            with pytest.raises(SystemExit) as excinfo:
                main(["test"])

        assert excinfo.value.code == 1

    def test_expect_raises(self):
        """Test a failed check raises instead of relying on assert."""
        from meowsense.cli import _expect

        _expect(True, "unused")
        with pytest.raises(RuntimeError, match="bands"):
            _expect(False, "bands")

    def test_features_saves_matrix(self, tone_wav, tmp_path):
        """Test features writes the model input to a .npy file."""
        from meowsense.cli import main

        out = tmp_path / "tone.npy"
        main(["features", str(tone_wav), "-o", str(out)])

        values = np.load(out)
        assert values.shape == (128, 174)
        assert values.max() == 0.0

    def test_classify_missing_model(self, tone_wav, tmp_path):
        """Test a missing model file exits with an error."""
        from meowsense.cli import main

        with pytest.raises(SystemExit) as excinfo:
            main(["classify", str(tone_wav), "-m", str(tmp_path / "none.tflite")])

        assert excinfo.value.code == 1

    def test_classify_missing_audio(self, tmp_path):
        """Test an unreadable audio file exits with an error."""
        from meowsense.audio import CallableAdapter
        from meowsense.cli import main

        adapter = CallableAdapter(lambda x: np.zeros(7), num_classes=7)

        with patch("meowsense.audio.classifier.load_adapter", return_value=adapter):
            with pytest.raises(SystemExit) as excinfo:
                main(["classify", str(tmp_path / "missing.wav")])

        assert excinfo.value.code == 1

    def test_classify_json(self, tone_wav, capsys):
        """Test classify prints the result as JSON."""
        from meowsense.audio import CallableAdapter
        from meowsense.cli import main

        logits = np.log([0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.4])
        adapter = CallableAdapter(lambda x: logits, num_classes=7)

        with patch("meowsense.audio.classifier.load_adapter", return_value=adapter):
            main(["classify", str(tone_wav), "--json", "--no-enhance"])

        data = json.loads(capsys.readouterr().out)
        assert data["label"] == "Hungry"
        assert data["confidence"] == 40
        assert data["status"] == "classified"
        assert len(data["probabilities"]) == 7
