"""CLI entry point for meowsense.

Usage:
    meowsense classify FILE [--model PATH] [--config PATH] [--no-enhance] [--json]
    meowsense features FILE [--output OUT.npy] [--config PATH]
    meowsense info [--config PATH]
    meowsense test
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

from . import __version__

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _load_config(config_path):
    """Reload the global configuration from a file, if one was given."""
    from .constants import get_config

    config = get_config()
    if config_path:
        config.reload(Path(config_path))
    return config


def _load_signal(path: str):
    """Decode an audio file or exit."""
    from .audio import AudioPreprocessor

    try:
        return AudioPreprocessor().load(path)
    except Exception as e:
        logger.error(f"Could not load: {path} ({e})")
        sys.exit(1)


def cmd_classify(args):
    """Classify an audio file."""
    from .audio import SoundClassifier
    from .exceptions import ConfigurationError, InferenceError

    _load_config(args.config)

    try:
        classifier = SoundClassifier.from_config(
            model_path=args.model,
            enhancement_enabled=False if args.no_enhance else None,
        )
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    signal = _load_signal(args.file)

    try:
        result = classifier.classify_signal(signal)
    except InferenceError as e:
        logger.error(f"Classification failed: {e}")
        logger.info("Please try again with a different audio file")
        sys.exit(1)
    finally:
        classifier.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"{result.label}: {result.phrase} ({result.confidence}%)")
        if result.diagnostic:
            print()
            print(result.diagnostic)


def cmd_features(args):
    """Compute the model input for an audio file."""
    from .audio import ClassificationResult, SoundClassifier

    config = _load_config(args.config)
    classifier = SoundClassifier(labels=config.labels, config=config.audio_processing)

    signal = _load_signal(args.file)
    features = classifier.extract_features(signal)

    if isinstance(features, ClassificationResult):
        logger.warning(f"No features: {features.diagnostic}")
        sys.exit(1)

    values = features.values
    logger.info(f"Shape: {features.shape} ({features.frame_count} frames analysed)")
    logger.info(f"Range: [{values.min():.1f}, {values.max():.1f}] dB")

    if args.output:
        np.save(args.output, values)
        logger.info(f"Saved: {args.output}")


def cmd_info(args):
    """Show the active configuration."""
    config = _load_config(args.config)
    ap = config.audio_processing
    en = config.enhancement

    print(f"meowsense {__version__}")
    print()
    print("Feature pipeline:")
    print(f"  target sample rate:  {ap.target_sample_rate} Hz")
    print(f"  n_fft / frame / hop: {ap.n_fft} / {ap.frame_size} / {ap.hop_length}")
    print(f"  mel bands:           {ap.n_mels} ({ap.fmin:g}-{ap.fmax:g} Hz)")
    print(f"  target frames:       {ap.target_frame_count}")
    print(f"  strength threshold:  {ap.signal_strength_threshold}")
    print(f"Enhancement:           {'on' if en.enabled else 'off'}")
    print(f"Model:                 {config.model.path or '(none)'}")
    print()
    print("Classes:")
    for entry in config.labels:
        print(f"  {entry.index}: {entry.label} - {entry.phrase}")


def _expect(condition, message: str) -> None:
    """Fail a self-test check."""
    if not condition:
        raise RuntimeError(message)


def cmd_test(args):
    """Test pipeline components on synthetic audio."""
    from .audio import CallableAdapter, ResultStatus, SoundClassifier

    results = []
    capture_rate = 44100
    t = np.arange(3 * capture_rate) / capture_rate

    # Filterbank
    logger.info("[1/4] Mel filterbank...")
    try:
        classifier = SoundClassifier()
        fb = classifier.filterbank
        peaks = [fb.response(m, fb.center_frequencies[m])[()] for m in range(fb.n_mels)]
        _expect(np.allclose(peaks, 1.0), "band peaks are not 1.0")
        logger.info(f"  ✓ OK ({fb.n_mels} bands x {fb.n_bins} bins)")
        results.append(("Mel filterbank", True))
    except Exception as e:
        logger.info(f"  ✗ {e}")
        results.append(("Mel filterbank", False))

    # Silence
    logger.info("[2/4] Silence gate...")
    try:
        result = SoundClassifier().classify(np.zeros(t.size), capture_rate)
        _expect(
            result.status is ResultStatus.SILENT and result.confidence == 100,
            f"silence gave {result.status.value} at {result.confidence}%",
        )
        logger.info(f"  ✓ OK ({result.label})")
        results.append(("Silence gate", True))
    except Exception as e:
        logger.info(f"  ✗ {e}")
        results.append(("Silence gate", False))

    # Tone through a stand-in model
    logger.info("[3/4] Tone classification...")
    try:
        classifier = SoundClassifier()
        n_classes = len(classifier.labels)
        classifier = SoundClassifier(
            adapter=CallableAdapter(lambda x: np.zeros(n_classes), num_classes=n_classes),
        )
        result = classifier.classify(0.5 * np.sin(2 * np.pi * 440.0 * t), capture_rate)
        _expect(result.status is ResultStatus.CLASSIFIED, f"tone gave {result.status.value}")
        logger.info(f"  ✓ OK ({result.label}, {result.confidence}%)")
        results.append(("Tone classification", True))
    except Exception as e:
        logger.info(f"  ✗ {e}")
        results.append(("Tone classification", False))

    # Short clip
    logger.info("[4/4] Short clip padding...")
    try:
        classifier = SoundClassifier()
        features = classifier.extract_features(np.ones(100) * 0.5, capture_rate)
        expected = (classifier.config.n_mels, classifier.config.target_frame_count)
        _expect(
            features.shape == expected and not features.values.any(),
            f"short clip gave {features.shape}, expected zeros of {expected}",
        )
        logger.info(f"  ✓ OK {features.shape}")
        results.append(("Short clip padding", True))
    except Exception as e:
        logger.info(f"  ✗ {e}")
        results.append(("Short clip padding", False))

    # Summary
    passed = sum(1 for _, ok in results if ok)
    total = len(results)
    logger.info(f"\nResult: {passed}/{total} components OK")
    if passed != total:
        sys.exit(1)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="meowsense",
        description="Cat sound context classifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  meowsense classify meow.wav                 Classify with the configured model
  meowsense classify meow.wav -m model.onnx   Classify with another model
  meowsense features meow.wav -o meow.npy     Dump the model input
  meowsense info                              Show configuration and classes
  meowsense test                              Test pipeline components
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-d", "--debug", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # classify
    classify_p = subparsers.add_parser("classify", help="Classify an audio file")
    classify_p.add_argument("file", help="Audio file")
    classify_p.add_argument("-m", "--model", help="Model file (.tflite, .h5, .keras, .onnx)")
    classify_p.add_argument("-c", "--config", help="Config file")
    classify_p.add_argument("--no-enhance", action="store_true",
                            help="Report plain softmax probabilities")
    classify_p.add_argument("--json", action="store_true", help="Print result as JSON")

    # features
    features_p = subparsers.add_parser("features", help="Extract model input features")
    features_p.add_argument("file", help="Audio file")
    features_p.add_argument("-o", "--output", help="Save matrix to .npy file")
    features_p.add_argument("-c", "--config", help="Config file")

    # info
    info_p = subparsers.add_parser("info", help="Show configuration")
    info_p.add_argument("-c", "--config", help="Config file")

    # test
    subparsers.add_parser("test", help="Test components")

    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    commands = {
        "classify": cmd_classify,
        "features": cmd_features,
        "info": cmd_info,
        "test": cmd_test,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
