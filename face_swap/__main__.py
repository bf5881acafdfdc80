"""Command line entry point: ``python -m face_swap``."""

import argparse
import logging
import sys
from pathlib import Path

from .config import FaceSwapConfig
from .errors import AcquisitionFailure
from .logging_utils import setup_logging

logger = logging.getLogger("face_swap")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="face_swap",
        description="Live face swap over a camera stream, with recording."
    )
    parser.add_argument("--camera", "-c", dest="camera_index", type=int,
                        help="Camera index (default 0)")
    parser.add_argument("--face", "-f", type=Path,
                        help="Source face image bound at startup")
    parser.add_argument("--width", dest="frame_width", type=int,
                        help="Requested capture width")
    parser.add_argument("--height", dest="frame_height", type=int,
                        help="Requested capture height")
    parser.add_argument("--output-dir", "-o", dest="output_dir", type=Path,
                        help="Directory for record-<millis> files")
    parser.add_argument("--model", dest="model_path", type=Path,
                        help="Path of face_landmarker.task (downloaded if missing)")
    parser.add_argument("--capture-fps", dest="capture_fps", type=float,
                        help="Recording sample rate (default 60)")
    parser.add_argument("--log-level", default="INFO",
                        help="Logging level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--log-file", type=Path,
                        help="Also write the log to this file")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, log_file=args.log_file)

    try:
        config = FaceSwapConfig.from_args(args)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    # Imported late so --help works without a display stack
    from .gl_app import run_face_swap

    try:
        run_face_swap(config, face_path=args.face)
    except AcquisitionFailure as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
