"""Command-line interface for facepath."""

import argparse
import logging
import sys

# Loggers of optional backends that are chatty at INFO
_NOISY_LOGGERS = ("onnxruntime", "insightface", "matplotlib", "PIL")


def configure_log_levels(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if not verbose:
        logging.getLogger("facepath.diagnostics").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="facepath",
        description="FacePath - face detection and attribute analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  facepath process portrait.jpg                        # Age + gender
  facepath process clip.mp4 --attributes age,emotion   # Pick attributes
  facepath process clip.mp4 --anonymize blur -o out.jsonl
  facepath process --camera 0 --detector ssd           # Live camera
  facepath info                                        # Available components
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # process command
    process_parser = subparsers.add_parser(
        "process",
        help="Analyze faces in an image, video or camera stream",
        description="Run the face pipeline and write one JSON object per frame.",
    )
    process_parser.add_argument("path", nargs="?", help="Image or video file")
    process_parser.add_argument("--camera", type=int, metavar="N", help="Camera device index")
    process_parser.add_argument("--config", type=str, metavar="PATH", help="Pipeline config YAML file")
    process_parser.add_argument("--detector", type=str, help="Detector variant (see 'facepath info')")
    process_parser.add_argument(
        "--attributes", type=str, metavar="KINDS",
        help="Comma-separated attribute kinds (default: age,gender)",
    )
    process_parser.add_argument(
        "--anonymize", choices=["blur", "pixelate", "blackout", "overlay"],
        help="Produce anonymized face crops",
    )
    process_parser.add_argument("--min-quality", type=float, help="Quality threshold in [0, 1]")
    process_parser.add_argument(
        "--exclude-low-quality", action="store_true",
        help="Drop faces below --min-quality instead of flagging them",
    )
    process_parser.add_argument("--workers", type=int, help="Worker threads")
    process_parser.add_argument("--max-in-flight", type=int, help="Max frames in flight")
    process_parser.add_argument("--cache-capacity", type=int, help="Result cache entries")
    process_parser.add_argument(
        "--cache-file", type=str, metavar="PATH",
        help="Load the result cache from PATH if present and save it after the run",
    )
    process_parser.add_argument("--fps", type=float, default=0, help="Video sampling FPS (default: every frame)")
    process_parser.add_argument("--output", "-o", type=str, help="Output JSONL file (default: stdout)")
    process_parser.add_argument("--include-crops", action="store_true", help="Embed anonymized crops as base64 PNG")
    process_parser.add_argument("--models-dir", type=str, metavar="DIR", help="Model directory")
    process_parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show available detectors, attributes and model locations",
    )
    info_parser.add_argument("--models-dir", type=str, metavar="DIR", help="Model directory")
    info_parser.add_argument("--verbose", "-v", action="store_true", help="Show optional backend status")

    return parser


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    configure_log_levels(getattr(args, "verbose", False))

    from facepath.cli import commands

    if args.command == "process":
        return commands.run_process(args)
    if args.command == "info":
        return commands.run_info(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
