"""Command line interface.

    python -m qrdx detect IMAGE [options]
    python -m qrdx finder IMAGE [options]

--config, --log-level, --worker-mode and --json may appear before or after
the subcommand.

Exit status: 0 when a QR code (or finder triplet) is found, 1 when not,
2 on usage errors.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .config.settings import load_config
from .core.constants import APP_NAME, VERSION
from .core.entities import DetectionProgress
from .core.exceptions import ConfigError, InputError, ValidationError
from .core.logging_config import configure_logging
from .services.engine import DetectionEngine
from .utils.image_utils import load_image

EXIT_FOUND = 0
EXIT_NOT_FOUND = 1
EXIT_USAGE = 2

def _add_shared_options(parser: argparse.ArgumentParser, suppress: bool = False) -> None:
    """Flags accepted both before and after the subcommand.

    The subcommand copies use SUPPRESS defaults so they only override the
    root values when actually given.
    """
    def default(value):
        return argparse.SUPPRESS if suppress else value

    parser.add_argument("--config", default=default("qrdx.json"), help="JSON configuration file")
    parser.add_argument("--log-level", default=default(None), help="Override the configured log level")
    parser.add_argument("--worker-mode", choices=["process", "thread"], default=default(None),
                        help="Run the image backend in a subprocess or a thread")
    parser.add_argument("--json", action="store_true", default=default(False), help="Print machine-readable JSON")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qrdx", description="Check whether stylized QR codes are still readable.")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {VERSION}")
    _add_shared_options(parser)

    common = argparse.ArgumentParser(add_help=False)
    _add_shared_options(common, suppress=True)
    sub = parser.add_subparsers(dest="command", required=True)

    detect = sub.add_parser("detect", parents=[common], help="Decode QR codes in an image")
    detect.add_argument("image", help="Image file")
    detect.add_argument("--kernel-size", type=int, default=None, help="Morphology kernel size (odd, 3-51)")
    detect.add_argument("--no-opencv", action="store_true", help="Skip backend preprocessing strategies")
    detect.add_argument("--multiple", action="store_true", help="Keep going after the first code")
    detect.add_argument("--timeout-ms", type=int, default=None, help="Overall detection budget")
    detect.add_argument("--detailed", action="store_true", help="Attach finder patterns and image snapshots")
    detect.add_argument("--decoder", choices=["opencv", "zbar"], default=None)
    detect.add_argument("--region-scan", action="store_true",
                        help="Also scan rescaled copies, corners and sliding windows")
    detect.add_argument("--progress", action="store_true", help="Print progress to stderr")

    finder = sub.add_parser("finder", parents=[common], help="Locate the three finder patterns")
    finder.add_argument("image", help="Image file")
    return parser

def _print_progress(progress: DetectionProgress) -> None:
    print(f"[{progress.percent:3d}%] {progress.strategy_name}: {progress.message}", file=sys.stderr)

async def _detect(engine: DetectionEngine, args, image) -> int:
    options = engine.config.to_detection_options(
        kernel_size=args.kernel_size,
        use_opencv_backend=False if args.no_opencv else None,
        detect_multiple=True if args.multiple else None,
        timeout_ms=args.timeout_ms,
        return_detailed_info=True if args.detailed else None,
    )
    options.validate()
    results = await engine.detect(image, options, _print_progress if args.progress else None)

    if args.json:
        print(json.dumps([r.to_dict(include_images=args.detailed) for r in results], indent=2, ensure_ascii=False))
    elif not results:
        print("No QR code found")
    else:
        for r in results:
            p = r.position
            print(f"{r.decoded_text}")
            print(f"  strategy: {r.strategy_name}  box: x={p.x:.0f} y={p.y:.0f} w={p.width:.0f} h={p.height:.0f}")
            if r.finder_patterns:
                print(f"  finder patterns: {len(r.finder_patterns)}")
    return EXIT_FOUND if results else EXIT_NOT_FOUND

async def _finder(engine: DetectionEngine, args, image) -> int:
    candidates = await engine.locate_finder_patterns(image)
    if args.json:
        print(json.dumps([c.to_dict() for c in candidates], indent=2))
    else:
        for c in candidates:
            print(f"center=({c.center_x:.1f}, {c.center_y:.1f}) size={c.width}x{c.height} nesting={c.nesting_level}")
        if not candidates:
            print("No finder pattern candidates")
    return EXIT_FOUND if len(candidates) == 3 else EXIT_NOT_FOUND

async def _run(engine: DetectionEngine, args, image) -> int:
    try:
        if args.command == "detect":
            return await _detect(engine, args, image)
        return await _finder(engine, args, image)
    finally:
        engine.close()

def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.worker_mode:
        config.worker_mode = args.worker_mode
    if getattr(args, "decoder", None):
        config.decoder = args.decoder
    if getattr(args, "region_scan", False):
        config.region_scan = True
    configure_logging(log_level=args.log_level or config.log_level,
                      log_dir=config.log_dir,
                      enable_file_logging=config.log_to_file,
                      structured_logging=config.structured_logging)

    try:
        image = load_image(args.image)
        engine = DetectionEngine(config)
    except (InputError, ConfigError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return asyncio.run(_run(engine, args, image))
    except ValidationError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE

if __name__ == "__main__":
    sys.exit(main())
