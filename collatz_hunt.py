#!/usr/bin/env python3
"""
Collatz hunt: scan starting values for an orbit that never reaches 1.

Usage:
  collatz-hunt                         # resume from progress.txt, or start at 2^68
  collatz-hunt 1000 250                # start at 1000, check 250 values
  collatz-hunt --start 2^80 --no-resume
  collatz-hunt --random -v             # random 2000-bit draws, live orbit display
  collatz-hunt --width 128             # emulate a 128-bit scanner (overflow = runaway)

The checkpoint file always holds the last recorded position; rerunning
with resume (the default) continues right after it. A finding is written
to the solution file as `<TAG> <start>` and stops the scan.

Exit status: 0 when the scan stops normally or is interrupted, 1 when the
checkpoint or solution file cannot be written, 2 on bad arguments.
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path

from collatz_scan import ScanOptions, ScanState, Scanner
from collatz_view import ViewChannel, ViewThread

logger = logging.getLogger("collatz")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DEFAULT_LOG_FILE = "collatz_hunt.log"

_POWER_RE = re.compile(r"(\d+)\s*(?:\*\*|\^)\s*(\d+)")


def parse_bigint(text: str) -> int:
    """Decimal, `0x` hex, `a^b` / `a**b`, underscores allowed."""
    s = text.strip().lower().replace("_", "")
    try:
        if s.startswith("0x"):
            value = int(s, 16)
        else:
            m = _POWER_RE.fullmatch(s)
            value = pow(int(m.group(1)), int(m.group(2))) if m else int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {text!r}")
    return value


def _positive(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {text!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collatz-hunt",
        description="Scan Collatz starting values for nontrivial cycles or runaway orbits",
    )
    parser.add_argument("numbers", nargs="*", metavar="N",
                        help="Start value, then count (flags take precedence)")
    parser.add_argument("-s", "--start", type=parse_bigint, default=None,
                        help="First starting value (default: resume, else 2^68)")
    parser.add_argument("-n", "--count", type=parse_bigint, default=None,
                        help="Number of starting values to check (default: unbounded)")
    parser.add_argument("--resume", dest="resume", action="store_true", default=True,
                        help="Continue after the checkpointed value (default)")
    parser.add_argument("--no-resume", dest="resume", action="store_false",
                        help="Ignore the checkpoint file")
    parser.add_argument("-o", "--output", "--progress", dest="output", type=Path,
                        default=Path("progress.txt"),
                        help="Checkpoint file (default: progress.txt)")
    parser.add_argument("--solution", type=Path, default=Path("solution.txt"),
                        help="Solution file (default: solution.txt)")
    parser.add_argument("-pi", "--progress-interval", type=_positive, default=1000,
                        help="Checkpoint every K values (default: 1000)")
    parser.add_argument("--random", action="store_true",
                        help="Draw starting values at random from [2^68, 2^2000-1]")
    parser.add_argument("-v", "--visualize", action="store_true",
                        help="Show the live orbit display")
    parser.add_argument("--viz-sample-interval", type=_positive, default=1000,
                        help="Send every K-th start to the display (default: 1000)")
    parser.add_argument("--viz-history", type=_positive, default=512,
                        help="Orbit samples kept on screen (default: 512)")
    parser.add_argument("--stats-csv", type=Path, default=None,
                        help="Write scan telemetry to this CSV file")
    parser.add_argument("--width", type=_positive, default=None,
                        help="Emulate a fixed-width scanner of BITS bits")
    parser.add_argument("--log-file", type=Path, default=None,
                        help=f"Log to this file (default with -v: {DEFAULT_LOG_FILE})")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


def options_from_args(
    parser: argparse.ArgumentParser, args: argparse.Namespace
) -> ScanOptions:
    start = args.start
    count = args.count
    # Bare numbers fill in whatever the flags left open: start first, then count
    for text in args.numbers:
        try:
            value = parse_bigint(text)
        except argparse.ArgumentTypeError as exc:
            parser.error(str(exc))
        if start is None:
            start = value
        elif count is None:
            count = value
        else:
            parser.error(f"unexpected argument: {text}")

    return ScanOptions(
        start=start,
        count=count,
        resume=args.resume,
        checkpoint_path=args.output,
        solution_path=args.solution,
        progress_interval=args.progress_interval,
        random_mode=args.random,
        visualization_enabled=args.visualize,
        visualization_sample_interval=args.viz_sample_interval,
        visualization_max_history=args.viz_history,
        stats_path=args.stats_csv,
        width=args.width,
    )


_installed: list[logging.Handler] = []


def reset_logging() -> None:
    """Detach and close the handlers installed by setup_logging()."""
    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()


def setup_logging(debug: bool = False, log_file: Path | None = None) -> None:
    """Log to stderr, or to `log_file` with only errors echoed to stderr."""
    reset_logging()
    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stderr)
    handlers: list[logging.Handler] = [console]
    if log_file is not None:
        console.setLevel(logging.ERROR)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
        _installed.append(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def main(argv: list[str] | None = None) -> int:
    if hasattr(sys, "set_int_max_str_digits"):
        sys.set_int_max_str_digits(0)

    parser = build_parser()
    args = parser.parse_args(argv)
    options = options_from_args(parser, args)

    setup_logging(args.debug, args.log_file)

    if options.random_mode and options.start is not None:
        logger.debug("Random mode ignores the explicit start %d", options.start)

    channel: ViewChannel | None = None
    view: ViewThread | None = None
    if options.visualization_enabled:
        channel = ViewChannel()
        view = ViewThread(channel, options.visualization_max_history)
        view.start()
        # Log to a file only while the display owns the terminal
        if view.wait_settled() and args.log_file is None:
            setup_logging(args.debug, Path(DEFAULT_LOG_FILE))

    try:
        result = Scanner(options, channel).run()
        if result.state is ScanState.FOUND:
            logger.warning("Finding recorded in %s", options.solution_path)
        if view is not None and view.is_alive():
            # Keep the display usable until it is closed or we are interrupted
            logger.info("Scan finished; press q in the display to exit")
            view.join()
    except OSError as exc:
        if view is not None:
            view.close()
        logger.error("error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if view is not None:
            view.close()
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
