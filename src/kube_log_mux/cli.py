from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import re
import shlex
import signal
import sys
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from kube_log_mux import APP_NAME, __version__
from kube_log_mux.core.config import RunConfiguration, RuntimeSettings, resolve_runtime_settings, split_csv
from kube_log_mux.core.errors import KubeLogMuxError
from kube_log_mux.core.kubectl import check_required_binaries
from kube_log_mux.core.log_service import stream_logs, summary_lines
from kube_log_mux.core.models import RunSummary

LOGGER = logging.getLogger(__name__)

_TRUE = {"true", "t", "yes", "y", "1"}
_FALSE = {"false", "f", "no", "n", "0"}
_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]+")


def _parse_bool(s: str) -> bool:
    value = s.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f'"{s}" no boolean value (use true/false, yes/no, 1/0)')


def _configure_logging(verbose: bool) -> None:
    """Diagnostics go to stderr; stdout carries only the log stream."""
    level_name = os.getenv("KUBE_LOG_MUX_LOG_LEVEL", "WARNING").upper()
    level = logging.DEBUG if verbose else getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def generate_log_filename(args: Sequence[str], now: datetime | None = None) -> str:
    """Build `kube-log-mux-<args>-<YYYY-MM-DD-HH-MM-SS>.txt` from the command line."""
    now = now or datetime.now()
    words = _NON_ALNUM_RE.sub(" ", " ".join(args)).split()
    stamp = now.strftime("%Y-%m-%d-%H-%M-%S")
    if not words:
        return f"{APP_NAME}-{stamp}.txt"
    return f"{APP_NAME}-{'-'.join(words)}-{stamp}.txt"


def _resolve_save_path(save: str | None, args: Sequence[str]) -> Path | None:
    if save is None:
        return None
    filename = save.strip() or generate_log_filename(args)
    return Path(filename).resolve()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog=APP_NAME,
        usage=f"{APP_NAME} [option] -- <pod-query>",
        description="Download logs from one or more Kubernetes contexts.",
        epilog=f"Example:\n\t{APP_NAME} -- nginx",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--version", action="version", version=f"{APP_NAME} v{__version__}")
    p.add_argument(
        "-c",
        "--context",
        default="default",
        help='Context(s) separated by comma, or "all" for every kubectl context (default: default)',
    )
    p.add_argument(
        "-a",
        "--all-at-once",
        type=_parse_bool,
        default=False,
        metavar="BOOL",
        help="Gather logs from all contexts at once; heavier on the network (default: false)",
    )
    p.add_argument(
        "-s",
        "--skip-invalid-messages",
        type=_parse_bool,
        default=False,
        metavar="BOOL",
        help="Skip non-JSON messages returned by stern (default: false)",
    )
    p.add_argument(
        "-b",
        "--blank-line-after-entry",
        type=_parse_bool,
        default=False,
        metavar="BOOL",
        help="Blank line after each log entry (default: false)",
    )
    p.add_argument(
        "-i",
        "--include-container",
        default="all",
        help='Only include logs from these container(s), comma separated; "all" for every container',
    )
    p.add_argument(
        "-f",
        "--save",
        nargs="?",
        const="",
        default=None,
        metavar="FILENAME",
        help="Save logs to file; leave empty to auto generate the file name",
    )
    p.add_argument("-w", "--work-dir", default=None, help="Set working directory")
    p.add_argument(
        "-m",
        "--fix-up-messages",
        type=_parse_bool,
        default=True,
        metavar="BOOL",
        help="Remove redundant data like repeated timestamps from each entry (default: true)",
    )
    p.add_argument(
        "-p",
        "--pretty-print-objects",
        type=_parse_bool,
        default=False,
        metavar="BOOL",
        help="Pretty print JSON-like and Python-like objects (default: false)",
    )
    p.add_argument(
        "-t",
        "--since",
        default="1h",
        help="Return logs newer than a relative duration like 5s, 2m, or 3h (default: 1h)",
    )
    p.add_argument(
        "-r",
        "--space-after-message",
        type=_parse_bool,
        default=True,
        metavar="BOOL",
        help="Add a space character after each message (default: true)",
    )
    p.add_argument(
        "-d",
        "--stern-defaults",
        type=_parse_bool,
        default=True,
        metavar="BOOL",
        help="Pass --all-namespaces --output json --timestamps=short --since --timezone UTC to stern (default: true)",
    )
    p.add_argument("-g", "--follow", action="store_true", help="Wait for new messages")
    p.add_argument("-q", "--quiet", action="store_true", help="Do not output any log messages to stdout")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug diagnostics on stderr")
    p.add_argument("pod_query", nargs="*", help="Pod query and extra stern arguments (after --)")
    return p


def _set_work_dir(work_dir: str | None) -> Path | None:
    if work_dir is None:
        return None
    path = Path(work_dir).resolve(strict=True)
    os.chdir(path)
    return path


def _build_config(args: argparse.Namespace, save_path: Path | None) -> RunConfiguration:
    return RunConfiguration(
        contexts=split_csv(args.context),
        all_at_once=args.all_at_once,
        skip_invalid=args.skip_invalid_messages,
        include_containers=split_csv(args.include_container),
        fix_up_messages=args.fix_up_messages,
        pretty_print=args.pretty_print_objects,
        since=args.since,
        follow=args.follow,
        quiet=args.quiet,
        blank_line_after_entry=args.blank_line_after_entry,
        space_after_message=args.space_after_message,
        save_path=save_path,
        stern_defaults=args.stern_defaults,
        pod_query=tuple(args.pod_query),
    )


async def _run(config: RunConfiguration, settings: RuntimeSettings, banner: list[str]) -> RunSummary:
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    if task is not None:
        # cancelling the run flushes output and still returns the summary
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, task.cancel)
    return await stream_logs(config, settings=settings, banner=banner)


def exit_code(summary: RunSummary) -> int:
    return 1 if summary.failures else 0


def main(argv: Sequence[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    p = build_parser()
    args = p.parse_args(argv)
    _configure_logging(args.verbose)

    if not args.pod_query:
        p.print_help()
        raise SystemExit(2)

    try:
        settings = resolve_runtime_settings()
        check_required_binaries([settings.kubectl_binary, settings.stern_binary])
        work_dir = _set_work_dir(args.work_dir)
        save_path = _resolve_save_path(args.save, argv)
        config = _build_config(args, save_path)
    except KubeLogMuxError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    banner = [
        f"{APP_NAME} v{__version__}",
        f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"Command line: {shlex.join([APP_NAME, *argv])}",
    ]
    if work_dir is not None:
        banner.append(f"Working directory: {work_dir}")
    if save_path is not None:
        banner.append(f"Saving logs to: {save_path}")
        LOGGER.info("Saving logs to %s", save_path)

    try:
        summary = asyncio.run(_run(config, settings, banner))
    except KubeLogMuxError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except KeyboardInterrupt:
        raise SystemExit(130)

    report = sys.stderr if config.quiet else sys.stdout
    print("", file=report)
    for line in summary_lines(summary):
        print(line, file=report)

    raise SystemExit(exit_code(summary))


if __name__ == "__main__":
    main()
