import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from magica_bridge.config import get_settings
from magica_bridge.converter import (
    ConversionOptions,
    ConversionRunner,
    HostOperationError,
    SceneDocumentError,
    SceneGraph,
)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_INVALID = 2


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="magica-bridge",
        description="Convert DynamicBone components in a scene document to MagicaCloth V2",
    )
    parser.add_argument("input_path", help="Scene document (JSON)")
    parser.add_argument(
        "-o",
        "--output",
        dest="output_path",
        help="Where the converted document is written (default: <input>.converted.json)",
    )
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--root", help="Node id whose hierarchy is converted (default: every top-level node)")
    scope.add_argument("--component", dest="component_id", help="Convert a single DynamicBone component")
    parser.add_argument("--skip-exclusions", action="store_true")
    parser.add_argument("--no-container", action="store_true")
    parser.add_argument(
        "--keep-residual",
        action="store_true",
        help="Do not offer to remove DynamicBones left unconverted",
    )
    parser.add_argument("-y", "--yes", action="store_true", help="Answer every prompt with yes")
    return parser.parse_args(argv)


def _console_confirm(title: str, message: str, ok: str, cancel: str) -> bool:
    print(f"\n== {title} ==\n{message}")
    try:
        answer = input(f"[y] {ok} / [n] {cancel}: ").strip().lower()
    except EOFError:
        return False
    return answer in {"y", "yes"}


def _assume_yes(title: str, message: str, ok: str, cancel: str) -> bool:
    return True


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    _configure_logging(settings.log_level)

    input_path = Path(args.input_path)
    output_path = Path(args.output_path) if args.output_path else input_path.with_suffix(".converted.json")

    try:
        document = json.loads(input_path.read_text(encoding="utf-8"))
        graph = SceneGraph.from_dict(document)
    except (OSError, json.JSONDecodeError, SceneDocumentError) as exc:
        logger.error("Unable to load {}: {}", input_path, exc)
        return EXIT_INVALID

    graph.confirm_handler = _assume_yes if args.yes else _console_confirm

    options = ConversionOptions.from_settings(settings)
    if args.skip_exclusions:
        options.skip_exclusions = True
    if args.no_container:
        options.use_container = False
    runner = ConversionRunner(graph, options)
    cleanup = not args.keep_residual

    try:
        if args.component_id:
            summaries = [runner.convert_component(args.component_id, cleanup=cleanup)]
        else:
            roots = [args.root] if args.root else [n.id for n in list(graph.nodes.values()) if n.parent is None]
            summaries = [runner.convert_hierarchy(root_id, cleanup=cleanup) for root_id in roots]
    except (ValueError, HostOperationError) as exc:
        logger.error("{}", exc)
        return EXIT_INVALID

    if any(summary is None for summary in summaries):
        logger.warning("Conversion aborted; nothing was written")
        return EXIT_ABORTED

    output_path.write_text(json.dumps(graph.to_dict(), indent=2), encoding="utf-8")
    for summary in summaries:
        if summary.attempted:
            print(summary.message)
    logger.info("Wrote {}", output_path)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - console entrypoint
    sys.exit(main())
