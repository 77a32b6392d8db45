"""Command-line interface for the UGC Script Splitter.

WHY: Producers want to preview how a script will be cut, or generate a
full set of segment prompts, without running the web app. The CLI wires
the same pipeline the HTTP API uses behind a single command.

HOW: Uses argparse to accept a script file plus scene/format options.
--split-only runs the segmenter alone and prints the chunks to stdout.
Otherwise the async pipeline runs via asyncio.run() and each generated
segment is saved as segment_NN.json next to a metadata.json. --serve
starts the HTTP API instead.

RULES:
- Positional argument: script text file (not needed with --serve)
- Script must be at least 50 characters after stripping
- Output naming: segment_01.json ...; numeric suffix on conflict (segment_01-2.json)
- Status output goes to stderr (not stdout)
- Exit code 1 on validation or pipeline errors
- Python 3.9.6 compatible — no match/case, no X | Y unions, no slots=True
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from ugc_script_splitter.config import LOG_LEVEL, MIN_SCRIPT_CHARS
from ugc_script_splitter.core.models import SETTING_MODES, GenerationParams
from ugc_script_splitter.core.segmenter import split_script
from ugc_script_splitter.llm.client import OpenAIChatClient
from ugc_script_splitter.pipeline.errors import PipelineError
from ugc_script_splitter.pipeline.orchestrator import GenerationService, PipelineSettings


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _resolve_output_path(filename: str, output_dir: Path) -> Path:
    """Resolve the output file path, adding numeric suffix on conflict.

    WHY: Users may run the splitter several times into the same folder.
    Overwriting previous output would lose work.

    RULES:
    - First attempt: {filename} (e.g. segment_01.json)
    - Conflict: insert counter before the extension (segment_01-2.json)
    - Counter starts at 2 and increments
    """
    base_path = output_dir / filename
    if not base_path.exists():
        return base_path

    dot_idx = filename.rfind(".")
    if dot_idx > 0:
        name, ext = filename[:dot_idx], filename[dot_idx:]
    else:
        name, ext = filename, ""

    counter = 2
    while True:
        candidate = output_dir / "{}-{}{}".format(name, counter, ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_json(data: Any, filename: str, output_dir: Path) -> Path:
    path = _resolve_output_path(filename, output_dir)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def _read_script(path_arg: str) -> str:
    script_path = Path(path_arg).resolve()
    if not script_path.is_file():
        print("Error: File not found: {}".format(script_path), file=sys.stderr)
        sys.exit(1)

    script = script_path.read_text(encoding="utf-8").strip()
    if len(script) < MIN_SCRIPT_CHARS:
        print(
            "Error: Script must be at least {} characters long".format(MIN_SCRIPT_CHARS),
            file=sys.stderr,
        )
        sys.exit(1)
    return script


def _params_from_args(args: argparse.Namespace, script: str) -> GenerationParams:
    locations: List[str] = []
    if args.locations:
        locations = [loc.strip() for loc in args.locations.split(",") if loc.strip()]
    return GenerationParams(
        script=script,
        age_range=args.age_range,
        gender=args.gender,
        product=args.product,
        room=args.room,
        style=args.style,
        json_format=args.format,
        setting_mode=args.setting_mode,
        locations=locations,
        camera_style=args.camera_style,
        energy_arc=args.energy_arc,
        max_segments=args.max_segments,
        sequential=args.sequential,
        continuation_mode=args.continuation,
    )


def _print_split(script: str, max_segments: Optional[int]) -> None:
    segments = split_script(script)
    if max_segments:
        segments = segments[:max_segments]
    for index, segment in enumerate(segments, start=1):
        print("[{:02d}] {} words, {:.1f}s: {}".format(
            index, segment.word_count, segment.estimated_duration_s, segment.text,
        ))
    _status("{} segment(s)".format(len(segments)))


async def _run_pipeline(args: argparse.Namespace) -> None:
    """Execute the full generation pipeline and save the results.

    RULES:
    - Output directory must already exist
    - One segment_NN.json per generated segment, in script order
    - metadata.json holds the run metadata and voice profile
    """
    script = _read_script(args.script_file)

    if args.split_only:
        _print_split(script, args.max_segments)
        return

    output_dir = Path(args.output_dir).resolve() if args.output_dir else Path.cwd()
    if not output_dir.is_dir():
        print("Error: Output directory does not exist: {}".format(output_dir), file=sys.stderr)
        sys.exit(1)

    params = _params_from_args(args, script)

    try:
        async with OpenAIChatClient() as client:
            service = GenerationService(client, PipelineSettings.from_config())
            _status("Generating segments ({} format)...".format(params.json_format))
            result = await service.run(params)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except (ValueError, PipelineError) as e:
        # Config errors (missing API key), validation and pipeline failures
        print("Error: {}".format(e), file=sys.stderr)
        sys.exit(1)

    saved_files: List[Path] = []
    for index, segment in enumerate(result.segments, start=1):
        saved_files.append(_save_json(segment, "segment_{:02d}.json".format(index), output_dir))

    run_info = result.to_dict()
    run_info.pop("segments")
    saved_files.append(_save_json(run_info, "metadata.json", output_dir))

    _status("")
    _status("Done! {} segment(s), ~{}s of video, saved to {}".format(
        result.total_segments, result.estimated_duration_s, output_dir,
    ))
    for f in saved_files:
        _status("  {}".format(f.name))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable — tests can inspect the parser without running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="ugc_script_splitter",
        description="Split a marketing script into 6-8 second segments and generate "
                    "a structured Veo 3 prompt for each one.",
    )

    parser.add_argument(
        "script_file",
        nargs="?",
        help="Path to a text file containing the script.",
    )
    parser.add_argument(
        "--split-only",
        action="store_true",
        help="Only print the text segments (no model calls).",
    )
    parser.add_argument(
        "--format",
        choices=["standard", "enhanced"],
        default="standard",
        help="Template family (default: %(default)s).",
    )
    parser.add_argument(
        "--setting-mode",
        choices=list(SETTING_MODES),
        default="single",
        help="How locations are assigned to segments (default: %(default)s).",
    )
    parser.add_argument("--room", default=None, help="Location for 'single' setting mode.")
    parser.add_argument(
        "--locations",
        default=None,
        help="Comma-separated locations for multi-location modes.",
    )
    parser.add_argument("--product", default=None, help="Product being presented.")
    parser.add_argument("--age-range", default=None, help="Character age range, e.g. 25-34.")
    parser.add_argument("--gender", default=None, help="Character gender.")
    parser.add_argument("--style", default=None, help="Visual/wardrobe style.")
    parser.add_argument("--camera-style", default=None, help="Camera style key, e.g. slow-push.")
    parser.add_argument(
        "--energy-arc",
        choices=["building", "problem-solution", "discovery", "consistent"],
        default=None,
        help="Energy arc across the segments.",
    )
    parser.add_argument(
        "--max-segments",
        type=int,
        default=None,
        help="Only use the first N segments.",
    )
    parser.add_argument(
        "--sequential",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Force sequential or concurrent generation (default: automatic).",
    )
    parser.add_argument(
        "--continuation",
        action="store_true",
        help="Run the voice-profile continuity pipeline.",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: current directory).",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the HTTP API instead of processing a file.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for --serve (default: PORT from the environment, 3001).",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.serve:
        from ugc_script_splitter.server.app import run_api
        run_api(port=args.port)
        return

    if not args.script_file:
        parser.error("script_file is required unless --serve is given")

    asyncio.run(_run_pipeline(args))


if __name__ == "__main__":
    main()
