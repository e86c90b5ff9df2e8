# File: schemagen/cli.py
"""
SchemaGen - Command-Line Interface
====================================

CLI built with the standard-library ``argparse`` module.

Usage examples::

    # Generate into a directory
    python -m schemagen --schema blog.yaml --output ./generated

    # Separate config file, verbose
    python -m schemagen -s blog.yaml -c schemagen.yaml -o ./out -v

    # Print the per-entity analysis as JSON
    python -m schemagen -s blog.yaml --analyze-only

    # Run every phase but write nothing; print the manifest
    python -m schemagen -s blog.yaml --dry-run --manifest -

Exit codes:
    0 — success
    1 — schema error (unresolved relation targets)
    2 — plugin validation error
    3 — generation error (phase failure, conflict, write failure)
    4 — input/argument error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import warnings
from pathlib import Path
from typing import Dict, List, NoReturn, Optional, Sequence, Tuple

from schemagen.analyzer import RelationshipAnalyzer
from schemagen.config import GeneratorConfig
from schemagen.errors import (
    GenerationCancelledError,
    GenerationConflictError,
    PhaseExecutionError,
    PluginRegistrationError,
    PluginValidationError,
    PluginValidationWarning,
    SchemaError,
)
from schemagen.generator import (
    GenerationResult,
    SchemaGenerator,
    load_config_file,
    load_schema_file,
    parse_raw_input,
)
from schemagen.models import SchemaDefinition
from schemagen.utils import write_file
from schemagen.validators import validate_full

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_SCHEMA_ERROR: int = 1
EXIT_PLUGIN_ERROR: int = 2
EXIT_GENERATION_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root schemagen logger based on verbosity level.

    Args:
        verbosity: -1 = ERROR, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.ERROR

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("schemagen")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from schemagen import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="schemagen",
        description=(
            "SchemaGen — schema-driven generator.\n\n"
            "Analyses an entity schema (JSON/YAML), runs the generation "
            "phases and merges the output of the configured feature plugins."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -s blog.yaml -o ./generated\n"
            "  %(prog)s -s blog.yaml -c schemagen.yaml -o ./out -v\n"
            "  %(prog)s -s blog.yaml --analyze-only\n"
            "  %(prog)s -s blog.yaml --dry-run --manifest -\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"SchemaGen v{__version__}",
    )

    # --- Inputs ---
    parser.add_argument(
        "-s", "--schema",
        type=str,
        required=True,
        metavar="PATH",
        help="Input document with the entity schema (JSON or YAML).",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Generator config file; replaces any 'config' section of the input.",
    )

    # --- Output ---
    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="DIR",
        help="Output directory. Required unless --dry-run or --analyze-only.",
    )
    output_group.add_argument(
        "--manifest",
        type=str,
        default=None,
        metavar="PATH",
        help="Also write the manifest to PATH ('-' for stdout).",
    )

    # --- Modes ---
    mode_group = parser.add_argument_group("operation modes")
    mode_group.add_argument(
        "--analyze-only",
        action="store_true",
        default=False,
        help="Print the per-entity analysis as JSON and exit.",
    )
    mode_group.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run every phase but don't write files to disk.",
    )

    # --- Behaviour flags ---
    behaviour_group = parser.add_argument_group("behaviour flags")
    behaviour_group.add_argument(
        "--no-strict",
        action="store_true",
        default=False,
        help="Leave out failing plugins instead of blocking the run.",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


# ---------------------------------------------------------------------------
# Input loading
# ---------------------------------------------------------------------------


def _load_inputs(
    args: argparse.Namespace,
) -> Tuple[SchemaDefinition, GeneratorConfig]:
    """Load schema and config; raises FileNotFoundError / ValueError."""
    raw: Dict[str, object] = load_schema_file(Path(args.schema))
    schema, config = parse_raw_input(raw)
    if args.config is not None:
        config = load_config_file(Path(args.config))
    if args.no_strict:
        config = config.model_copy(update={"strict_plugin_validation": False})
    return schema, config


# ---------------------------------------------------------------------------
# Analyze-only mode
# ---------------------------------------------------------------------------


def _run_analyze_only(schema: SchemaDefinition, config: GeneratorConfig) -> int:
    analyzer = RelationshipAnalyzer(
        junction_policy=config.junction,
        special_field_policy=config.special_fields,
        sensitive_patterns=config.sensitive_field_patterns,
    )
    try:
        analysis = analyzer.analyze(schema)
    except SchemaError as exc:
        logger.error("%s", exc)
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_SCHEMA_ERROR

    diagnostics = validate_full(schema)
    for diag in diagnostics.warnings:
        logger.warning("%s", diag)

    payload = {
        "entities": [entry.to_dict() for entry in analysis.values()],
        "entity_order": schema.topological_order(),
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Full generation mode
# ---------------------------------------------------------------------------


def _emit_manifest(result: GenerationResult, target: str) -> None:
    manifest = result.manifest
    if manifest is None:
        return
    if target == "-":
        sys.stdout.write(manifest.to_json())
    else:
        write_file(Path(target), manifest.to_json())
        logger.info("Manifest written to %s", target)


def _run_generation(
    schema: SchemaDefinition,
    config: GeneratorConfig,
    args: argparse.Namespace,
) -> int:
    """Run the pipeline; returns the exit code."""
    generator = SchemaGenerator(config)

    try:
        with warnings.catch_warnings():
            # Shown in the report instead.
            warnings.simplefilter("ignore", PluginValidationWarning)
            result: GenerationResult = generator.generate(schema)
    except SchemaError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_SCHEMA_ERROR
    except PluginValidationError as exc:
        if exc.result is not None:
            print(exc.result.build_report().summary())
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_PLUGIN_ERROR
    except PluginRegistrationError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except (
        GenerationConflictError,
        PhaseExecutionError,
        GenerationCancelledError,
    ) as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_GENERATION_ERROR

    write_result = None
    if not args.dry_run:
        output_dir: Path = Path(args.output).resolve()
        try:
            write_result = generator.write(result, output_dir)
        except ValueError as exc:
            print(f"✗ {exc}", file=sys.stderr)
            return EXIT_GENERATION_ERROR
    else:
        logger.info("Dry-run mode: files will not be written to disk.")

    if args.manifest is not None:
        _emit_manifest(result, args.manifest)

    report = result.build_report(write_result)
    print(report.summary(), file=sys.stderr if args.manifest == "-" else sys.stdout)

    if write_result is not None and not write_result.success:
        return EXIT_GENERATION_ERROR
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    _setup_logging(-1 if args.quiet else args.verbose)

    needs_output: bool = not (args.analyze_only or args.dry_run)
    if needs_output and args.output is None:
        logger.error(
            "Output directory is required for generation. "
            "Use -o/--output, --dry-run or --analyze-only."
        )
        parser.print_usage(sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    try:
        schema, config = _load_inputs(args)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Failed to load input: %s", exc)
        print(f"✗ {exc}", file=sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    logger.info("Schema:  %s", args.schema)
    logger.info("Strict:  %s", config.strict_plugin_validation)

    if args.analyze_only:
        sys.exit(_run_analyze_only(schema, config))

    exit_code: int = _run_generation(schema, config, args)
    if exit_code == EXIT_SUCCESS:
        logger.info("Generation completed successfully.")
    else:
        logger.error("Generation failed with exit code %d.", exit_code)
    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "EXIT_GENERATION_ERROR",
    "EXIT_INPUT_ERROR",
    "EXIT_PLUGIN_ERROR",
    "EXIT_SCHEMA_ERROR",
    "EXIT_SUCCESS",
    "cli_main",
]

logger.debug("schemagen.cli loaded.")
