#!/usr/bin/env python3
"""
Command line entry point.

    xml-translator app/src/main/res/values/strings.xml -t es -t fr
    xml-translator app/src/main/res/values/strings.xml --all-folders --sequential
    xml-translator --res-dir app/src/main/res --add-string greeting "Hello" -t es
"""

import argparse
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from . import __version__
from .batch_orchestrator import BatchOrchestrator, partition_batches
from .errors import TranslationCancelledError, TranslatorError
from .key_pool import acquire_keys_or_fail
from .language_utils import get_language_name, language_from_folder, normalize_target
from .llm_provider import LLMClient, LLMConfig, LLMProvider, resolve_model_name
from .progress import CancellationToken, ProgressEvent, Stage
from .report import create_translation_report
from .resource_codec import extract_with_report, read_source_file
from .settings import get_valid_api_keys, load_settings
from .string_filter import (
    diagnose_exclusion,
    filtering_info,
    get_filtered_values_folders,
)
from .translation_client import TranslationClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def configure_logging(trace: bool) -> None:
    """Configure console logging for the whole package."""
    log_level = logging.DEBUG if trace else logging.INFO
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    # Configure the root logger so every module shares the same handlers/level.
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            existing_handler.setFormatter(formatter)

    # Suppress noisy debug logs from HTTP client/SDK libraries unless they escalate.
    noisy_loggers = [
        "openai",
        "httpx",
        "httpcore",
        "urllib3",
        "requests",
    ]
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xml-translator",
        description="Translate Android strings.xml resources in batches",
    )
    parser.add_argument(
        "source",
        nargs="?",
        help="Source strings.xml (usually res/values/strings.xml)",
    )
    parser.add_argument(
        "--res-dir",
        default=None,
        help="Resource root holding the values folders (default: parent of the source's folder)",
    )
    parser.add_argument(
        "-t",
        "--target",
        action="append",
        default=[],
        help='Target language or folder, e.g. "es" or "values-es". Repeat or separate with commas.',
    )
    parser.add_argument(
        "--all-folders",
        action="store_true",
        help="Translate into every existing values-* folder that is not a qualifier folder",
    )
    parser.add_argument(
        "--api-key",
        dest="api_keys",
        action="append",
        default=[],
        help="API key to use; repeat for several keys",
    )
    parser.add_argument(
        "--no-default-keys",
        dest="use_default_keys",
        action="store_false",
        default=None,
        help="Ignore API keys from environment variables",
    )
    parser.add_argument(
        "--provider",
        choices=[provider.value for provider in LLMProvider],
        default=None,
        help="LLM provider (default: gemini)",
    )
    parser.add_argument("--model", default=None, help="Model identifier")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Strings per translation request (default: 50)",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Translate one language at a time (works with a single API key)",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Only report what would be translated",
    )
    parser.add_argument(
        "-l",
        "--log-trace",
        action="store_true",
        help="Log detailed trace information",
    )
    parser.add_argument(
        "--explain",
        metavar="NAME",
        default=None,
        help="Show whether a string or folder name is excluded and why",
    )
    parser.add_argument(
        "--add-string",
        nargs=2,
        metavar=("NAME", "TEXT"),
        default=None,
        help="Add one string to the source folder and translate it into the targets",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_targets(values: List[str]) -> List[str]:
    """Split, normalize and deduplicate target arguments into folder names."""
    folders = []
    for value in values:
        for target in value.split(","):
            if target.strip():
                folders.append(normalize_target(target))
    return list(dict.fromkeys(folders))


def explain(name: str) -> str:
    lines = [filtering_info()]
    for label, is_folder in (("string name", False), ("folder", True)):
        excluded, matched = diagnose_exclusion(name, is_folder=is_folder)
        if excluded:
            lines.append(f"{name} as {label}: excluded (matches {', '.join(matched)})")
        else:
            lines.append(f"{name} as {label}: kept")
    return "\n".join(lines)


def _log_progress(event: ProgressEvent) -> None:
    if event.stage == Stage.COLLECTING:
        logger.info(f"{event.message} ({event.percent:.0f}%)")
    elif event.stage in (Stage.MERGING, Stage.DONE, Stage.CANCELLED):
        logger.info(event.message)


def _dry_run(source: Path, folders: List[str], batch_size: int) -> int:
    extraction = extract_with_report(read_source_file(source))
    batches = partition_batches(extraction.strings, batch_size)
    print(f"{len(extraction.strings)} strings in {len(batches)} batches of up to {batch_size}")
    for folder in folders:
        language = language_from_folder(folder) or folder
        print(f"  {folder}: {get_language_name(language)}")
    if extraction.excluded:
        print(f"Excluded by name: {', '.join(extraction.excluded)}")
    if extraction.non_translatable:
        print(f'translatable="false": {", ".join(extraction.non_translatable)}')
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_trace)

    if args.explain:
        print(explain(args.explain))
        return EXIT_OK

    if not args.source and not (args.add_string and args.res_dir):
        parser.error("a source strings.xml is required (or --res-dir with --add-string)")

    source = Path(args.source) if args.source else None
    if args.res_dir:
        resource_dir = Path(args.res_dir)
    else:
        resource_dir = source.resolve().parent.parent

    folders = parse_targets(args.target)
    if args.all_folders:
        for folder in get_filtered_values_folders(resource_dir):
            if folder not in folders:
                folders.append(folder)
    if args.add_string and "values" not in folders:
        folders.insert(0, "values")
    if not folders:
        parser.error("no target languages given (use -t/--target or --all-folders)")

    settings = load_settings()
    overrides = {}
    if args.provider:
        overrides["provider"] = LLMProvider(args.provider)
    if args.model:
        overrides["model"] = args.model
    if args.batch_size is not None:
        overrides["batch_size"] = args.batch_size
    if args.api_keys:
        overrides["api_keys"] = settings.api_keys + args.api_keys
    if args.use_default_keys is not None:
        overrides["use_default_keys"] = args.use_default_keys
    try:
        settings = replace(settings, **overrides)
    except ValueError as e:
        parser.error(str(e))

    try:
        if args.dry_run:
            if source is None:
                parser.error("--dry-run needs a source strings.xml")
            return _dry_run(source, folders, settings.batch_size)

        key_pool = acquire_keys_or_fail(get_valid_api_keys(settings))
        model = args.model or resolve_model_name(settings.model_config_url, settings.model)
        llm_config = LLMConfig(
            provider=settings.provider,
            model=model,
            site_url=settings.site_url,
            site_name=settings.site_name,
        )
        client = TranslationClient(
            LLMClient(llm_config),
            timeout_base=settings.timeout_base,
            timeout_per_item=settings.timeout_per_item,
            timeout_min=settings.timeout_min,
            timeout_max=settings.timeout_max,
        )
    except TranslatorError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except OSError as e:
        logger.error(f"Could not read {source}: {e}")
        return EXIT_FAILURE

    cancel_token = CancellationToken()
    orchestrator = BatchOrchestrator(
        client,
        key_pool,
        settings,
        progress=_log_progress,
        cancel_token=cancel_token,
    )

    logger.info(
        f"Starting translation using {settings.provider.value} with model {model} "
        f"and {len(key_pool)} API keys"
    )
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel_token.cancel())
    try:
        if args.add_string:
            name, text = args.add_string
            run = orchestrator.add_string(name, text, resource_dir, folders)
        else:
            run = orchestrator.translate_resource_file(
                source, resource_dir, folders, sequential=args.sequential
            )
    except TranslationCancelledError as e:
        logger.warning(str(e))
        if orchestrator.last_report is not None:
            print(create_translation_report(orchestrator.last_report))
        return EXIT_CANCELLED
    except TranslatorError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except OSError as e:
        logger.error(f"File error: {e}")
        return EXIT_FAILURE
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(create_translation_report(run))
    for failed in run.failed:
        logger.error(f"{failed.folder}: {failed.error}")
    return EXIT_OK if run.ok else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
