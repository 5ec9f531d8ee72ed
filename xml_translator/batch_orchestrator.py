#!/usr/bin/env python3
"""
Batch orchestrator

Splits the strings of a resource file into fixed-size batches, translates
them concurrently while rotating API keys, and merges each language's
results into its ``values-<lang>/strings.xml``.

Concurrency model:
  - one ``ThreadPoolExecutor`` per language, sized to the key pool, running
    one future per batch;
  - for several languages, an outer pool per language group. Groups are
    packed so that their summed batch counts fit the per-minute budget of
    the key pool, and run one after another with a cooldown in between.

Results are reassembled by batch index, so completion order never affects
the written files.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .errors import (
    NoCredentialsError,
    TranslationCancelledError,
    TranslatorError,
)
from .key_pool import ApiKeyPool, call_with_retry
from .language_utils import get_language_name, language_from_folder
from .progress import CancellationToken, ProgressEvent, ProgressListener, Stage
from .resource_codec import (
    add_or_update,
    add_or_update_file,
    extract_translatable,
    merge_into_file,
    read_resource_file,
    read_source_file,
)
from .settings import TranslatorSettings
from .string_filter import VALUES_PREFIX
from .translation_client import TranslationClient, build_request, pair_translations

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]

DEFAULT_BATCH_SIZE = 50
POLL_INTERVAL = 0.2
STRINGS_FILE = "strings.xml"


def partition_batches(pairs: Sequence[Pair], batch_size: int = DEFAULT_BATCH_SIZE) -> List[List[Pair]]:
    """Split pairs into consecutive chunks of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(pairs[i:i + batch_size]) for i in range(0, len(pairs), batch_size)]


@dataclass
class LanguageResult:
    """Outcome of one target folder."""

    folder: str
    output_path: Optional[Path] = None
    translated: int = 0
    translations: List[Pair] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class RunReport:
    """Outcome of a whole run, one entry per target folder."""

    sources: Dict[str, str] = field(default_factory=dict)
    results: List[LanguageResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total_strings(self) -> int:
        return len(self.sources)

    @property
    def succeeded(self) -> List[LanguageResult]:
        return [result for result in self.results if result.succeeded]

    @property
    def failed(self) -> List[LanguageResult]:
        return [result for result in self.results if not result.succeeded]

    @property
    def ok(self) -> bool:
        return not self.cancelled and not self.failed


class BatchOrchestrator:
    """Runs one translation job across batches and target languages."""

    def __init__(
        self,
        client: TranslationClient,
        key_pool: ApiKeyPool,
        settings: Optional[TranslatorSettings] = None,
        progress: Optional[ProgressListener] = None,
        cancel_token: Optional[CancellationToken] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.client = client
        self.key_pool = key_pool
        self.settings = settings or TranslatorSettings()
        self.progress = progress
        self.cancel_token = cancel_token or CancellationToken()
        self._sleep = sleep or self.cancel_token.wait
        self._state = Stage.IDLE
        self._state_lock = threading.Lock()
        self.last_report: Optional[RunReport] = None

    @property
    def state(self) -> Stage:
        with self._state_lock:
            return self._state

    def _emit(
        self,
        stage: Stage,
        message: str,
        language: Optional[str] = None,
        batch_index: Optional[int] = None,
        percent: float = 0.0,
    ) -> None:
        with self._state_lock:
            self._state = stage
        logger.debug(message)
        if self.progress is not None:
            self.progress(ProgressEvent(stage, language, batch_index, percent, message))

    def _pause(self, seconds: float) -> None:
        self.cancel_token.raise_if_cancelled()
        if seconds > 0:
            self._sleep(seconds)
        self.cancel_token.raise_if_cancelled()

    # ------------------------------------------------------------------
    # Single language
    # ------------------------------------------------------------------

    def _translate_batch(
        self,
        batch: List[Pair],
        index: int,
        language: str,
        first_wave: int,
        aborted: threading.Event,
    ) -> List[Pair]:
        if index >= first_wave:
            self._pause(self.settings.inter_batch_delay)
        if aborted.is_set():
            raise TranslationCancelledError(f"Batch {index + 1} for {language} skipped")
        self.cancel_token.raise_if_cancelled()

        request = build_request(batch, language, self.settings.source_language)
        response = call_with_retry(
            lambda key: self.client.translate(request, key),
            self.key_pool.next_key(),
            self.key_pool,
            self._pause,
            rate_limit_cooldown=self.settings.rate_limit_cooldown,
            key_switch_delay=self.settings.key_switch_delay,
        )
        return pair_translations(batch, response)

    def translate_language(self, pairs: Sequence[Pair], language: str) -> List[Pair]:
        """
        Translate all pairs into one language and return them in input order.

        Raises:
            TranslatorError: From the first batch that failed; the batches that
                had not started yet are cancelled.
            TranslationCancelledError: If the run was cancelled.
        """
        self.cancel_token.raise_if_cancelled()
        batches = partition_batches(pairs, self.settings.batch_size)
        if not batches:
            return []

        self._emit(
            Stage.PARTITIONING,
            f"Split {len(pairs)} strings into {len(batches)} batches for {language}",
            language=language,
        )

        workers = min(len(self.key_pool), len(batches))
        aborted = threading.Event()
        results: Dict[int, List[Pair]] = {}

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"batch-{language}"
        ) as executor:
            futures = {
                executor.submit(
                    self._translate_batch, batch, index, language, workers, aborted
                ): index
                for index, batch in enumerate(batches)
            }
            self._emit(
                Stage.DISPATCHING,
                f"Dispatched {len(batches)} batches for {language} on {workers} workers",
                language=language,
            )

            pending = set(futures)
            try:
                while pending:
                    self.cancel_token.raise_if_cancelled()
                    done, pending = wait(
                        pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED
                    )
                    for future in done:
                        index = futures[future]
                        results[index] = future.result()
                        self._emit(
                            Stage.COLLECTING,
                            f"{language}: batch {index + 1}/{len(batches)} done",
                            language=language,
                            batch_index=index,
                            percent=100.0 * len(results) / len(batches),
                        )
                    self.cancel_token.raise_if_cancelled()
            except BaseException:
                aborted.set()
                for future in pending:
                    future.cancel()
                raise

        return [pair for index in range(len(batches)) for pair in results[index]]

    # ------------------------------------------------------------------
    # Several languages
    # ------------------------------------------------------------------

    def group_languages(self, batch_counts: Sequence[Tuple[str, int]]) -> List[List[str]]:
        """
        Pack folders into groups whose summed batch counts fit the budget.

        The budget is the number of keys times the per-key calls per minute.
        A folder that alone exceeds the budget gets a group of its own.
        """
        budget = len(self.key_pool) * self.settings.per_key_calls_per_minute
        groups: List[List[str]] = []
        current: List[str] = []
        used = 0
        for folder, count in batch_counts:
            if current and used + count > budget:
                groups.append(current)
                current = []
                used = 0
            current.append(folder)
            used += count
        if current:
            groups.append(current)
        return groups

    def _output_path(self, resource_dir: Path, folder: str) -> Path:
        return resource_dir / folder / STRINGS_FILE

    def _write_source_folder(self, pairs: Sequence[Pair], resource_dir: Path) -> LanguageResult:
        """The source folder receives the untranslated texts."""
        result = LanguageResult(VALUES_PREFIX)
        path = self._output_path(resource_dir, VALUES_PREFIX)
        try:
            content = read_resource_file(path)
            for name, text in pairs:
                content = add_or_update(content, name, text)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except (TranslatorError, OSError) as e:
            logger.error(f"Writing source strings to {path} failed: {e}")
            result.error = e
            return result
        result.output_path = path
        result.translated = len(pairs)
        logger.info(f"Added {len(pairs)} strings to {VALUES_PREFIX} (original)")
        return result

    def _run_language(self, pairs: Sequence[Pair], resource_dir: Path, folder: str) -> LanguageResult:
        result = LanguageResult(folder)
        language = language_from_folder(folder)
        if language is None:
            result.error = TranslatorError(
                f"{folder} is not a values folder",
                hint='Target folders look like "values-es"; plain codes such as "es" also work.',
            )
            return result

        logger.info(f"Translating to {get_language_name(language)} ({folder})")
        try:
            translations = self.translate_language(pairs, language)
            self.cancel_token.raise_if_cancelled()
            self._emit(Stage.MERGING, f"Merging {len(translations)} strings into {folder}", language=language)
            result.output_path = merge_into_file(self._output_path(resource_dir, folder), translations)
            result.translated = len(translations)
            result.translations = translations
        except (TranslationCancelledError, NoCredentialsError):
            raise
        except (TranslatorError, OSError) as e:
            logger.error(f"Translation to {folder} failed: {e}")
            result.error = e
        return result

    def _split_folders(self, folders: Sequence[str]) -> Tuple[bool, List[str]]:
        unique = list(dict.fromkeys(folders))
        return VALUES_PREFIX in unique, [folder for folder in unique if folder != VALUES_PREFIX]

    def _finish(self, report: RunReport, folders: Sequence[str]) -> RunReport:
        order = {folder: position for position, folder in enumerate(folders)}
        report.results.sort(key=lambda result: order.get(result.folder, len(order)))
        self._emit(
            Stage.DONE,
            f"Finished: {len(report.succeeded)} succeeded, {len(report.failed)} failed",
            percent=100.0,
        )
        return report

    def _cancelled(self, report: RunReport) -> None:
        report.cancelled = True
        self._emit(Stage.CANCELLED, "Translation cancelled by user")

    def translate_languages(
        self,
        pairs: Sequence[Pair],
        resource_dir: Union[str, Path],
        folders: Sequence[str],
    ) -> RunReport:
        """
        Translate pairs into several target folders in parallel.

        One failed language is recorded in the report and does not stop the
        others. ``values`` receives the source texts untranslated.

        Raises:
            NoCredentialsError: If more than one language is requested with
                fewer than two API keys.
            TranslationCancelledError: If the run was cancelled. Languages
                merged before the cancellation stay on disk and are listed in
                ``last_report``.
        """
        resource_dir = Path(resource_dir)
        report = RunReport(sources=dict(pairs))
        self.last_report = report
        include_source, targets = self._split_folders(folders)

        if len(targets) > 1 and len(self.key_pool) < 2:
            raise NoCredentialsError(
                f"Translating {len(targets)} languages in parallel needs at least 2 API keys, "
                f"found {len(self.key_pool)}",
                hint="Add another API key, or translate one language at a time with --sequential.",
            )

        try:
            self.cancel_token.raise_if_cancelled()
            if include_source:
                report.results.append(self._write_source_folder(pairs, resource_dir))

            batch_count = len(partition_batches(pairs, self.settings.batch_size))
            groups = self.group_languages([(folder, batch_count) for folder in targets])
            self._emit(
                Stage.PARTITIONING,
                f"{len(targets)} languages in {len(groups)} groups, {batch_count} batches each",
            )

            for group_index, group in enumerate(groups):
                if group_index > 0:
                    logger.info(
                        f"Waiting {self.settings.group_cooldown}s before language group {group_index + 1}/{len(groups)}"
                    )
                    self._pause(self.settings.group_cooldown)
                self.cancel_token.raise_if_cancelled()
                report.results.extend(self._run_group(pairs, resource_dir, group))
        except TranslationCancelledError:
            self._cancelled(report)
            raise

        return self._finish(report, folders)

    def _run_group(self, pairs: Sequence[Pair], resource_dir: Path, group: List[str]) -> List[LanguageResult]:
        results = []
        with ThreadPoolExecutor(max_workers=len(group), thread_name_prefix="language") as executor:
            futures = {
                executor.submit(self._run_language, pairs, resource_dir, folder): folder
                for folder in group
            }
            pending = set(futures)
            try:
                while pending:
                    self.cancel_token.raise_if_cancelled()
                    done, pending = wait(
                        pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED
                    )
                    for future in done:
                        results.append(future.result())
            except BaseException:
                for future in pending:
                    future.cancel()
                raise
        return results

    def translate_sequentially(
        self,
        pairs: Sequence[Pair],
        resource_dir: Union[str, Path],
        folders: Sequence[str],
    ) -> RunReport:
        """Translate one folder at a time; works with a single API key."""
        resource_dir = Path(resource_dir)
        report = RunReport(sources=dict(pairs))
        self.last_report = report
        include_source, targets = self._split_folders(folders)

        try:
            self.cancel_token.raise_if_cancelled()
            if include_source:
                report.results.append(self._write_source_folder(pairs, resource_dir))
            for position, folder in enumerate(targets):
                if position > 0:
                    self._pause(self.settings.inter_language_delay)
                report.results.append(self._run_language(pairs, resource_dir, folder))
        except TranslationCancelledError:
            self._cancelled(report)
            raise

        return self._finish(report, folders)

    # ------------------------------------------------------------------
    # File level entry points
    # ------------------------------------------------------------------

    def translate_resource_file(
        self,
        source_file: Union[str, Path],
        resource_dir: Optional[Union[str, Path]] = None,
        folders: Sequence[str] = (),
        sequential: bool = False,
    ) -> RunReport:
        """
        Translate a source strings.xml into the given folders.

        ``resource_dir`` defaults to the parent of the source file's folder.
        The folder holding the source file itself is never written.

        Raises:
            ResourceParseError: If the source file cannot be parsed.
        """
        source_path = Path(source_file)
        resource_dir = Path(resource_dir) if resource_dir else source_path.resolve().parent.parent

        self._emit(Stage.PARTITIONING, f"Reading {source_path}")
        pairs = extract_translatable(read_source_file(source_path))

        source_resolved = source_path.resolve()
        targets = [
            folder
            for folder in folders
            if self._output_path(resource_dir, folder).resolve() != source_resolved
        ]

        if not pairs:
            logger.info("No translatable strings found in source file")
            report = RunReport()
            self.last_report = report
            return self._finish(report, targets)

        run = self.translate_sequentially if sequential else self.translate_languages
        return run(pairs, resource_dir, targets)

    def add_string(
        self,
        name: str,
        text: str,
        resource_dir: Union[str, Path],
        folders: Sequence[str],
    ) -> RunReport:
        """
        Add one string to every folder, translating it for non-source folders.

        Existing files keep their layout; the entry is updated in place or
        appended at the end.
        """
        resource_dir = Path(resource_dir)
        report = RunReport(sources={name: text})
        self.last_report = report
        unique = list(dict.fromkeys(folders))

        try:
            for position, folder in enumerate(unique):
                self.cancel_token.raise_if_cancelled()
                if position > 0 and folder != VALUES_PREFIX:
                    self._pause(self.settings.inter_language_delay)
                report.results.append(self._add_to_folder(name, text, resource_dir, folder))
        except TranslationCancelledError:
            self._cancelled(report)
            raise

        return self._finish(report, unique)

    def _add_to_folder(self, name: str, text: str, resource_dir: Path, folder: str) -> LanguageResult:
        result = LanguageResult(folder)
        try:
            if folder == VALUES_PREFIX:
                value = text
            else:
                translated = self._run_language_pairs([(name, text)], folder)
                value = translated[0][1]
            result.output_path = add_or_update_file(self._output_path(resource_dir, folder), name, value)
            result.translated = 1
            result.translations = [(name, value)]
            self._emit(Stage.MERGING, f"Added {name} to {folder}", language=language_from_folder(folder))
        except (TranslationCancelledError, NoCredentialsError):
            raise
        except (TranslatorError, OSError) as e:
            logger.error(f"Adding {name} to {folder} failed: {e}")
            result.error = e
        return result

    def _run_language_pairs(self, pairs: List[Pair], folder: str) -> List[Pair]:
        language = language_from_folder(folder)
        if language is None:
            raise TranslatorError(f"{folder} is not a values folder")
        return self.translate_language(pairs, language)
