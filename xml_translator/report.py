#!/usr/bin/env python3
"""Markdown summary of a translation run."""

from .batch_orchestrator import RunReport
from .language_utils import get_language_name, language_from_folder


def _cell(text: str) -> str:
    return text.replace("\n", " ").replace("|", "\\|")


def create_translation_report(run: RunReport) -> str:
    """
    Generate a Markdown formatted translation report as a string.
    """
    report = "# Translation Report\n\n"

    if run.cancelled:
        report += "**Translation cancelled by user.** Languages listed below were written before cancelling.\n\n"

    if not run.results:
        report += "No translations were performed."
        return report

    report += f"Strings: {run.total_strings}, "
    report += f"languages succeeded: {len(run.succeeded)}, failed: {len(run.failed)}\n\n"

    for result in run.results:
        language = language_from_folder(result.folder) or result.folder
        lang_name = get_language_name(language)
        report += f"## Language: {lang_name} ({result.folder})\n\n"

        if not result.succeeded:
            report += f"Failed: {_cell(str(result.error))}\n\n"
            continue

        if result.output_path is not None:
            report += f"Written to `{result.output_path}` ({result.translated} strings)\n\n"

        if result.translations:
            report += "| Key | Source Text | Translated Text |\n"
            report += "| --- | ----------- | --------------- |\n"
            for key, translation in result.translations:
                source = run.sources.get(key, "")
                report += f"| {key} | {_cell(source)} | {_cell(translation)} |\n"
            report += "\n"

    return report
