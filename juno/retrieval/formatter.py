"""Render ranked results into a prompt-ready context block."""

from __future__ import annotations

from typing import Sequence

from juno.models import RankedResult

RESULT_SEPARATOR = "\n\n---\n\n"


def format_results(results: Sequence[RankedResult]) -> str:
    """Join one labelled block per result, keeping the caller's order."""

    return RESULT_SEPARATOR.join(_format_one(result) for result in results)


def _format_one(result: RankedResult) -> str:
    metadata = result.item.metadata
    return (
        f"filePath: {metadata.get('filePath', '')}\n"
        f"language: {metadata.get('languageId', '')}\n"
        f"content:\n{metadata.get('text', '')}"
    )
