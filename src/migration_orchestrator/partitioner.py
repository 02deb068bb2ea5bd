"""
Splitting the repository list into batches.
"""

from __future__ import annotations

import itertools
import json
import logging
import math
import re
import time
from typing import TYPE_CHECKING, Final

from .exceptions import InvalidInput
from .models import Batch, JobMetadata

if TYPE_CHECKING:
    from collections.abc import Sequence

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE: Final[int] = 5

# Process-wide, so two partitions created in the same millisecond still get distinct tokens
_token_sequence = itertools.count()

_WRAPPER_TAG_PATTERN: Final[re.Pattern[str]] = re.compile(r"</?(?:details|summary)[^>]*>", re.IGNORECASE)
_HTML_COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"<!--.*?-->", re.DOTALL)


def make_correlation_token(batch_number: int, timestamp_ms: int | None = None) -> str:
    """Build the token used to find the workflow run of a batch.

    Format: ``batch-<number>-<epoch millis>-<sequence>``.
    """
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    return f"batch-{batch_number}-{timestamp_ms}-{next(_token_sequence)}"


def create_batches(
    repositories: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
    metadata: JobMetadata | None = None,
) -> list[Batch]:
    """Split repositories into ordered batches of at most ``batch_size``.

    Args:
        repositories: Repository URLs in migration order
        batch_size: Maximum number of repositories per batch
        metadata: Settings copied onto every batch

    Returns:
        Batches numbered from 1; concatenating their repositories gives back the input

    Raises:
        InvalidInput: If batch_size is not positive
    """
    if batch_size <= 0:
        msg = f"Batch size must be positive, got {batch_size}"
        raise InvalidInput(msg)

    metadata = metadata or JobMetadata()
    total = len(repositories)
    batch_count = math.ceil(total / batch_size)
    timestamp_ms = time.time_ns() // 1_000_000

    batches: list[Batch] = []
    for index in range(batch_count):
        start = index * batch_size
        number = index + 1
        batches.append(
            Batch(
                number=number,
                repositories=tuple(repositories[start : start + batch_size]),
                correlation_token=make_correlation_token(number, timestamp_ms),
                total_batches=batch_count,
                total_repositories=total,
                metadata=metadata,
            )
        )

    logger.info(f"Created {batch_count} batches for {total} repositories")
    return batches


def _keep_line(line: str) -> bool:
    if not line:
        return False
    if "<" in line and ">" in line:
        return False
    if line.startswith("#") and "://" not in line:
        return False
    return "://" in line or "github." in line


def parse_repo_list(text: str) -> list[str]:
    """Parse repository URLs from a JSON array or from free text.

    Free text may be pasted straight from an issue: ``<details>`` and
    ``<summary>`` wrappers, HTML comments, headings and other prose lines
    are dropped.

    Raises:
        InvalidInput: If the text looks like a JSON array but is not a list of strings
    """
    stripped = text.strip()
    if stripped.startswith("["):
        logger.debug("Parsing repositories from JSON array")
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON repository list: {e}"
            raise InvalidInput(msg) from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            msg = "JSON repository list must be an array of strings"
            raise InvalidInput(msg)
        return [item.strip() for item in parsed if item.strip()]

    logger.debug("Parsing repositories from text")
    cleaned = _WRAPPER_TAG_PATTERN.sub("", stripped)
    cleaned = _HTML_COMMENT_PATTERN.sub("", cleaned)
    return [line for line in (raw.strip() for raw in cleaned.splitlines()) if _keep_line(line)]
