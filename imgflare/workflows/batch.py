"""Batch uploads: run the upload workflow per item under a bounded pool."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..exceptions import ImgFlareError, ValidationError
from ..utils.logging import log_operation, setup_logger
from ..utils.validators import is_valid_image_batch_json
from .upload import UploadWorkflow

logger = setup_logger(__name__, context={"operation": "batch"})


@dataclass(slots=True)
class BatchItem:
    url: str
    force: bool = False


@dataclass(slots=True)
class BatchItemResult:
    """Independent outcome of one batch item."""

    url: str
    image_id: str | None = None
    persisted: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.persisted


@dataclass(slots=True)
class BatchReport:
    results: list[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[BatchItemResult]:
        return [result for result in self.results if result.ok]

    @property
    def failed(self) -> list[BatchItemResult]:
        return [result for result in self.results if not result.ok]


def load_batch_file(path: str | Path) -> list[BatchItem]:
    """
    Read and validate a batch JSON file.

    The file must hold a list of objects, each with a ``url`` and an optional
    boolean ``force``.

    Raises:
        ValidationError: If the file is missing, not JSON, or malformed
    """
    batch_path = Path(path)
    if not batch_path.is_file():
        raise ValidationError(f"File not found: {batch_path}")

    try:
        data: Any = json.loads(batch_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Could not read batch file {batch_path}: {exc}") from exc

    if not is_valid_image_batch_json(data):
        raise ValidationError(
            'Invalid JSON format. Expected an array of objects with a "url" property.'
        )

    return [BatchItem(url=item["url"], force=bool(item.get("force", False))) for item in data]


async def run_batch(
    items: list[BatchItem],
    workflow: UploadWorkflow,
    *,
    concurrency: int = 3,
    force: bool = False,
) -> BatchReport:
    """Upload every item with at most ``concurrency`` uploads in flight.

    Results keep the input order. One item's failure never stops the others.
    """
    if concurrency < 1:
        raise ValidationError("Concurrency must be at least 1")

    semaphore = asyncio.Semaphore(concurrency)

    async def _upload(item: BatchItem) -> BatchItemResult:
        async with semaphore:
            try:
                outcome = await workflow.upload_url(item.url, force=force or item.force)
            except ImgFlareError as exc:
                return BatchItemResult(url=item.url, error=str(exc))
            return BatchItemResult(
                url=item.url,
                image_id=outcome.record.id,
                persisted=outcome.persisted,
                error=outcome.persist_error,
            )

    results = await asyncio.gather(*(_upload(item) for item in items))
    report = BatchReport(results=list(results))
    log_operation(
        logger,
        "batch",
        None,
        "success" if not report.failed else "partial",
        total=len(items),
        failed=len(report.failed),
    )
    return report
