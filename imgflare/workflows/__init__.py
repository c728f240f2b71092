"""Workflows that change local and remote state together."""
from .batch import BatchItem, BatchItemResult, BatchReport, load_batch_file, run_batch
from .delete import DeleteOutcome, DeleteStatus, DeleteWorkflow
from .upload import UploadOutcome, UploadWorkflow, local_source_url

__all__ = [
    "BatchItem",
    "BatchItemResult",
    "BatchReport",
    "DeleteOutcome",
    "DeleteStatus",
    "DeleteWorkflow",
    "UploadOutcome",
    "UploadWorkflow",
    "load_batch_file",
    "local_source_url",
    "run_batch",
]
