"""Device-side offline queue and sync for scanned receipt URLs."""

from src.device.capture import CaptureOutcome, ScanCapture
from src.device.client import IngestionClient, SubmissionError, SubmissionResult
from src.device.config import DeviceSettings, get_device_settings
from src.device.models import PendingScan
from src.device.queue import LocalScanQueue
from src.device.reconciler import SyncReconciler, SyncReport, SyncResult
from src.device.session import SessionProvider, StaticSession

__all__ = [
    "CaptureOutcome",
    "DeviceSettings",
    "IngestionClient",
    "LocalScanQueue",
    "PendingScan",
    "ScanCapture",
    "SessionProvider",
    "StaticSession",
    "SubmissionError",
    "SubmissionResult",
    "SyncReconciler",
    "SyncReport",
    "SyncResult",
    "get_device_settings",
]
