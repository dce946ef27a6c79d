"""Job descriptor parsed from a queue message, and the per-run state the orchestrator keeps."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class JobDescriptor:
    """One "video uploaded" notification: which video, and where its source blob lives."""

    video_id: str
    source_key: str
    original_name: str
    mime_type: str = ""


@dataclass
class JobRun:
    """
    Orchestrator-local state for one pipeline run. Never persisted; whatever
    the ledger should know is copied into the terminal write.
    """

    job: JobDescriptor
    outputs: Dict[str, str] = field(default_factory=dict)  # variant -> uploaded key
    derived: Dict[str, Any] = field(default_factory=dict)   # variant -> DerivedFile
    metadata: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    error: Optional[BaseException] = None

    def fail(self, exc: BaseException):
        if self.error is None:
            self.error = exc
