"""JSON run manifests recorded next to backtest artifacts."""

from __future__ import annotations

import json
import platform
import sys
import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from coinsight.core.utils.errors import ArtifactError

MANIFEST_VERSION = 1


@dataclass
class RunManifestWriter:
    """Collect run metadata and write it as one JSON document."""

    output_dir: Path
    command: str
    run_id: str
    manifest_name: str = "run_manifest.json"
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    _payload: dict[str, Any] = field(init=False)

    def __post_init__(self) -> None:
        self._payload = {
            "manifest_version": MANIFEST_VERSION,
            "command": self.command,
            "run_id": self.run_id,
            "status": "running",
            "started_at": self.started_at.isoformat(),
            "finished_at": None,
            "duration_seconds": None,
            "environment": {
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "argv": list(sys.argv),
            },
            "inputs": {},
            "context": {},
            "result": {},
            "failure": {},
        }

    @property
    def status(self) -> str:
        """Current manifest status (``running``, ``success`` or ``failed``)."""
        return str(self._payload["status"])

    @property
    def path(self) -> Path:
        return self.output_dir / self.manifest_name

    def set_inputs(self, config_path: Path | None = None, cache_dir: Path | None = None) -> None:
        """Record the files the run was started from."""
        self._payload["inputs"] = {
            "config_path": None if config_path is None else str(config_path.resolve()),
            "cache_dir": None if cache_dir is None else str(cache_dir.resolve()),
        }

    def set_context(
        self,
        strategy_type: str,
        asset_ids: list[str],
        start: str,
        end: str,
    ) -> None:
        """Record what was simulated."""
        self._payload["context"] = {
            "strategy_type": strategy_type,
            "asset_ids": sorted(asset_ids),
            "date_range": {"start": start, "end": end},
        }

    def mark_success(
        self,
        metrics: dict[str, float],
        artifact_paths: list[str],
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Mark the run successful with its headline metrics."""
        self._payload["status"] = "success"
        self._payload["result"] = {
            "metrics": dict(metrics),
            "artifact_paths": sorted({str(path) for path in artifact_paths}),
            "extra": dict(extra or {}),
        }
        self._payload["failure"] = {}

    def mark_failure(self, exc: BaseException) -> None:
        """Mark the run failed and keep the exception diagnostics."""
        self._payload["status"] = "failed"
        self._payload["result"] = {}
        self._payload["failure"] = {
            "exception_type": type(exc).__name__,
            "error_code": getattr(exc, "error_code", None),
            "message": str(exc),
            "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }

    def write(self) -> Path:
        """Finalize timing fields and write the manifest file."""
        finished_at = datetime.now(tz=UTC)
        self._payload["finished_at"] = finished_at.isoformat()
        self._payload["duration_seconds"] = (finished_at - self.started_at).total_seconds()

        manifest_path = self.path
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            manifest_path.write_text(
                json.dumps(self._payload, indent=2, sort_keys=True, default=str) + "\n",
                encoding="utf-8",
            )
        except OSError as exc:
            raise ArtifactError(f"Failed to write run manifest {manifest_path}: {exc}") from exc
        return manifest_path
