# backend/advisory_radar/services/storage/raw_archive.py

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from advisory_radar.core.errors import ArchiveError
from advisory_radar.schemas.sources import RawCacheItem

logger = logging.getLogger(__name__)

SOURCE_CACHE_DIR = "source-cache"
SNAPSHOT_DIR = "fetch-snapshots"


def _body_bytes(body) -> bytes:
    return body if isinstance(body, bytes) else str(body).encode("utf-8")


class RawArchiveStore:
    """
    Content-addressed archive of raw provider responses plus per-run snapshots.

    Layout under `root`:
      source-cache/{source_id}/{YYYY-MM-DD}/{HHMMSS}_{sha256[:12]}.{ext}
      source-cache/{source_id}/{YYYY-MM-DD}/{HHMMSS}_{run_id}_manifest.json
      fetch-snapshots/{YYYY-MM-DD}/{run_id}.json

    Paths returned to callers are relative to `root`.
    """

    def __init__(self, root: Path, enabled: bool = True) -> None:
        self.root = Path(root)
        self.enabled = enabled

    def ensure_ready(self) -> None:
        if not self.enabled:
            raise ArchiveError("raw archive disabled by configuration")
        try:
            (self.root / SOURCE_CACHE_DIR).mkdir(parents=True, exist_ok=True)
            (self.root / SNAPSHOT_DIR).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveError(f"archive root {self.root} not writable: {e}") from e

    # --------------------------------------------------------
    # Raw payloads
    # --------------------------------------------------------
    def archive_source_payloads(
        self,
        *,
        run_id: str,
        source_id: str,
        source_name: str,
        items: List[RawCacheItem],
        cached_at: datetime,
    ) -> Optional[str]:
        """
        Write each raw body plus a manifest. Returns the manifest path,
        or None when there was nothing to archive.
        """
        if not items:
            return None

        date_part = cached_at.strftime("%Y-%m-%d")
        time_part = cached_at.strftime("%H%M%S")
        prefix = Path(SOURCE_CACHE_DIR) / source_id / date_part

        manifest_items: List[Dict[str, Any]] = []
        try:
            (self.root / prefix).mkdir(parents=True, exist_ok=True)
            for item in items:
                body = _body_bytes(item.body)
                digest = hashlib.sha256(body).hexdigest()
                rel = prefix / f"{time_part}_{digest[:12]}.{item.extension}"
                (self.root / rel).write_bytes(body)
                manifest_items.append(
                    {
                        "label": item.label,
                        "url": item.url,
                        "contentType": item.content_type,
                        "path": rel.as_posix(),
                        "sha256": digest,
                        "bytes": len(body),
                    }
                )

            manifest_rel = prefix / f"{time_part}_{run_id}_manifest.json"
            manifest = {
                "runId": run_id,
                "sourceId": source_id,
                "sourceName": source_name,
                "cachedAt": cached_at.isoformat(),
                "items": manifest_items,
            }
            (self.root / manifest_rel).write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        except OSError as e:
            raise ArchiveError(f"failed to archive {source_id}: {e}") from e

        return manifest_rel.as_posix()

    # --------------------------------------------------------
    # Run snapshots
    # --------------------------------------------------------
    def write_snapshot(self, run_id: str, started_at: datetime, snapshot: Dict[str, Any]) -> str:
        rel = Path(SNAPSHOT_DIR) / started_at.strftime("%Y-%m-%d") / f"{run_id}.json"
        try:
            (self.root / rel).parent.mkdir(parents=True, exist_ok=True)
            (self.root / rel).write_text(json.dumps(snapshot, indent=2, default=str), encoding="utf-8")
        except OSError as e:
            raise ArchiveError(f"failed to write snapshot for run {run_id}: {e}") from e
        return rel.as_posix()

    def read(self, rel_path: str) -> bytes:
        return (self.root / rel_path).read_bytes()
