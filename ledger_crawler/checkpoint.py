"""
Cursor checkpoint file.

Persists the last fully processed signature so a later process can resume
the sweep with CrawlEngine.run(resume_from=...). Optional: the engine
itself never reads or writes checkpoints.
"""

import json
import logging
import time
from pathlib import Path
from typing import Dict, Optional, Union


logger = logging.getLogger(__name__)


class CursorCheckpoint:
    """JSON checkpoint: {"target", "last_signature", "timestamp"}."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self, target: str) -> Optional[str]:
        """Last signature saved for target, or None."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r') as f:
                data: Dict = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load checkpoint {self.path}: {e}")
            return None

        if data.get("target") != target:
            logger.warning(
                f"Checkpoint {self.path} belongs to {data.get('target')}, not {target} - ignoring"
            )
            return None

        signature = data.get("last_signature")
        logger.info(f"Loaded checkpoint: resuming {target} before {signature}")
        return signature

    def save(self, target: str, last_signature: Optional[str]):
        if last_signature is None:
            return
        payload = {
            "target": target,
            "last_signature": last_signature,
            "timestamp": time.time(),
        }
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, 'w') as f:
            json.dump(payload, f)
        tmp.replace(self.path)
        logger.info(f"Checkpoint saved at {last_signature}")

    def clear(self):
        if self.path.exists():
            self.path.unlink()
