"""Loguru setup and per-upload debug artifacts."""

import json
import re
import sys
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

# Records logged outside ``logger.contextualize(upload=...)`` show this placeholder
NO_UPLOAD = "-"

LOG_FORMAT = (
    "<level>{level: <8}</level> | <magenta>{extra[upload]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

_UNSAFE_NAME_RE = re.compile(r"[^\w.-]+")


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """Send logs to stderr, tagged with the upload being ingested.

    Args:
        verbose: Show INFO records (per-file counts, strategy used, timings)
        debug: Show DEBUG records (every skipped line and duplicate)
    """
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = "WARNING"

    logger.remove()
    logger.configure(extra={"upload": NO_UPLOAD})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=True)


def _safe_name(name: str) -> str:
    return _UNSAFE_NAME_RE.sub("_", name).strip("._") or "upload"


def _jsonable(obj: object) -> object:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    return str(obj)


class DebugArtifacts:
    """Intermediate output of each ingestion stage, one folder per upload.

    ``<output_dir>/<upload>/text_<strategy>.txt`` holds the recovered PDF
    text; ``parsed.json``, ``categorized.json`` and the model exchange
    ``batch_<n>_request.json`` / ``batch_<n>_response.json`` hold records.
    Nothing is written when ``output_dir`` is None.
    """

    def __init__(self, output_dir: Path | None = None):
        self.output_dir = output_dir
        if output_dir is not None:
            output_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Debug artifacts will be saved to: {output_dir}")

    def path_for(self, upload: str, stage: str, suffix: str) -> Path | None:
        """Artifact path for one stage of one upload, creating the upload folder."""
        if self.output_dir is None:
            return None
        folder = self.output_dir / _safe_name(upload)
        folder.mkdir(exist_ok=True)
        return folder / f"{_safe_name(stage)}{suffix}"

    def save_text(self, upload: str, stage: str, content: str) -> Path | None:
        path = self.path_for(upload, stage, ".txt")
        if path is None:
            return None
        path.write_text(content, encoding="utf-8")
        logger.debug(f"Saved {stage} text: {path}")
        return path

    def save_json(self, upload: str, stage: str, data: object) -> Path | None:
        """Save records as JSON; pydantic models (also inside lists and dicts) are dumped in JSON mode."""
        path = self.path_for(upload, stage, ".json")
        if path is None:
            return None
        path.write_text(json.dumps(data, indent=2, default=_jsonable), encoding="utf-8")
        logger.debug(f"Saved {stage} records: {path}")
        return path
