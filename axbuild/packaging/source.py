"""
Source package: the exported `.axmodel` files of every model, in one archive.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from axbuild.packaging.tools import ModelExporter, ZipCompressor

logger = logging.getLogger(__name__)


class SourcePackageBuilder:
    def __init__(
        self,
        exporter: ModelExporter,
        compressor: ZipCompressor,
        working_path: Optional[Path] = None,
    ) -> None:
        self._exporter = exporter
        self._compressor = compressor
        self._working_path = working_path

    def build(self, models: Sequence[str], metadata_path: Path, output_path: Path) -> Path:
        if not models:
            raise ValueError("No models to export")

        if self._working_path is not None:
            self._working_path.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix="axbuild-source-", dir=self._working_path))
        try:
            exported: List[Path] = []
            for model in models:
                path = self._exporter.export(model, metadata_path, staging)
                logger.info("Exported model %s to %s", model, path.name)
                exported.append(path)

            return self._compressor.compress(
                exported,
                staging,
                output_path,
                error_log=staging / "zip-errors.log",
            )
        finally:
            shutil.rmtree(staging, ignore_errors=True)
