from __future__ import annotations

import json
import shutil
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Optional
from urllib.parse import urlparse
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from pydantic import ValidationError

from magica_bridge.config import AppSettings, get_settings
from magica_bridge.converter import (
    ConversionOptions,
    ConversionRunner,
    ConversionSummary,
    SceneDocumentError,
    SceneGraph,
)
from magica_bridge.models import (
    ConversionArtifact,
    ConversionRequest,
    ConversionResponse,
    ConversionSummaryModel,
    ConversionTarget,
    InlineConversionRequest,
    NoticeModel,
    SceneDocument,
)

CONTENT_TYPE = "application/json"


class ConversionFailedError(RuntimeError):
    """Raised when a scene document cannot be fetched or stored."""


class ConversionService:
    """Run DynamicBone to MagicaCloth conversions on scene documents."""

    def __init__(self, settings: Optional[AppSettings] = None) -> None:
        self.settings = settings or get_settings()
        self._s3_client = None

    def convert(self, request: ConversionRequest) -> ConversionResponse:
        logger.info("Starting conversion for {source}", source=request.source_uri)

        with TemporaryDirectory(prefix="magica-bridge-") as temp_dir:
            working_dir = Path(temp_dir)
            input_path = self._materialise_input(request.source_uri, working_dir)
            document = self._read_document(input_path)

            graph = SceneGraph.from_dict(document.model_dump())
            summaries = self.run(graph, request)

            job_id = uuid4().hex
            destination_uri = request.output_uri or self._default_output_uri(job_id)
            output_path = working_dir / f"{input_path.stem}.converted.json"
            output_path.write_text(json.dumps(graph.to_dict(), indent=2), encoding="utf-8")

            artifact = self._dispatch_artifact(output_path, destination_uri, job_id)
            logger.info("Conversion complete, stored {}", artifact.uri)

            return self._response(summaries, artifacts=[artifact])

    def convert_inline(self, request: InlineConversionRequest) -> ConversionResponse:
        graph = SceneGraph.from_dict(request.scene.model_dump())
        summaries = self.run(graph, request)
        return self._response(summaries, scene=graph.to_dict())

    def run(self, graph: SceneGraph, target: ConversionTarget) -> list[ConversionSummary]:
        """Convert the requested scope of ``graph`` in place."""
        options = ConversionOptions.from_settings(self.settings)
        if target.skip_exclusions is not None:
            options.skip_exclusions = target.skip_exclusions
        if target.use_container is not None:
            options.use_container = target.use_container

        runner = ConversionRunner(graph, options)

        if target.component_id:
            if graph.find_component(target.component_id) is None:
                msg = f"Unknown component: {target.component_id}"
                raise SceneDocumentError(msg)
            summary = runner.convert_component(target.component_id, cleanup=target.cleanup_residual)
            return [summary] if summary else []

        if target.root:
            if target.root not in graph.nodes:
                msg = f"Unknown root node: {target.root}"
                raise SceneDocumentError(msg)
            roots = [target.root]
        else:
            roots = [node.id for node in list(graph.nodes.values()) if node.parent is None]

        summaries = []
        for root_id in roots:
            summary = runner.convert_hierarchy(root_id, cleanup=target.cleanup_residual)
            if summary is not None and summary.attempted:
                summaries.append(summary)
        return summaries

    def _response(
        self,
        summaries: list[ConversionSummary],
        artifacts: Optional[list[ConversionArtifact]] = None,
        scene: Optional[dict] = None,
    ) -> ConversionResponse:
        notices = [
            NoticeModel(**notice.to_dict()) for summary in summaries for notice in summary.notices
        ]
        return ConversionResponse(
            status="COMPLETED",
            summaries=[
                ConversionSummaryModel(
                    **{k: v for k, v in summary.to_dict().items() if k != "notices"}
                )
                for summary in summaries
            ],
            notices=notices,
            artifacts=artifacts or [],
            scene=scene,
        )

    def _default_output_uri(self, job_id: str) -> Optional[str]:
        bucket = self.settings.output_bucket
        if not bucket:
            return None
        return f"s3://{bucket}/jobs/{job_id}"

    # Internal helpers -------------------------------------------------

    def _read_document(self, path: Path) -> SceneDocument:
        try:
            return SceneDocument.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            msg = f"Invalid scene document {path.name}: {exc}"
            raise SceneDocumentError(msg) from exc

    def _materialise_input(self, uri: str, working_dir: Path) -> Path:
        if self._is_s3_uri(uri):
            bucket, key = self._split_s3_uri(uri)
            filename = Path(key).name
            destination = working_dir / filename
            logger.debug("Downloading input from S3 {} to {}", uri, destination)
            try:
                self._s3().download_file(bucket, key, str(destination))
            except (BotoCoreError, ClientError) as exc:
                raise ConversionFailedError(f"Unable to download {uri}: {exc}") from exc
            return destination

        # Assume local path otherwise
        path = Path(uri)
        if not path.exists():
            msg = f"Input path does not exist: {uri}"
            raise FileNotFoundError(msg)
        if path.is_dir():
            msg = "Input path must be a file, not a directory"
            raise IsADirectoryError(msg)
        return path

    def _dispatch_artifact(
        self,
        artifact_path: Path,
        destination_uri: Optional[str],
        job_id: str,
    ) -> ConversionArtifact:
        if destination_uri and self._is_s3_uri(destination_uri):
            bucket, key_prefix = self._split_s3_uri(destination_uri)
            if key_prefix and not key_prefix.endswith("/"):
                key_prefix = f"{key_prefix}/"
            target_key = f"{key_prefix}{artifact_path.name}" if key_prefix else artifact_path.name
            logger.debug("Uploading artifact {} to s3://{}/{}", artifact_path, bucket, target_key)
            try:
                self._s3().upload_file(str(artifact_path), bucket, target_key)
            except (BotoCoreError, ClientError) as exc:
                raise ConversionFailedError(f"Unable to upload {artifact_path.name}: {exc}") from exc
            return ConversionArtifact(uri=f"s3://{bucket}/{target_key}", content_type=CONTENT_TYPE)

        target_dir: Path
        if destination_uri:
            target_dir = Path(destination_uri)
        else:
            target_dir = self.settings.work_dir / "artifacts" / job_id

        target_dir.mkdir(parents=True, exist_ok=True)
        target_path = target_dir / artifact_path.name
        logger.debug("Copying artifact {} to {}", artifact_path, target_path)
        shutil.copy2(artifact_path, target_path)
        return ConversionArtifact(uri=str(target_path), content_type=CONTENT_TYPE)

    def _is_s3_uri(self, uri: str) -> bool:
        return uri.startswith("s3://")

    def _split_s3_uri(self, uri: str) -> tuple[str, str]:
        parsed = urlparse(uri)
        if parsed.scheme != "s3" or not parsed.netloc:
            msg = f"Invalid S3 URI: {uri}"
            raise ValueError(msg)
        key = parsed.path.lstrip("/")
        return parsed.netloc, key

    def _s3(self):
        if self._s3_client is None:
            try:
                self._s3_client = boto3.client("s3", region_name=self.settings.aws_region)
            except (BotoCoreError, ClientError) as exc:  # pragma: no cover - boto specific
                logger.error("Unable to create S3 client: {}", exc)
                raise
        return self._s3_client


__all__ = [
    "ConversionFailedError",
    "ConversionService",
]
