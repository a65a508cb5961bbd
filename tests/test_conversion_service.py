from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from magica_bridge.config import AppSettings
from magica_bridge.converter import SceneDocumentError
from magica_bridge.models import ConversionRequest, InlineConversionRequest, SceneDocument
from magica_bridge.services.conversion import ConversionFailedError, ConversionService


@pytest.fixture
def scene_file(tmp_path: Path, scene_document: dict) -> Path:
    path = tmp_path / "avatar.json"
    path.write_text(json.dumps(scene_document))
    return path


def _components(document: dict) -> list[dict]:
    return [c for node in document["nodes"] for c in node["components"]]


def test_convert_local_scene(tmp_path: Path, scene_file: Path):
    work_dir = tmp_path / "work"
    settings = AppSettings(work_dir=work_dir)
    service = ConversionService(settings=settings)

    response = service.convert(ConversionRequest(source_uri=str(scene_file), skip_exclusions=True))

    assert response.status == "COMPLETED"
    assert response.artifacts, "Expected at least one artifact"

    artifact_path = Path(response.artifacts[0].uri)
    assert artifact_path.exists()
    assert artifact_path.name == "avatar.converted.json"
    assert artifact_path.is_relative_to(settings.work_dir / "artifacts")

    (summary,) = response.summaries
    assert (summary.attempted, summary.converted, summary.skipped) == (3, 2, 1)
    assert any(n.level == "info" and "SKIPPING" in n.message for n in response.notices)

    converted = json.loads(artifact_path.read_text())
    types = [c["type"] for c in _components(converted)]
    assert types.count("MagicaCloth") == 2
    assert types.count("DynamicBone") == 1
    assert "Animator" in types


def test_convert_writes_to_output_directory(tmp_path: Path, scene_file: Path):
    service = ConversionService(settings=AppSettings(work_dir=tmp_path / "work"))
    output_dir = tmp_path / "out"

    response = service.convert(
        ConversionRequest(source_uri=str(scene_file), output_uri=str(output_dir), cleanup_residual=True)
    )

    assert Path(response.artifacts[0].uri) == output_dir / "avatar.converted.json"
    assert response.summaries[0].converted == 3


def test_convert_s3_scene(tmp_path: Path, scene_document: dict):
    service = ConversionService(settings=AppSettings(work_dir=tmp_path / "work"))
    client = MagicMock()
    client.download_file.side_effect = lambda bucket, key, dest: Path(dest).write_text(json.dumps(scene_document))

    with patch.object(service, "_s3", return_value=client):
        response = service.convert(
            ConversionRequest(source_uri="s3://scenes/in/avatar.json", output_uri="s3://scenes/out")
        )

    client.download_file.assert_called_once()
    assert client.download_file.call_args.args[:2] == ("scenes", "in/avatar.json")
    uploaded = client.upload_file.call_args.args
    assert uploaded[1:] == ("scenes", "out/avatar.converted.json")
    assert response.artifacts[0].uri == "s3://scenes/out/avatar.converted.json"


def test_s3_failure_is_reported(tmp_path: Path):
    service = ConversionService(settings=AppSettings(work_dir=tmp_path / "work"))
    client = MagicMock()
    client.download_file.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")

    with patch.object(service, "_s3", return_value=client), pytest.raises(ConversionFailedError):
        service.convert(ConversionRequest(source_uri="s3://scenes/missing.json"))


def test_missing_input(tmp_path: Path):
    service = ConversionService(settings=AppSettings(work_dir=tmp_path / "work"))

    with pytest.raises(FileNotFoundError):
        service.convert(ConversionRequest(source_uri=str(tmp_path / "nope.json")))


def test_invalid_document(tmp_path: Path):
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"nodes": [{"id": "a"}]}))
    service = ConversionService(settings=AppSettings(work_dir=tmp_path / "work"))

    with pytest.raises(SceneDocumentError):
        service.convert(ConversionRequest(source_uri=str(path)))


def test_convert_inline_single_component(tmp_path: Path, scene_document: dict):
    service = ConversionService(settings=AppSettings(work_dir=tmp_path / "work"))
    request = InlineConversionRequest(
        scene=SceneDocument.model_validate(scene_document),
        component_id="db_tail",
        use_container=False,
    )

    response = service.convert_inline(request)

    assert response.summaries[0].context_name == "Tail (Single Component)"
    ids = [c["id"] for c in _components(response.scene)]
    assert "db_tail" not in ids
    assert "db_breast" in ids
    names = [node["name"] for node in response.scene["nodes"]]
    assert "MC_Tail" in names and "MC2" not in names


def test_unknown_scope_is_rejected(tmp_path: Path, scene_document: dict):
    service = ConversionService(settings=AppSettings(work_dir=tmp_path / "work"))
    scene = SceneDocument.model_validate(scene_document)

    with pytest.raises(SceneDocumentError):
        service.convert_inline(InlineConversionRequest(scene=scene, root="missing"))
    with pytest.raises(SceneDocumentError):
        service.convert_inline(InlineConversionRequest(scene=scene, component_id="missing"))


def test_settings_drive_policy(tmp_path: Path, scene_document: dict):
    settings = AppSettings(work_dir=tmp_path / "work", spring_keywords=["tail"], skip_exclusions=True)
    service = ConversionService(settings=settings)

    response = service.convert_inline(
        InlineConversionRequest(scene=SceneDocument.model_validate(scene_document))
    )

    clothes = {c["source_id"]: c for c in _components(response.scene) if c["type"] == "MagicaCloth"}
    assert set(clothes) == {"db_tail", "db_breast"}
    assert clothes["db_tail"]["cloth_type"] == "bone_spring"
    assert clothes["db_breast"]["cloth_type"] == "bone_cloth"
