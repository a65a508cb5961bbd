from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class NodeModel(BaseModel):
    id: str
    name: str
    parent: Optional[str] = None
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    scale: tuple[float, float, float] = (1.0, 1.0, 1.0)
    components: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("components")
    @classmethod
    def validate_components(cls, value: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for component in value:
            if "type" not in component or "id" not in component:
                msg = "every component needs a 'type' and an 'id'"
                raise ValueError(msg)
        return value


class SceneDocument(BaseModel):
    """World-space scene hierarchy with DynamicBone and MagicaCloth components."""

    nodes: list[NodeModel]


class ConversionTarget(BaseModel):
    root: Optional[str] = Field(
        default=None,
        description="Node whose hierarchy is converted; all top-level nodes when omitted",
    )
    component_id: Optional[str] = Field(
        default=None,
        description="Convert this single DynamicBone component instead of a hierarchy",
    )
    skip_exclusions: Optional[bool] = Field(
        default=None,
        description="Leave DynamicBones with exclusions untouched; settings default when omitted",
    )
    use_container: Optional[bool] = Field(default=None)
    cleanup_residual: bool = Field(
        default=False,
        description="Remove DynamicBones that were left unconverted after the pass",
    )

    @model_validator(mode="after")
    def validate_scope(self) -> "ConversionTarget":
        if self.root and self.component_id:
            msg = "root and component_id are mutually exclusive"
            raise ValueError(msg)
        return self


class ConversionRequest(ConversionTarget):
    source_uri: str = Field(description="S3 URI or absolute local path to the scene document")
    output_uri: Optional[str] = Field(
        default=None,
        description="Optional S3 URI or local directory where the converted scene should be stored",
    )

    @field_validator("source_uri")
    @classmethod
    def validate_source_uri(cls, value: str) -> str:
        if not value:
            msg = "source_uri must not be empty"
            raise ValueError(msg)
        return value


class InlineConversionRequest(ConversionTarget):
    scene: SceneDocument


class NoticeModel(BaseModel):
    level: str
    message: str
    source_id: Optional[str] = None
    node_name: Optional[str] = None


class ConversionSummaryModel(BaseModel):
    context_name: str
    attempted: int
    converted: int
    skipped: int
    failed: int
    residual_removed: int
    message: str


class ConversionArtifact(BaseModel):
    uri: str
    content_type: str


class ConversionResponse(BaseModel):
    status: str
    summaries: list[ConversionSummaryModel] = Field(default_factory=list)
    notices: list[NoticeModel] = Field(default_factory=list)
    artifacts: list[ConversionArtifact] = Field(default_factory=list)
    scene: Optional[dict[str, Any]] = None
