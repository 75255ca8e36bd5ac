"""配置加载工具，集中管理仓内/环境参数。"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Mapping, MutableMapping, Sequence, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidInputError

CONFIG_ENV_KEY = "CORTEFACIL_CONFIG_PATH"

DurationBasis = Literal["nominal", "actual"]


class HighlightSettings(BaseModel):
    """单次运行的用户参数，对应页面上的两个滑块。"""

    model_config = ConfigDict(frozen=True)

    sensitivity: int = Field(default=70, ge=0, le=100)
    base_segment_duration: int = Field(default=30, ge=5, le=60)


class HighlightConfig(BaseModel):
    """拼接阶段参数：成片总时长区间、时长口径与失败策略。"""

    sensitivity: int = Field(default=70, ge=0, le=100)
    base_segment_duration: int = Field(default=30, ge=5, le=60)
    min_total_seconds: float = Field(default=60.0, gt=0)
    max_total_seconds: float = Field(default=180.0, gt=0)
    duration_basis: DurationBasis = "nominal"
    skip_failed_segments: bool = False
    output_prefix: str = "processed"

    @model_validator(mode="after")
    def _check_bounds(self) -> "HighlightConfig":
        if self.min_total_seconds > self.max_total_seconds:
            raise ValueError("min_total_seconds must not exceed max_total_seconds")
        return self

    def default_settings(self) -> HighlightSettings:
        return HighlightSettings(
            sensitivity=self.sensitivity,
            base_segment_duration=self.base_segment_duration,
        )


class ExtractConfig(BaseModel):
    """播放采集参数：ffmpeg 路径、读取块大小与停止超时。"""

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    video_codec: str = "copy"
    audio_codec: str = "copy"
    capture_audio: bool = True
    chunk_size: int = Field(default=64 * 1024, gt=0)
    stop_timeout_seconds: float = Field(default=5.0, gt=0)


class BlobConfig(BaseModel):
    """临时 blob 参数，超过阈值后落盘到临时文件。"""

    spool_max_bytes: int = Field(default=32 * 1024 * 1024, ge=0)


class PipelineConfig(BaseModel):
    """聚合各阶段配置。"""

    highlight: HighlightConfig = Field(default_factory=HighlightConfig)
    extract: ExtractConfig = Field(default_factory=ExtractConfig)
    blobs: BlobConfig = Field(default_factory=BlobConfig)
    raw: Dict[str, Any] = Field(default_factory=dict, description="原始配置字典，便于调试。")

    def model_post_init(self, __context: Any) -> None:  # type: ignore[override]
        # 保留原始配置便于后续 diff/日志输出
        if not self.raw:
            self.raw = self.to_raw_dict()

    def to_raw_dict(self) -> Dict[str, Any]:
        """导出基础 dict，供日志输出使用。"""

        return {
            "highlight": self.highlight.model_dump(),
            "extract": self.extract.model_dump(),
            "blobs": self.blobs.model_dump(),
        }


def resolve_settings(
    config: PipelineConfig,
    *,
    sensitivity: int | None = None,
    base_segment_duration: int | None = None,
) -> HighlightSettings:
    """合并用户参数与配置默认值；缺省取默认，越界直接报 InvalidInputError。"""

    defaults = config.highlight.default_settings()
    payload = {
        "sensitivity": defaults.sensitivity if sensitivity is None else sensitivity,
        "base_segment_duration": (
            defaults.base_segment_duration if base_segment_duration is None else base_segment_duration
        ),
    }
    try:
        return HighlightSettings.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(f"参数非法: {exc.errors(include_url=False)}") from exc


def _default_config_path() -> Path:
    return Path(__file__).resolve().parents[3] / "configs" / "baseline.yaml"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise InvalidInputError(f"配置文件 {path} 内容需为字典")
        return data


ENV_OVERRIDE_MAP: Dict[str, Tuple[Sequence[str], Callable[[str], Any]]] = {
    "CORTEFACIL_SENSITIVITY": (("highlight", "sensitivity"), int),
    "CORTEFACIL_SEGMENT_SECONDS": (("highlight", "base_segment_duration"), int),
    "CORTEFACIL_FFMPEG": (("extract", "ffmpeg_binary"), str),
    "CORTEFACIL_FFPROBE": (("extract", "ffprobe_binary"), str),
}


def _apply_env_overrides(data: MutableMapping[str, Any], env: Mapping[str, str]) -> None:
    for env_key, (path, caster) in ENV_OVERRIDE_MAP.items():
        if env_key not in env:
            continue
        try:
            value = caster(env[env_key])
        except ValueError as exc:
            raise InvalidInputError(f"环境变量 {env_key} 取值非法: {env[env_key]!r}") from exc
        _set_nested_value(data, path, value)


def _set_nested_value(target: MutableMapping[str, Any], path: Sequence[str], value: Any) -> None:
    cursor: MutableMapping[str, Any] = target
    *parents, last = path
    for key in parents:
        if key not in cursor or not isinstance(cursor[key], MutableMapping):
            cursor[key] = {}
        cursor = cursor[key]  # type: ignore[assignment]
    cursor[last] = value


def load_config(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> PipelineConfig:
    """加载配置：优先显式路径，其次环境变量，最后回退默认 baseline。"""

    env_map = env if env is not None else os.environ
    config_path = path or env_map.get(CONFIG_ENV_KEY)
    target_path = Path(config_path).expanduser() if config_path else _default_config_path()
    data = _load_yaml(target_path)
    _apply_env_overrides(data, env_map)

    try:
        return PipelineConfig.model_validate({**data, "raw": data})
    except ValidationError as exc:
        raise InvalidInputError(f"配置非法 ({target_path}): {exc.errors(include_url=False)}") from exc
