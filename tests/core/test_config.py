"""配置加载器测试，覆盖默认及环境变量覆盖场景。"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from cortefacil.core import InvalidInputError, PipelineConfig, load_config, resolve_settings
from cortefacil.core.config import HighlightConfig


def test_load_config_defaults() -> None:
    cfg = load_config(env={})

    assert isinstance(cfg, PipelineConfig)
    assert cfg.highlight.sensitivity == 70
    assert cfg.highlight.base_segment_duration == 30
    assert cfg.highlight.min_total_seconds == 60
    assert cfg.highlight.max_total_seconds == 180
    assert cfg.highlight.duration_basis == "nominal"
    assert cfg.extract.video_codec == "copy"


def test_load_config_with_env_overrides(tmp_path: Path) -> None:
    custom_cfg = tmp_path / "custom.yaml"
    custom_cfg.write_text(
        """
highlight:
  sensitivity: 40
  base_segment_duration: 15
extract:
  ffmpeg_binary: /opt/ffmpeg/bin/ffmpeg
        """.strip()
    )

    cfg = load_config(custom_cfg, env={"CORTEFACIL_SENSITIVITY": "90"})

    assert cfg.highlight.sensitivity == 90  # 环境变量覆盖文件值
    assert cfg.highlight.base_segment_duration == 15
    assert cfg.extract.ffmpeg_binary == "/opt/ffmpeg/bin/ffmpeg"


def test_load_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    custom_cfg = tmp_path / "env.yaml"
    custom_cfg.write_text("highlight:\n  output_prefix: highlights\n")
    monkeypatch.setenv("CORTEFACIL_CONFIG_PATH", str(custom_cfg))

    cfg = load_config()

    assert cfg.highlight.output_prefix == "highlights"


def test_min_total_must_not_exceed_max_total() -> None:
    with pytest.raises(ValidationError):
        HighlightConfig(min_total_seconds=200, max_total_seconds=180)


def test_resolve_settings_uses_defaults_for_missing_values() -> None:
    settings = resolve_settings(PipelineConfig(), sensitivity=None, base_segment_duration=12)

    assert settings.sensitivity == 70
    assert settings.base_segment_duration == 12


@pytest.mark.parametrize(
    "sensitivity, base",
    [(-1, 30), (101, 30), (50, 4), (50, 61)],
)
def test_resolve_settings_rejects_out_of_range(sensitivity: int, base: int) -> None:
    with pytest.raises(InvalidInputError):
        resolve_settings(PipelineConfig(), sensitivity=sensitivity, base_segment_duration=base)


@pytest.mark.parametrize(
    "env",
    [{"CORTEFACIL_SENSITIVITY": "150"}, {"CORTEFACIL_SEGMENT_SECONDS": "abc"}],
)
def test_bad_env_override_is_invalid_input(env: dict) -> None:
    with pytest.raises(InvalidInputError):
        load_config(env=env)
