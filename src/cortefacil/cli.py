"""CorteFácil Typer CLI，便于在命令行探测视频、预览采样计划并生成成片。"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from cortefacil.core import (
    CancelledByUser,
    HighlightError,
    InvalidInputError,
    PipelineConfig,
    ProgressEvent,
    format_timestamp,
    load_config,
    resolve_settings,
    setup_logging,
)
from cortefacil.extract import load_source, resolve_container
from cortefacil.pipeline import HighlightPipeline, total_steps_for
from cortefacil.sampling import sample_key_moments, segment_window

app = typer.Typer(help="CorteFácil 开发 CLI")


@app.callback()
def main() -> None:
    """CorteFácil 顶层 CLI，占位以展示子命令列表。"""

    return None


def _resolve_config(config_path: Optional[Path]) -> PipelineConfig:
    return load_config(config_path) if config_path else load_config()


def _echo_progress(event: ProgressEvent) -> None:
    typer.echo(f"[{event.percent:5.1f}%] {event.label}")


def _fail(message: str, code: int) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(code=code)


@app.command("probe")
def probe_cmd(
    video: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="待探测视频路径"),
    mime_type: Optional[str] = typer.Option(None, "--mime-type", help="覆盖根据扩展名推断的 mime type"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
) -> None:
    """输出源视频的 mime type 与时长（JSON）。"""

    try:
        cfg = _resolve_config(config_path)
        source = load_source(video, mime_type, config=cfg.extract)
    except InvalidInputError as exc:
        raise _fail(f"输入非法：{exc}", 2) from exc
    except HighlightError as exc:
        raise _fail(f"无法读取视频：{exc}", 1) from exc
    payload = source.to_dict()
    payload["duration_label"] = format_timestamp(source.duration)
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command("plan")
def plan_cmd(
    video: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="待处理视频路径"),
    sensitivity: Optional[int] = typer.Option(None, "--sensitivity", "-s", help="检测灵敏度 0-100"),
    segment_seconds: Optional[int] = typer.Option(None, "--segment-seconds", "-l", help="单片段时长 5-60 秒"),
    mime_type: Optional[str] = typer.Option(None, "--mime-type", help="覆盖推断的 mime type"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
) -> None:
    """只做采样，打印关键时刻与采集窗口，不启动播放采集。"""

    try:
        cfg = _resolve_config(config_path)
        settings = resolve_settings(cfg, sensitivity=sensitivity, base_segment_duration=segment_seconds)
        source = load_source(video, mime_type, config=cfg.extract)
        moments = sample_key_moments(source.duration, settings.sensitivity)
    except InvalidInputError as exc:
        raise _fail(f"输入非法：{exc}", 2) from exc
    except HighlightError as exc:
        raise _fail(f"无法读取视频：{exc}", 1) from exc

    typer.echo(f"{source.name}: {format_timestamp(source.duration)}, {len(moments)} 个关键时刻")
    typer.echo(f"总步数 {total_steps_for(len(moments))}")
    for index, moment in enumerate(moments):
        start, window = segment_window(moment, settings.base_segment_duration, source.duration)
        typer.echo(
            f" - #{index} moment={format_timestamp(moment)} start={format_timestamp(start)} "
            f"duration={format_timestamp(window)}"
        )


@app.command("highlight")
def highlight_cmd(
    video: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="待处理视频路径"),
    sensitivity: Optional[int] = typer.Option(None, "--sensitivity", "-s", help="检测灵敏度 0-100"),
    segment_seconds: Optional[int] = typer.Option(None, "--segment-seconds", "-l", help="单片段时长 5-60 秒"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="成片输出路径或目录，默认使用建议文件名"),
    segments_dir: Optional[Path] = typer.Option(None, "--segments-dir", help="额外导出每个片段，便于逐段预览"),
    mime_type: Optional[str] = typer.Option(None, "--mime-type", help="覆盖推断的 mime type"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """采样关键时刻、逐段实时采集并拼接成片。耗时约等于各片段时长之和。"""

    setup_logging(log_level)
    try:
        cfg = _resolve_config(config_path)
        settings = resolve_settings(cfg, sensitivity=sensitivity, base_segment_duration=segment_seconds)
        source = load_source(video, mime_type, config=cfg.extract)
    except InvalidInputError as exc:
        raise _fail(f"输入非法：{exc}", 2) from exc
    except HighlightError as exc:
        raise _fail(f"无法读取视频：{exc}", 1) from exc

    pipeline = HighlightPipeline(cfg)
    context = pipeline.new_context(source, settings)
    try:
        clip = asyncio.run(pipeline.run_to_completion(context, _echo_progress))
    except (CancelledByUser, KeyboardInterrupt) as exc:
        pipeline.dismiss(context)
        raise _fail("已取消", 130) from exc
    except InvalidInputError as exc:
        raise _fail(f"输入非法：{exc}", 2) from exc
    except HighlightError as exc:
        raise _fail(f"处理失败：{exc}", 1) from exc

    try:
        if clip.is_empty:
            raise _fail("未找到关键时刻，没有可导出的片段", 1)

        target = output or Path(clip.file_name)
        if target.is_dir():
            target = target / clip.file_name
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as handle:
            clip.blob.copy_to(handle)

        if segments_dir is not None:
            segments_dir.mkdir(parents=True, exist_ok=True)
            extension = resolve_container(source.mime_type).extension
            for segment in context.segments:
                label = format_timestamp(segment.start).replace(":", "-")
                with (segments_dir / f"segment_{segment.index:02d}_{label}.{extension}").open("wb") as handle:
                    segment.blob.copy_to(handle)

        typer.echo(
            f"成片 {len(clip.segments)} 段，时长 {format_timestamp(clip.duration)}，输出到 {target}"
        )
    finally:
        pipeline.dismiss(context)


if __name__ == "__main__":  # pragma: no cover
    app()
