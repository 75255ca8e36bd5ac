"""mime type 与 ffmpeg 容器的映射。

采集走 stream copy，输出容器与源视频保持一致，因此片段 mime type 等于源 mime type。
写入管道时 MP4/MOV 需要分片 muxer 参数，否则 ffmpeg 无法回写 moov。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from cortefacil.core.errors import MediaDecodeError

_FRAGMENTED = {"movflags": "frag_keyframe+empty_moov+default_base_moof"}


@dataclass(slots=True, frozen=True)
class ContainerFormat:
    mime_type: str
    muxer: str
    extension: str
    muxer_options: Dict[str, str] = field(default_factory=dict)


CONTAINERS: Dict[str, ContainerFormat] = {
    fmt.mime_type: fmt
    for fmt in (
        ContainerFormat("video/mp4", "mp4", "mp4", _FRAGMENTED),
        ContainerFormat("video/quicktime", "mov", "mov", _FRAGMENTED),
        ContainerFormat("video/webm", "webm", "webm"),
        ContainerFormat("video/x-matroska", "matroska", "mkv"),
        ContainerFormat("video/mp2t", "mpegts", "ts"),
        ContainerFormat("video/mpeg", "mpeg", "mpg"),
        ContainerFormat("video/ogg", "ogg", "ogv"),
        ContainerFormat("video/x-flv", "flv", "flv"),
    )
}


def resolve_container(mime_type: str) -> ContainerFormat:
    """按 mime type 查找容器；忽略参数部分（如 ``;codecs=...``）。"""

    key = mime_type.split(";", 1)[0].strip().lower()
    try:
        return CONTAINERS[key]
    except KeyError:
        raise MediaDecodeError(f"unsupported container for mime type {mime_type!r}") from None
