"""Step3: 成片拼接模块入口。"""

from .assembler import AssemblyPlan, ClipAssembler, plan_segments, segment_length, suggested_file_name

__all__ = [
    "AssemblyPlan",
    "ClipAssembler",
    "plan_segments",
    "segment_length",
    "suggested_file_name",
]
