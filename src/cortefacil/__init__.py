"""CorteFácil: 关键时刻采样 + 实时播放采集 + 成片拼接。"""

__version__ = "0.1.0"
