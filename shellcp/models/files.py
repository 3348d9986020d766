"""Data models for remote files and completed transfers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class FileItem:
    name: str
    path: str
    size: int
    is_dir: bool
    mod_time: Optional[datetime]
    mode: str = ""


@dataclass(frozen=True)
class TransferStats:
    destination: str
    bytes_sent: int
    chunks: int
    duration_ms: int
