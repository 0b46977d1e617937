"""Type aliases used across runtrack."""

from __future__ import annotations

from typing import Any

JsonDict = dict[str, Any]
MirrorTarget = str  # mirror file path, e.g. "runs.json" or "runs/7.json"
