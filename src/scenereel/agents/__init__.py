"""Claude-backed agents."""

from .base import BaseAgent
from .analyzer import ScriptAnalyzer, SceneAnalyzer, AnalysisInput

__all__ = ["BaseAgent", "ScriptAnalyzer", "SceneAnalyzer", "AnalysisInput"]
