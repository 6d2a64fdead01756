"""
ScriptIntel - Adaptive short-video script generation for creators

Builds scene-by-scene shooting scripts from free-text requests, tailored to a
creator's historical content performance and personal writing style, and
applies scoped revisions to existing scripts.
"""

__version__ = "0.1.0"
__author__ = "ScriptIntel Team"
