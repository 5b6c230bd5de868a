# src/templator_flow/core/catalog/__init__.py
"""Catálogo de pipelines e Steps versionados."""

from .catalog import EnsureResult, PipelineCatalog, StepSpec

__all__ = ["EnsureResult", "PipelineCatalog", "StepSpec"]
