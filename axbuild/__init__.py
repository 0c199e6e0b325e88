"""
axbuild package root.

Provides modules for loading Dynamics 365 F&O (AX 7) model metadata, ordering
modules for the build, generating the MSBuild orchestration project, and
assembling deployable packages from the build output.
"""

__all__ = ["config", "metadata", "graph", "projects", "packaging"]
