"""Strata: versioned workspace artifact storage.

Routes workspace files to a git-backed store for text and code and to an
S3-compatible object store for large or binary content, behind a single
storage contract.
"""

__version__ = "0.1.0"
