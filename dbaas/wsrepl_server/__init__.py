"""
Workspace replication server.

This package replicates content revisions between workspaces that share
one storage backend, roughly following the CouchDB replication protocol:
find what changed in the source since the last successful run, diff that
against what the target already holds, transfer only the missing
revisions, and record progress so the next run resumes.

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌───────────────────┐
    │  HTTP / CLI │────▶│ReplicationManager│────▶│ DefaultReplicator │
    └─────────────┘     └──────────────────┘     └─────────┬─────────┘
                                                           │
             ┌──────────────────┬──────────────────┬───────┴──────────┐
             ▼                  ▼                  ▼                  ▼
       ┌──────────┐      ┌─────────────┐    ┌────────────┐    ┌──────────────┐
       │ChangeLog │      │RevisionDiff │    │ Workspace  │    │ Replication  │
       │+Sequence │      │             │    │  Manager   │    │     Log      │
       └────┬─────┘      └──────┬──────┘    └─────┬──────┘    └──────┬───────┘
            └──────────────────┬┴─────────────────┴──────────────────┘
                               ▼
                        ┌─────────────┐
                        │  SiteStore  │
                        │  (SQLite)   │
                        └─────────────┘

Invariants:
    - Sequence ids are strictly increasing per workspace
    - Replication ids are direction-sensitive
    - A failed run never advances the replication watermark
    - The active workspace is restored after every run

How to change safely:
    - Keep diff-before-apply; retries depend on it
    - Persist the replication log last, exactly once per run

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
