"""Staged article pipeline: ingestion, stage handlers, ranking and story groups."""
