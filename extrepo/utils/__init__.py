"""Shared utilities for extrepo."""
