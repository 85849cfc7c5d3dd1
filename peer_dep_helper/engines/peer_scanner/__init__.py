"""Peer dependency scanner engine — detect missing, mismatched and outdated peers."""

from peer_dep_helper.engines.peer_scanner.cache import CacheStore
from peer_dep_helper.engines.peer_scanner.models import Issue, IssueStatus
from peer_dep_helper.engines.peer_scanner.scanner import detect_issues

__all__ = ["CacheStore", "Issue", "IssueStatus", "detect_issues"]
