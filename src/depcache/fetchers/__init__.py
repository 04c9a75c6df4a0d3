"""Fetchers that transfer remote artifacts to local paths."""

from .base import Fetcher
from .factory import make_fetcher
from .fs import FileFetcher
from .git import GitFetcher
from .http import HttpFetcher

__all__ = ["Fetcher", "FileFetcher", "GitFetcher", "HttpFetcher", "make_fetcher"]
