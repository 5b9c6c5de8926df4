"""
scrolldump - Stream a search index to stdout over the scroll API.

A CLI tool that pages through an Elasticsearch/OpenSearch index with
several sliced workers in parallel and writes every document as one
JSON line, ready to be piped into compression or another cluster.
"""

__version__ = "0.1.0"
__app_name__ = "scrolldump"
