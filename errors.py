#!/usr/bin/env python3
"""
Error taxonomy for the Bull Scouter viewer.

FetchError   - the data host answered with a non-success status, or could
               not be reached at all (status 0).
ParseError   - the body was not valid JSON.
SchemaEmpty  - the payload parsed but holds no entities under any known
               schema generation.
"""


class ViewerError(Exception):
    """Base class for every error the viewer raises on purpose."""


class FetchError(ViewerError):
    def __init__(self, status: int, status_text: str = "", path: str = ""):
        self.status = status
        self.status_text = status_text
        self.path = path
        super().__init__(f"{status} {status_text}".strip() if status else status_text)


class ParseError(ViewerError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed JSON in {path}: {reason}")


class SchemaEmpty(ViewerError):
    def __init__(self, kind: str, source: str = ""):
        self.kind = kind
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"No recognizable {kind} entries{where}")
