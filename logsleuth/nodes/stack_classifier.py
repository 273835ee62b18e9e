"""
Stack Frame Classifier.

Separates application frames from vendor/framework frames and finds the
frame most likely to need a fix (the innermost application frame).
"""

import posixpath
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from ..models.parsed_event import StackFrame
from ..utils.config import DEFAULT_PROJECT_ROOTS, DEFAULT_VENDOR_PREFIXES


def _clean(path: str) -> str:
    """Backslashes to slashes, "."/".." resolved."""
    text = path.strip().replace("\\", "/")
    if not text:
        return ""
    # Stream wrappers such as phar:// are compared verbatim
    if "://" in text:
        return text
    absolute = text.startswith("/")
    resolved = posixpath.normpath(text)
    if resolved == ".":
        return ""
    if absolute and not resolved.startswith("/"):
        resolved = "/" + resolved
    # normpath keeps a leading "//" on POSIX
    if resolved.startswith("//"):
        resolved = "/" + resolved.lstrip("/")
    return resolved


def _has_prefix(path: str, prefix: str) -> bool:
    """Prefix match on a path-segment boundary."""
    if not prefix:
        return False
    if prefix.endswith((":", "/")):
        return path.startswith(prefix)
    return path == prefix or path.startswith(prefix + "/")


def _is_absolute(path: str) -> bool:
    return path.startswith("/") or path[1:3] == ":/"


class StackFrameClassifier:
    """
    Classifies frames against vendor path prefixes.

    Paths are normalized before matching: separators unified, dot segments
    resolved and the first matching project root stripped, so that
    "/var/www/html/vendor/x.php" and "vendor/x.php" classify alike.
    """

    def __init__(
        self,
        vendor_prefixes: Iterable[str] = DEFAULT_VENDOR_PREFIXES,
        project_roots: Iterable[str] = DEFAULT_PROJECT_ROOTS,
    ):
        self.project_roots = [r for r in (_clean(p) for p in project_roots) if r and r != "/"]
        # Longest roots first so "/var/www/html" wins over "/var/www"
        self.project_roots.sort(key=len, reverse=True)
        self.vendor_prefixes = [v for v in (_clean(p) for p in vendor_prefixes) if v]

    def normalize_path(self, path: Optional[str]) -> str:
        """Normalize a frame path to a project-relative form."""
        if not path:
            return ""
        text = _clean(path)
        for root in self.project_roots:
            if text == root:
                return ""
            if text.startswith(root + "/"):
                return text[len(root) + 1:]
        return text

    def is_vendor_path(self, path: Optional[str]) -> bool:
        """
        Check if a path belongs to a dependency or generated code.

        Prefixes match at the start of the project-relative path. A relative
        prefix is also looked for as an inner segment, but only when the path
        is outside every project root: "/opt/tool/vendor/x.php" is vendor
        while "/var/www/html/src/storage/framework/x.php" is not.
        """
        normalized = self.normalize_path(path)
        if not normalized:
            return True
        for prefix in self.vendor_prefixes:
            if _has_prefix(normalized, prefix):
                return True
            # Paths under no project root may hold a relative prefix below it, e.g. /opt/x/vendor/...
            if (
                _is_absolute(normalized)
                and not prefix.startswith("/")
                and not prefix.endswith(":")
                and f"/{prefix}/" in normalized
            ):
                return True
        return False

    def classify(self, frame: StackFrame) -> bool:
        """
        Check if a frame is application code.

        Returns:
            True for application frames; frames without a usable path
            (internal functions, {main}) are vendor
        """
        return not self.is_vendor_path(frame.file)

    def classify_frames(self, frames: Sequence[StackFrame]) -> List[StackFrame]:
        """Return copies of the frames with is_application_frame set."""
        return [replace(f, is_application_frame=self.classify(f)) for f in frames]

    def top_application_frame(self, frames: Sequence[StackFrame]) -> Optional[StackFrame]:
        """
        First application frame scanning from the throw site outward.

        Frames are stored outermost first, so the scan runs from the end.
        """
        for frame in reversed(frames):
            if self.classify(frame):
                return frame
        return None


def classify(frame: StackFrame, vendor_prefixes: Iterable[str] = DEFAULT_VENDOR_PREFIXES) -> bool:
    """Classify one frame with default project roots."""
    return StackFrameClassifier(vendor_prefixes).classify(frame)


def top_application_frame(
    frames: Sequence[StackFrame],
    vendor_prefixes: Iterable[str] = DEFAULT_VENDOR_PREFIXES,
) -> Optional[StackFrame]:
    return StackFrameClassifier(vendor_prefixes).top_application_frame(frames)
