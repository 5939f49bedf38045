"""Content digest used to detect statement files that were already imported."""

import hashlib
from typing import Union


def content_hash(content: Union[str, bytes]) -> str:
    """
    SHA-256 of the raw file content as lowercase hex.

    Text is encoded as UTF-8 first, so the same file read as text or
    as bytes yields the same digest.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
