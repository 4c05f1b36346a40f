"""
File share storage - physical file contents addressed by share:// uris
"""

import base64
import logging
import uuid
from pathlib import Path
from typing import Optional, Tuple

from config import settings

logger = logging.getLogger(__name__)

SHARE_SCHEME = "share://"


class FileShare:
    """Maps share:// uris onto files below a root directory"""

    def __init__(self, root: str):
        self.root = Path(root)

    def path_for(self, share_uri: str) -> Path:
        if not share_uri.startswith(SHARE_SCHEME):
            raise ValueError(f"Not a share uri: {share_uri}")
        return self.root / share_uri[len(SHARE_SCHEME):]

    def write(self, extension: str, content_base64: str) -> Tuple[str, int]:
        """Store base64 content under a fresh name. Returns the share uri and the size in bytes."""
        data = base64.b64decode(content_base64)
        name = f"{uuid.uuid4()}.{extension}" if extension else str(uuid.uuid4())
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"{SHARE_SCHEME}{name}", len(data)

    def read_base64(self, share_uri: str) -> Optional[str]:
        """Content as base64, None when the file is not on the share"""
        path = self.path_for(share_uri)
        if not path.exists():
            logger.warning(f"File {share_uri} not found on the share")
            return None
        return base64.b64encode(path.read_bytes()).decode("ascii")

    def remove(self, share_uri: str):
        path = self.path_for(share_uri)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"File {share_uri} was already removed from the share")


_file_share: Optional[FileShare] = None


def get_file_share() -> FileShare:
    """Get the global file share instance"""
    global _file_share
    if _file_share is None:
        _file_share = FileShare(settings.SHARE_DIRECTORY)
    return _file_share
