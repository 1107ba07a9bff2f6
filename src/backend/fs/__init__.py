"""
File system utilities for avatar storage.

Provides:
- Per-user folder management (storage.py)
- Avatar file naming conventions (naming.py)
- Staging folders for not-yet-created users (staging.py)
- Upload acceptance rules (uploads.py)
"""

from .storage import MediaStore
from .naming import AvatarName, AvatarSlot, AVATAR_SLOTS
from .staging import StagingArea
from .uploads import AvatarUpload, collect_avatars, check_spreadsheet_upload

__all__ = [
    "MediaStore",
    "AvatarName",
    "AvatarSlot",
    "AVATAR_SLOTS",
    "StagingArea",
    "AvatarUpload",
    "collect_avatars",
    "check_spreadsheet_upload",
]
