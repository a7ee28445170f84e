from bookmark_sync.cloud.container import (
    CloudContainer,
    download_request_name,
    name_from_placeholder,
    placeholder_name,
)
from bookmark_sync.cloud.trash import TRASH_DIRECTORY_NAME, TrashClient
from bookmark_sync.cloud.versions import VERSIONS_DIRECTORY_NAME, FileVersion, VersionStore

__all__ = [
    "CloudContainer",
    "FileVersion",
    "TRASH_DIRECTORY_NAME",
    "TrashClient",
    "VERSIONS_DIRECTORY_NAME",
    "VersionStore",
    "download_request_name",
    "name_from_placeholder",
    "placeholder_name",
]
