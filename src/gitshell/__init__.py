__version__ = "0.1.0"

from .store import ObjectStore, CommitInfo, Remote
from .fs import FileSystem, LocalFileSystem
from .status import StatusRow, StatusReport, StatusCache, format_porcelain, format_human
from .commands import Git, CommandResult, ShellContext
from .rollback import RollbackEngine, RevertResult
from .sync import SyncSession, SyncClassification, ConflictKind, Remediation, classify_sync_error
from .settings import GitSettings
from .credentials import GitCredential, find_credentials_for_repo
from .exceptions import GitShellError, StoreError, SyncError, RollbackError

__all__ = [
    "__version__",
    "ObjectStore", "CommitInfo", "Remote", "FileSystem", "LocalFileSystem",
    "StatusRow", "StatusReport", "StatusCache", "format_porcelain", "format_human",
    "Git", "CommandResult", "ShellContext",
    "RollbackEngine", "RevertResult",
    "SyncSession", "SyncClassification", "ConflictKind", "Remediation", "classify_sync_error",
    "GitSettings", "GitCredential", "find_credentials_for_repo",
    "GitShellError", "StoreError", "SyncError", "RollbackError",
]
