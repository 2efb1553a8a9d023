"""Tool settings stored as JSON in the gitshell config directory."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field

from .credentials import GitCredential, find_credentials_for_repo

logger = logging.getLogger(__name__)

SETTINGS_FILE = "git.json"
GLOBAL_CONFIG_FILE = "gitconfig"


def default_config_dir() -> str:
    return os.path.join(os.path.expanduser("~"), ".config", "gitshell")


@dataclass
class GitSettings:
    """Credentials and identity defaults shared by every repository.

    ``co_author`` is an identity (``Name <email>``) added as a
    ``Co-authored-by:`` trailer to each commit when set.
    """

    credentials: list[GitCredential] = field(default_factory=list)
    name: str | None = None
    email: str | None = None
    co_author: str | None = None

    @classmethod
    def load(cls, path: str) -> GitSettings:
        """Read settings from *path*; a missing or malformed file gives defaults."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return cls()
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable settings file %s: %s", path, exc)
            return cls()
        if not isinstance(data, dict):
            logger.warning("ignoring settings file %s: expected an object", path)
            return cls()
        return cls(
            credentials=[GitCredential.from_dict(c) for c in data.get("credentials", [])
                         if isinstance(c, dict)],
            name=data.get("name") or None,
            email=data.get("email") or None,
            co_author=data.get("co_author") or None,
        )

    def save(self, path: str) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        data = {
            "credentials": [c.to_dict() for c in self.credentials],
            "name": self.name,
            "email": self.email,
            "co_author": self.co_author,
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")

    def on_auth(self, url: str) -> GitCredential | None:
        """Credential callback handed to network operations."""
        return find_credentials_for_repo(url, self.credentials)

    @property
    def identity(self) -> str | None:
        if self.name and self.email:
            return f"{self.name} <{self.email}>"
        return None
