"""
User Directory
==============

YAML-backed stand-in for the external user/group collaborator.

Example directory.yaml:

    users:
      alice:
        name: Alice Admin
        email: alice@example.com
        slack_id: U024BE7LH
    groups:
      admins: [alice]
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from supportwatch.core.exceptions import ConfigurationException
from supportwatch.notifications.application.interfaces import DirectoryUser, IUserDirectory
from supportwatch.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class DirectoryUserConfig(BaseModel):
    """One user entry."""
    name: str
    email: Optional[str] = None
    slack_id: Optional[str] = None


class DirectoryConfig(BaseModel):
    """Users keyed by id and groups as lists of user ids or nested groups."""
    users: Dict[str, DirectoryUserConfig] = Field(default_factory=dict)
    groups: Dict[str, List[str]] = Field(default_factory=dict)


class YAMLUserDirectory(IUserDirectory):
    """In-memory directory loaded from a YAML file."""

    def __init__(self, config: Optional[DirectoryConfig] = None):
        self._config = config or DirectoryConfig()

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "YAMLUserDirectory":
        """
        Load the directory from YAML.

        A missing file yields an empty directory; an invalid one raises
        ConfigurationException.
        """
        path = Path(path)
        if not path.exists():
            logger.warning("Directory file not found, using empty directory", extra={"path": str(path)})
            return cls()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            config = DirectoryConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid directory file {path}: {e}") from e

        logger.info(
            "User directory loaded",
            extra={"path": str(path), "users": len(config.users), "groups": len(config.groups)}
        )
        return cls(config)

    @property
    def config(self) -> DirectoryConfig:
        return self._config

    def get_user(self, user_id: str) -> Optional[DirectoryUser]:
        entry = self._config.users.get(user_id)
        if entry is None:
            return None
        return DirectoryUser(id=user_id, name=entry.name, email=entry.email, slack_id=entry.slack_id)

    def get_group_members(self, group: str) -> Optional[List[str]]:
        members = self._config.groups.get(group)
        return list(members) if members is not None else None
