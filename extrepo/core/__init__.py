"""Core package containing the managers that configure and own repositories."""

from extrepo.core.base import BaseManager, ExtrepoManager
from extrepo.core.config_manager import ConfigManager
from extrepo.core.logging_manager import LoggingManager
from extrepo.core.repository_manager import RepositoryManager
