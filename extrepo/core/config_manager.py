from __future__ import annotations

import json
import logging
import os
import pathlib
import tempfile
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional, Set, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from extrepo.core.base import ExtrepoManager
from extrepo.utils.exceptions import ConfigurationError, ManagerInitializationError

REPOSITORY_TYPES = ('file', 'maven')


class ConfigSchema(BaseModel):
    """Schema for validating configuration data.

    This model defines the expected structure and default values for the
    extrepo configuration.
    """
    logging: Dict[str, Any] = Field(
        default_factory=lambda: {
            'level': 'INFO',
            'format': 'json',
            'file': {
                'enabled': False,
                'path': 'logs/extrepo.log',
                'rotation': '10 MB',
                'retention': '30 days',
            },
            'console': {
                'enabled': True,
                'level': 'INFO',
            },
        },
        description='Logging settings',
    )
    fetch: Dict[str, Any] = Field(
        default_factory=lambda: {
            'timeout': 30.0,
            'max_retries': 3,
            'retry_delay': 1.0,
            'retry_max_delay': 10.0,
            'cache_dir': '~/.extrepo/cache',
        },
        description='Remote artifact fetch settings',
    )
    parser: Dict[str, Any] = Field(
        default_factory=lambda: {
            'root_tag': 'project',
            'category_path': '/properties/nifiExtensionType',
        },
        description='Descriptor parser settings',
    )
    repositories: List[Dict[str, Any]] = Field(
        default_factory=list,
        description='Extension repositories to open',
    )

    @model_validator(mode='after')
    def validate_fetch(self) -> 'ConfigSchema':
        """Validate the fetch timeout and retry bounds."""
        timeout = self.fetch.get('timeout')
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError('fetch.timeout must be a positive number.')
        retries = self.fetch.get('max_retries')
        if not isinstance(retries, int) or retries < 1:
            raise ValueError('fetch.max_retries must be an integer of at least 1.')
        return self

    @model_validator(mode='after')
    def validate_repositories(self) -> 'ConfigSchema':
        """Validate that every repository entry has an id, a known type and a base."""
        seen: Set[str] = set()
        for index, repo in enumerate(self.repositories):
            repo_id = repo.get('id')
            if not repo_id:
                raise ValueError(f'repositories[{index}] has no id.')
            if repo_id in seen:
                raise ValueError(f'Duplicate repository id: {repo_id}')
            seen.add(repo_id)
            if repo.get('type') not in REPOSITORY_TYPES:
                raise ValueError(
                    f"repositories[{index}].type must be one of {', '.join(REPOSITORY_TYPES)}."
                )
            if not repo.get('base'):
                raise ValueError(f'repositories[{index}] has no base.')
        return self


class ConfigManager(ExtrepoManager):
    """Configuration manager for extrepo.

    This manager handles loading, validating, and providing access to
    configuration settings from files and environment variables.

    Attributes:
        _config_path: Path to the configuration file
        _env_prefix: Prefix for environment variables
        _config: The loaded configuration
        _loaded_from_file: Whether configuration was loaded from a file
        _env_vars_applied: Set of applied environment variables
        _listeners: Dictionary of config change listeners
    """

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'EXTREPO_'
    ) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
            env_prefix: Prefix for environment variables
        """
        super().__init__(name='config_manager')
        self._config_path = pathlib.Path(config_path) if config_path else pathlib.Path('extrepo.yaml')
        self._env_prefix = env_prefix
        self._config: Dict[str, Any] = {}
        self._loaded_from_file = False
        self._env_vars_applied: Set[str] = set()
        self._listeners: Dict[str, List[Callable[[str, Any], None]]] = {}
        self._logger = logging.getLogger(__name__)

    def initialize(self) -> None:
        """Initialize the configuration manager.

        Loads configuration from default schema, file, and environment variables.

        Raises:
            ManagerInitializationError: If initialization fails
        """
        try:
            self._config = ConfigSchema().model_dump()
            self._load_from_file()
            self._apply_env_vars()
            self._validate_config()

            self._initialized = True
            self._healthy = True
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to initialize ConfigManager: {str(e)}',
                manager_name=self.name
            ) from e

    def _load_from_file(self) -> None:
        """Load configuration from a file.

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        if not self._config_path.exists():
            return

        suffix = self._config_path.suffix.lower()
        if suffix not in ('.yaml', '.yml', '.json'):
            raise ConfigurationError(
                f'Unsupported config file format: {self._config_path.suffix}',
                config_key='config_path'
            )

        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                if suffix == '.json':
                    file_config = json.load(f)
                else:
                    file_config = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

        if file_config:
            self._merge_config(file_config, self._config)
            self._loaded_from_file = True

    def _apply_env_vars(self) -> None:
        """Apply environment variables to the configuration.

        ``EXTREPO_FETCH_MAX_RETRIES`` sets ``fetch.max_retries``: the first
        underscore separates the section and ``__`` separates nested keys.
        """
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            section, _, key = env_name[len(self._env_prefix):].lower().partition('_')
            if not section or not key:
                continue
            config_path = [section] + key.split('__')
            self._set_nested_value(self._config, config_path, self._parse_env_value(env_value))
            self._env_vars_applied.add(env_name)

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable values into appropriate types.

        Args:
            value: The string value from the environment

        Returns:
            The parsed value (bool, int, float, or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
                return int(value)
            return float(value)
        except ValueError:
            return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        """Set a nested value in the configuration dictionary.

        Args:
            config: The configuration dictionary
            path: List of keys forming the path to the value
            value: The value to set
        """
        if not path:
            return

        if len(path) == 1:
            config[path[0]] = value
            return

        key = path[0]
        if not isinstance(config.get(key), dict):
            config[key] = {}

        self._set_nested_value(config[key], path[1:], value)

    def _validate_config(self) -> None:
        """Validate the configuration against the schema.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            self._config = ConfigSchema(**self._config).model_dump()
        except ValidationError as e:
            errors = e.errors()
            error_details = ', '.join((
                f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
                for error in errors
            ))
            raise ConfigurationError(
                f'Invalid configuration: {error_details}',
                details={'validation_errors': errors}
            ) from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key.

        Args:
            key: The configuration key (dot-separated for nested values)
            default: Default value if the key doesn't exist

        Returns:
            The configuration value or default

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        result: Any = self._config
        try:
            for part in key.split('.'):
                result = result[part]
            return deepcopy(result)
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by key.

        Args:
            key: The configuration key (dot-separated for nested values)
            value: The value to set

        Raises:
            ConfigurationError: If the manager isn't initialized or the value is invalid
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot modify configuration before initialization',
                config_key=key
            )

        new_config = deepcopy(self._config)
        self._set_nested_value(new_config, key.split('.'), value)

        try:
            self._config = ConfigSchema(**new_config).model_dump()
        except ValidationError as e:
            raise ConfigurationError(
                f'Invalid configuration value for {key}: {str(e)}',
                config_key=key,
                details={'validation_errors': e.errors()}
            ) from e

        self._notify_listeners(key, value)
        self._save_to_file()

    def _save_to_file(self) -> None:
        """Write the configuration back to the file it was loaded from."""
        if not self._loaded_from_file:
            return

        config_dir = self._config_path.parent
        os.makedirs(config_dir, exist_ok=True)

        # Atomic replace through a temporary file in the same directory
        with tempfile.NamedTemporaryFile(mode='w', delete=False, dir=config_dir, suffix='.tmp') as tmp:
            if self._config_path.suffix.lower() == '.json':
                json.dump(self._config, tmp, indent=2)
            else:
                yaml.safe_dump(self._config, tmp, default_flow_style=False)
        os.replace(tmp.name, str(self._config_path))

    def _merge_config(self, from_config: Dict[str, Any], to_config: Dict[str, Any]) -> None:
        """Deep-merge a configuration dictionary into another.

        Args:
            from_config: The source configuration
            to_config: The target configuration
        """
        for key, value in from_config.items():
            if isinstance(to_config.get(key), dict) and isinstance(value, dict):
                self._merge_config(value, to_config[key])
            elif value not in [None, '', {}]:
                to_config[key] = value

    def register_listener(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Register a listener for configuration changes.

        Args:
            key: The configuration key (or section) to listen for
            callback: Called with the changed key and its new value
        """
        self._listeners.setdefault(key, []).append(callback)

    def unregister_listener(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Unregister a configuration change listener.

        Args:
            key: The configuration key the listener was registered for
            callback: The callback to remove
        """
        callbacks = self._listeners.get(key, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self._listeners.pop(key, None)

    def _notify_listeners(self, key: str, value: Any) -> None:
        """Notify listeners registered for ``key`` or any of its parent sections."""
        parts = key.split('.')
        for i in range(len(parts), 0, -1):
            for callback in list(self._listeners.get('.'.join(parts[:i]), [])):
                try:
                    callback(key, value)
                except Exception as e:
                    self._logger.error(f'Error in config listener for {key}: {str(e)}')

    def shutdown(self) -> None:
        """Shut down the configuration manager."""
        if not self._initialized:
            return

        self._listeners.clear()
        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        """Get the status of the configuration manager.

        Returns:
            Dict[str, Any]: Status information about the configuration manager.
        """
        status = super().status()
        status.update({
            'config_path': str(self._config_path),
            'loaded_from_file': self._loaded_from_file,
            'env_vars_applied': sorted(self._env_vars_applied),
            'listeners': sum(len(v) for v in self._listeners.values()),
        })
        return status
