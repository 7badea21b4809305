from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from extrepo.core.base import ExtrepoManager
from extrepo.extensions.parser import MetadataParser
from extrepo.extensions.spec import ExtensionSpec
from extrepo.repository.base import ExtensionRepository, RepositoryType
from extrepo.repository.filesystem import FilesystemRepository
from extrepo.repository.remote import RemoteArtifactRepository
from extrepo.repository.verification import ChecksumVerifier
from extrepo.utils.exceptions import (
    ManagerInitializationError,
    ManagerShutdownError,
    RepositoryError,
)


class RepositoryManager(ExtrepoManager):
    """Manager for the extension repositories named in configuration.

    Repositories are opened from the ``repositories`` section and kept in
    configuration order, which is also the order in which lookups search
    them. The manager holds no global state; every instance owns its own
    set of repositories.
    """

    def __init__(self, config_manager: Any, logger_manager: Optional[Any] = None) -> None:
        """Initialize the repository manager.

        Args:
            config_manager: Configuration manager instance
            logger_manager: Logging manager instance, if any
        """
        super().__init__(name='repository_manager')
        self._config_manager = config_manager
        if logger_manager is not None:
            self._logger = logger_manager.get_logger('repository_manager')
        else:
            self._logger = logging.getLogger(__name__)
        self._repositories: Dict[str, ExtensionRepository] = {}
        self._repositories_lock = threading.RLock()

    def initialize(self) -> None:
        """Open every repository named in configuration.

        A repository whose entry cannot be turned into a repository is
        logged and skipped.

        Raises:
            ManagerInitializationError: If initialization fails
        """
        try:
            self._initialized = True
            self._open_configured_repositories()
            self._config_manager.register_listener('repositories', self._on_config_changed)

            self._healthy = True
            self._logger.info(f'Repository Manager initialized with {len(self._repositories)} repositories')
        except Exception as e:
            self._initialized = False
            self._logger.error(f'Failed to initialize Repository Manager: {str(e)}')
            raise ManagerInitializationError(
                f'Failed to initialize RepositoryManager: {str(e)}',
                manager_name=self.name
            ) from e

    def _open_configured_repositories(self) -> None:
        for repo_config in self._config_manager.get('repositories', []):
            try:
                self.register_repository(self.create_repository(repo_config))
            except (ValueError, RepositoryError) as e:
                self._logger.error(
                    f"Failed to open repository {repo_config.get('id')}: {str(e)}",
                    extra={'repository': repo_config.get('id'), 'error': str(e)}
                )

    def create_repository(self, repo_config: Dict[str, Any]) -> ExtensionRepository:
        """Build a repository from one ``repositories`` entry.

        Args:
            repo_config: Entry with ``id``, ``type`` and ``base`` keys and
                optional ``authenticated``, ``authorized``, ``all_versions``
                and ``require_checksum`` flags

        Returns:
            A new, not yet listed repository

        Raises:
            ValueError: If the entry is invalid
        """
        repo_id = repo_config.get('id')
        base = repo_config.get('base')
        if not repo_id or not base:
            raise ValueError('Repository entry needs an id and a base')

        try:
            repo_type = RepositoryType(str(repo_config.get('type', 'file')).lower())
        except ValueError:
            raise ValueError(f"Unsupported repository type: {repo_config.get('type')}") from None

        parser_config = self._config_manager.get('parser', {})
        fetch_config = self._config_manager.get('fetch', {})
        parser = MetadataParser(
            root_tag=parser_config.get('root_tag', 'project'),
            category_path=parser_config.get('category_path', '/properties/nifiExtensionType'),
            timeout=fetch_config.get('timeout', 30.0),
        )
        verifier = ChecksumVerifier(require_checksum=repo_config.get('require_checksum', False))
        common = dict(
            authenticated=repo_config.get('authenticated', False),
            authorized=repo_config.get('authorized', False),
            parser=parser,
            verifier=verifier,
        )

        if repo_type is RepositoryType.FILESYSTEM:
            return FilesystemRepository(repo_id, base, **common)

        return RemoteArtifactRepository(
            repo_id,
            base,
            all_versions=repo_config.get('all_versions', False),
            cache_dir=fetch_config.get('cache_dir', '~/.extrepo/cache'),
            timeout=fetch_config.get('timeout', 30.0),
            max_retries=fetch_config.get('max_retries', 3),
            retry_delay=fetch_config.get('retry_delay', 1.0),
            retry_max_delay=fetch_config.get('retry_max_delay', 10.0),
            **common
        )

    def register_repository(self, repository: ExtensionRepository) -> None:
        """Add a repository.

        Args:
            repository: Repository instance

        Raises:
            ValueError: If a repository with the same id is already registered
                or the manager is not initialized
        """
        if not self._initialized:
            raise ValueError('Repository Manager not initialized')

        with self._repositories_lock:
            if repository.repo_id in self._repositories:
                raise ValueError(f"Repository '{repository.repo_id}' is already registered")
            self._repositories[repository.repo_id] = repository

        self._logger.info(f"Registered repository '{repository.repo_id}' at {repository.identity}")

    def unregister_repository(self, repo_id: str) -> bool:
        """Remove a repository.

        Args:
            repo_id: Id of the repository to remove

        Returns:
            True if the repository was registered, False otherwise
        """
        with self._repositories_lock:
            repository = self._repositories.pop(repo_id, None)
        if repository is None:
            return False

        self._close(repository)
        self._logger.info(f"Unregistered repository '{repo_id}'")
        return True

    def get_repository(self, repo_id: str) -> Optional[ExtensionRepository]:
        """Get a repository by id, or None if there is none."""
        with self._repositories_lock:
            return self._repositories.get(repo_id)

    def get_all_repositories(self) -> List[ExtensionRepository]:
        """All repositories in search order."""
        with self._repositories_lock:
            return list(self._repositories.values())

    def list_categories(self) -> List[str]:
        """Categories offered by any repository, in first-seen order."""
        categories: List[str] = []
        for repository in self.get_all_repositories():
            for category in self._listing_of(repository, repository.list_categories, []):
                if category not in categories:
                    categories.append(category)
        return categories

    def list_extensions(self, category: Optional[str] = None) -> Dict[str, Dict[str, ExtensionSpec]]:
        """Listings of every repository.

        A repository that cannot be listed is logged and reported with an
        empty listing.

        Args:
            category: Category to list, or None for all

        Returns:
            Mapping of repository id to that repository's listing
        """
        return {
            repository.repo_id: self._listing_of(
                repository, lambda r=repository: r.list_extensions(category), {}
            )
            for repository in self.get_all_repositories()
        }

    def find_extension(self, key: str, category: Optional[str] = None) -> Optional[ExtensionSpec]:
        """First extension listed under ``key``, searching repositories in order.

        Args:
            key: Listing key
            category: Category to search, or None for all

        Returns:
            The matching spec, or None if no repository lists ``key``
        """
        for repository in self.get_all_repositories():
            listing = self._listing_of(repository, lambda r=repository: r.list_extensions(category), {})
            if key in listing:
                return listing[key]
        return None

    def refresh_all(self) -> Dict[str, bool]:
        """Refresh the listing of every repository.

        Returns:
            Mapping of repository id to whether its refresh succeeded
        """
        results: Dict[str, bool] = {}
        for repository in self.get_all_repositories():
            try:
                repository.refresh_listing()
                results[repository.repo_id] = True
            except RepositoryError as e:
                self._logger.error(
                    f"Failed to refresh repository '{repository.repo_id}': {str(e)}",
                    extra={'repository': repository.repo_id, 'error': str(e)}
                )
                results[repository.repo_id] = False
        return results

    def _listing_of(self, repository: ExtensionRepository, call: Any, empty: Any) -> Any:
        try:
            return call()
        except RepositoryError as e:
            self._logger.error(
                f"Failed to list repository '{repository.repo_id}': {str(e)}",
                extra={'repository': repository.repo_id, 'error': str(e)}
            )
            return empty

    @staticmethod
    def _close(repository: ExtensionRepository) -> None:
        close = getattr(repository, 'close', None)
        if callable(close):
            close()

    def _on_config_changed(self, key: str, value: Any) -> None:
        """Reopen all repositories when the ``repositories`` section changes."""
        self._logger.info('Repository configuration changed, reopening repositories')
        with self._repositories_lock:
            repositories: List[Tuple[str, ExtensionRepository]] = list(self._repositories.items())
            self._repositories.clear()
        for _, repository in repositories:
            self._close(repository)
        self._open_configured_repositories()

    def shutdown(self) -> None:
        """Close every repository.

        Raises:
            ManagerShutdownError: If shutdown fails
        """
        if not self._initialized:
            return

        try:
            self._logger.info('Shutting down Repository Manager')
            with self._repositories_lock:
                for repo_id, repository in list(self._repositories.items()):
                    self._close(repository)
                    self._logger.debug(f"Closed repository '{repo_id}'")
                self._repositories.clear()

            self._config_manager.unregister_listener('repositories', self._on_config_changed)

            self._initialized = False
            self._healthy = False
            self._logger.info('Repository Manager shut down successfully')
        except Exception as e:
            self._logger.error(f'Failed to shut down Repository Manager: {str(e)}')
            raise ManagerShutdownError(
                f'Failed to shut down RepositoryManager: {str(e)}',
                manager_name=self.name
            ) from e

    def status(self) -> Dict[str, Any]:
        """Get the status of the repository manager.

        Returns:
            Dict containing status information
        """
        status = super().status()
        if self._initialized:
            repositories = self.get_all_repositories()
            status.update({
                'repositories': {
                    'count': len(repositories),
                    'statuses': {r.repo_id: r.status() for r in repositories},
                }
            })
        return status
