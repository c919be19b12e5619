"""
Account classification and the directory lookups behind it.

A directory answers lookup(account) with an object-class string
("user", "group", ...) or None. Three are provided:

- LocalDirectory: the host's local user and group names, loaded once.
- GraphDirectory: Entra ID accounts synced from on-premises AD, matched
  on onPremisesSamAccountName through Microsoft Graph.
- NullDirectory: every lookup misses.
"""
import asyncio
import json
import logging
import os
import subprocess
from typing import Dict, Iterable, Optional

from azure.identity import ClientSecretCredential
from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder
from msgraph.generated.users.users_request_builder import UsersRequestBuilder
from msgraph.graph_service_client import GraphServiceClient

from .constants import (
    ACCOUNT_TYPE_UNKNOWN,
    DIRECTORY_GRAPH,
    DIRECTORY_LOCAL,
    DIRECTORY_NONE,
    DOMAIN_SEPARATOR,
    GRAPH_SCOPES,
    OBJECT_CLASS_GROUP,
    OBJECT_CLASS_USER,
    RESERVED_DOMAINS,
)
from .utils import ConfigError

logger = logging.getLogger(__name__)


# =============================================================================
# Directories
# =============================================================================

class NullDirectory:
    """Directory with no accounts."""

    def lookup(self, account: str) -> Optional[str]:
        return None

    def close(self) -> None:
        pass


class LocalDirectory:
    """Local user and group names, read once and never refreshed."""

    def __init__(self, users: Iterable[str], groups: Iterable[str], case_sensitive: bool = True):
        self.case_sensitive = case_sensitive
        self.users = frozenset(self._key(u) for u in users)
        self.groups = frozenset(self._key(g) for g in groups)

    def _key(self, name: str) -> str:
        return name if self.case_sensitive else name.casefold()

    @classmethod
    def load(cls) -> "LocalDirectory":
        """Read the host's local accounts."""
        if os.name == "nt":
            users = _powershell_names("Get-LocalUser")
            groups = _powershell_names("Get-LocalGroup")
            directory = cls(users, groups, case_sensitive=False)
        else:
            import grp
            import pwd
            directory = cls(
                (p.pw_name for p in pwd.getpwall()),
                (g.gr_name for g in grp.getgrall()),
            )
        logger.info(f"Loaded {len(directory.users)} local users and {len(directory.groups)} local groups")
        return directory

    def lookup(self, account: str) -> Optional[str]:
        key = self._key(account)
        if key in self.users:
            return OBJECT_CLASS_USER
        if key in self.groups:
            return OBJECT_CLASS_GROUP
        return None

    def close(self) -> None:
        pass


def _powershell_names(cmdlet: str):
    """Names returned by Get-LocalUser / Get-LocalGroup."""
    script = f"ConvertTo-Json -InputObject @({cmdlet} | ForEach-Object {{ $_.Name }}) -Compress"
    try:
        result = subprocess.run(
            ["powershell", "-NoProfile", "-NonInteractive", "-Command", script],
            capture_output=True,
            text=True,
            check=True,
        )
        names = json.loads(result.stdout or "[]")
    except (OSError, subprocess.CalledProcessError, ValueError) as e:
        logger.warning(f"Could not list local accounts with {cmdlet}: {e}")
        return []
    if isinstance(names, str):
        names = [names]
    return names


def get_graph_client(tenant_id: str, client_id: str, client_secret: str) -> GraphServiceClient:
    """Create Microsoft Graph API client."""
    credential = ClientSecretCredential(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret
    )
    return GraphServiceClient(credentials=credential, scopes=GRAPH_SCOPES)


def _sam_account_filter(account: str) -> str:
    escaped = account.replace("'", "''")
    return f"onPremisesSamAccountName eq '{escaped}'"


class GraphDirectory:
    """
    Look up synced on-premises accounts in Entra ID.

    onPremisesSamAccountName is only filterable as an advanced query, so
    every request carries ConsistencyLevel: eventual and $count=true.
    The SDK is async; calls run on an event loop owned by this object.

    Requires User.Read.All and Group.Read.All (Application type).
    """

    def __init__(self, graph_client: GraphServiceClient):
        self.client = graph_client
        self._loop = asyncio.new_event_loop()

    def lookup(self, account: str) -> Optional[str]:
        return self._loop.run_until_complete(self._lookup(account))

    async def _lookup(self, account: str) -> Optional[str]:
        account_filter = _sam_account_filter(account)

        user_config = RequestConfiguration(
            query_parameters=UsersRequestBuilder.UsersRequestBuilderGetQueryParameters(
                filter=account_filter, select=["id"], top=1, count=True,
            )
        )
        user_config.headers.add("ConsistencyLevel", "eventual")
        users = await self.client.users.get(request_configuration=user_config)
        if users and users.value:
            return OBJECT_CLASS_USER

        group_config = RequestConfiguration(
            query_parameters=GroupsRequestBuilder.GroupsRequestBuilderGetQueryParameters(
                filter=account_filter, select=["id"], top=1, count=True,
            )
        )
        group_config.headers.add("ConsistencyLevel", "eventual")
        groups = await self.client.groups.get(request_configuration=group_config)
        if groups and groups.value:
            return OBJECT_CLASS_GROUP

        return None

    def close(self) -> None:
        if not self._loop.is_closed():
            self._loop.close()


def build_directory(backend: str, tenant_id: Optional[str] = None,
                    client_id: Optional[str] = None, client_secret: Optional[str] = None):
    """Create the directory named by the --directory option."""
    if backend == DIRECTORY_NONE:
        return NullDirectory()
    if backend == DIRECTORY_LOCAL:
        return LocalDirectory.load()
    if backend == DIRECTORY_GRAPH:
        if not tenant_id or not client_id or not client_secret:
            raise ConfigError(
                "Graph directory needs --tenant-id (MS365_TENANT_ID), --client-id (MS365_CLIENT_ID) "
                "and the MS365_CLIENT_SECRET environment variable"
            )
        logger.info("Initializing Microsoft Graph client...")
        return GraphDirectory(get_graph_client(tenant_id, client_id, client_secret))
    raise ConfigError(f"Unknown directory backend: {backend}")


# =============================================================================
# Account Classifier
# =============================================================================

class AccountClassifier:
    """
    Resolve an ACL principal to an account type.

    DOMAIN\\name principals in a reserved domain map straight to their
    category. Everything else is looked up by bare account name; a miss
    or a failing lookup gives "Unknown". Answers are remembered for the
    life of the classifier.
    """

    def __init__(self, directory, reserved_domains: Optional[Dict[str, str]] = None):
        self.directory = directory
        domains = RESERVED_DOMAINS if reserved_domains is None else reserved_domains
        self.reserved_domains = {d.upper(): t for d, t in domains.items()}
        self._cache: Dict[str, str] = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def classify(self, principal: str) -> str:
        if principal in self._cache:
            return self._cache[principal]
        account_type = self._classify(principal)
        self._cache[principal] = account_type
        return account_type

    def _classify(self, principal: str) -> str:
        if DOMAIN_SEPARATOR in principal:
            domain, account = principal.split(DOMAIN_SEPARATOR, 1)
            reserved = self.reserved_domains.get(domain.upper())
            if reserved:
                return reserved
        else:
            account = principal

        if not account:
            return ACCOUNT_TYPE_UNKNOWN

        try:
            object_class = self.directory.lookup(account)
        except Exception as e:
            logger.debug(f"Directory lookup failed for {account}: {e}")
            return ACCOUNT_TYPE_UNKNOWN

        return object_class or ACCOUNT_TYPE_UNKNOWN

    def close(self) -> None:
        self.directory.close()
