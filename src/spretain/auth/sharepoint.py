"""SharePoint Online REST client for retention label and record operations.

This module provides authenticated access to the SharePoint REST API for:
- Connecting to a site (one session per site)
- Enumerating lists and document libraries
- Reading, resetting and applying list retention labels
- Listing items with their compliance flags and unlocking records

Authentication uses MSAL with client credentials (app-only auth). SharePoint
REST rejects app-only tokens obtained with a client secret in most tenants,
so a certificate credential is the usual choice:

    client = SharePointClient(tenant_id, client_id,
                              {"thumbprint": "AB12...", "private_key": pem})

Required application permission:
- Sites.FullControl.All (SharePoint) - label and record operations

Every failed request raises SharePointAPIError carrying the HTTP status and
the Retry-After hint, so the retry layer never has to parse messages.

Usage:
    client = SharePointClient(tenant_id, client_id, credential)

    session = client.connect("https://contoso.sharepoint.com/sites/HR")
    for lst in session.list_lists():
        label = session.get_label(lst)
    client.disconnect(session)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Union
from urllib.parse import quote, urlparse
import logging

try:
    from msal import ConfidentialClientApplication

    HAS_MSAL = True
except ImportError:
    HAS_MSAL = False
    ConfidentialClientApplication = None

try:
    import httpx

    HAS_HTTPX = True
except ImportError:
    HAS_HTTPX = False

from ..throttle.retry import RemoteCallError

logger = logging.getLogger(__name__)

ODATA_JSON = "application/json;odata=nometadata"
ITEM_PAGE_SIZE = 5000


class SharePointAuthError(RemoteCallError):
    """Authentication with Entra ID failed."""

    pass


class SharePointAPIError(RemoteCallError):
    """SharePoint REST request failed."""

    def __init__(
        self,
        message: str,
        status_code: int = None,
        retry_after: float = None,
        response: dict = None,
    ):
        super().__init__(message, status_code=status_code, retry_after=retry_after)
        self.response = response or {}


@dataclass(frozen=True)
class ListInfo:
    """A list or document library as returned by enumeration."""

    title: str
    hidden: bool
    item_count: int
    id: str = ""
    server_relative_url: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "ListInfo":
        """Create from REST response."""
        return cls(
            title=data.get("Title", ""),
            hidden=bool(data.get("Hidden", False)),
            item_count=int(data.get("ItemCount") or 0),
            id=data.get("Id", ""),
            server_relative_url=(data.get("RootFolder") or {}).get("ServerRelativeUrl", ""),
        )


@dataclass(frozen=True)
class ListItem:
    """An item with its compliance state."""

    id: int
    display_name: str
    compliance_flag: Optional[Union[int, str]] = None
    compliance_tag: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "ListItem":
        """Create from REST response."""
        return cls(
            id=int(data.get("Id", data.get("ID", 0))),
            display_name=data.get("FileLeafRef") or data.get("Title") or "",
            compliance_flag=data.get("_ComplianceFlags"),
            compliance_tag=data.get("_ComplianceTag") or None,
        )


@dataclass(frozen=True)
class RetentionLabel:
    """Retention label applied to a list."""

    name: str
    block_delete: bool = False
    block_edit: bool = False

    @classmethod
    def from_api(cls, data: dict) -> Optional["RetentionLabel"]:
        """Create from GetListComplianceTag response, None when unlabeled."""
        if not data or data.get("odata.null"):
            return None
        name = data.get("TagName") or ""
        if not name:
            return None
        return cls(
            name=name,
            block_delete=bool(data.get("BlockDelete", False)),
            block_edit=bool(data.get("BlockEdit", False)),
        )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header.

    Accepts delta-seconds or an HTTP date. Returns seconds, or None when the
    header is missing or unparseable.
    """
    if not value:
        return None

    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


def site_host(site_url: str) -> str:
    """Return the scheme and host of a site URL, e.g. https://contoso.sharepoint.com."""
    parsed = urlparse(site_url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Not an absolute site URL: {site_url}")
    return f"{parsed.scheme}://{parsed.netloc}"


def _odata_string(value: str) -> str:
    """Quote a string literal for an OData URL."""
    return "'" + value.replace("'", "''") + "'"


class SiteSession:
    """
    A connection to one SharePoint site.

    Sessions are created by SharePointClient.connect() and must be released
    with SharePointClient.disconnect() before the next site is processed.
    A session is never shared between sites.
    """

    def __init__(self, client: "SharePointClient", site_url: str, title: str = ""):
        self.client = client
        self.site_url = site_url.rstrip("/")
        self.title = title
        self.closed = False

    def _check_open(self):
        if self.closed:
            raise SharePointAPIError(f"Session for {self.site_url} is closed")

    def _api(self, method: str, path: str, **kwargs) -> dict:
        self._check_open()
        return self.client._request(method, f"{self.site_url}/_api/{path}", **kwargs)

    def _list_url(self, lst: ListInfo) -> str:
        if lst.server_relative_url:
            return lst.server_relative_url
        return f"{urlparse(self.site_url).path}/{lst.title}"

    # =========================================================================
    # Lists
    # =========================================================================

    def list_lists(self) -> list[ListInfo]:
        """Enumerate all lists in the site, in service order."""
        self._check_open()
        data = self.client._get_paged(
            f"{self.site_url}/_api/web/lists",
            params={
                "$select": "Id,Title,Hidden,ItemCount,RootFolder/ServerRelativeUrl",
                "$expand": "RootFolder",
            },
        )
        return [ListInfo.from_api(entry) for entry in data]

    # =========================================================================
    # Retention labels
    # =========================================================================

    def get_label(self, lst: ListInfo) -> Optional[RetentionLabel]:
        """Get the retention label on a list, or None if unlabeled."""
        response = self._api(
            "GET",
            "SP.CompliancePolicy.SPPolicyStoreProxy.GetListComplianceTag(listUrl=@u)"
            f"?@u={quote(_odata_string(self._list_url(lst)))}",
        )
        return RetentionLabel.from_api(response)

    def reset_label(self, lst: ListInfo) -> None:
        """Clear the retention label metadata on a list."""
        self._set_list_tag(lst, "", block_delete=False, block_edit=False, sync_to_items=False)

    def apply_label(self, lst: ListInfo, label: RetentionLabel, sync_to_items: bool = True) -> None:
        """Apply a retention label to a list, optionally pushing it to items."""
        self._set_list_tag(
            lst,
            label.name,
            block_delete=label.block_delete,
            block_edit=label.block_edit,
            sync_to_items=sync_to_items,
        )

    def _set_list_tag(
        self,
        lst: ListInfo,
        tag: str,
        block_delete: bool,
        block_edit: bool,
        sync_to_items: bool,
    ) -> None:
        self._api(
            "POST",
            "SP.CompliancePolicy.SPPolicyStoreProxy.SetListComplianceTag",
            json={
                "listUrl": self._list_url(lst),
                "complianceTagValue": tag,
                "blockDelete": block_delete,
                "blockEdit": block_edit,
                "syncToItems": sync_to_items,
            },
        )

    # =========================================================================
    # Items and records
    # =========================================================================

    def list_items(self, lst: ListInfo) -> list[ListItem]:
        """List all items of a list with their compliance flags, in page order."""
        self._check_open()
        data = self.client._get_paged(
            f"{self.site_url}/_api/web/lists/GetByTitle({_odata_string(lst.title)})/items",
            params={
                "$select": "Id,Title,FileLeafRef,_ComplianceFlags,_ComplianceTag",
                "$top": str(ITEM_PAGE_SIZE),
            },
        )
        return [ListItem.from_api(entry) for entry in data]

    def unlock_item(self, lst: ListInfo, item_id: int) -> bool:
        """
        Unlock an item locked as a record.

        Returns:
            True if the service reported success
        """
        response = self._api(
            "POST",
            "SP.CompliancePolicy.SPPolicyStoreProxy.UnlockRecordItem",
            json={"listUrl": self._list_url(lst), "itemId": item_id},
        )
        return bool(response.get("value", True))


class SharePointClient:
    """
    SharePoint Online REST client.

    Handles authentication via MSAL and provides the site-level connection
    capability used by the traversal:
    - connect(site_url) -> SiteSession
    - disconnect(session)

    Tokens are acquired per SharePoint host and cached until five minutes
    before they expire.

    Usage:
        with SharePointClient(tenant_id, client_id, credential) as client:
            session = client.connect(site_url)
            try:
                lists = session.list_lists()
            finally:
                client.disconnect(session)
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_credential: Union[str, dict],
        timeout: float = 60.0,
        transport: Optional["httpx.BaseTransport"] = None,
    ):
        """
        Initialize SharePoint client.

        Args:
            tenant_id: Entra ID tenant ID (GUID or domain)
            client_id: Application (client) ID
            client_credential: Client secret, or MSAL certificate dict
                with "thumbprint" and "private_key"
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)

        Raises:
            ImportError: If msal or httpx not installed
            SharePointAuthError: If MSAL rejects the tenant or credential
        """
        if not HAS_MSAL:
            raise ImportError("msal required for SharePoint. Install with: pip install msal")
        if not HAS_HTTPX:
            raise ImportError("httpx required for SharePoint. Install with: pip install httpx")

        self.tenant_id = tenant_id
        self.client_id = client_id

        # MSAL validates the authority and loads certificates here
        try:
            self._app = ConfidentialClientApplication(
                client_id=client_id,
                client_credential=client_credential,
                authority=f"https://login.microsoftonline.com/{tenant_id}",
            )
        except Exception as e:
            raise SharePointAuthError(f"Cannot initialise MSAL client: {e}") from e

        # host -> (token, expires)
        self._tokens: dict[str, tuple[str, datetime]] = {}

        self._http = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _get_token(self, host: str) -> str:
        """
        Acquire or refresh the access token for a SharePoint host.

        Raises:
            SharePointAuthError: If authentication fails
        """
        cached = self._tokens.get(host)
        if cached and datetime.now() < cached[1] - timedelta(minutes=5):
            return cached[0]

        try:
            result = self._app.acquire_token_for_client(scopes=[f"{host}/.default"])
        except Exception as e:
            raise SharePointAuthError(f"Token request for {host} failed: {e}") from e

        if "access_token" not in result:
            error = result.get("error_description", result.get("error", "Unknown error"))
            raise SharePointAuthError(f"Authentication failed: {error}")

        expires_in = result.get("expires_in", 3600)
        self._tokens[host] = (result["access_token"], datetime.now() + timedelta(seconds=expires_in))

        logger.debug(f"Acquired token for {host}, expires in {expires_in}s")
        return result["access_token"]

    def _headers(self, url: str) -> dict:
        return {
            "Authorization": f"Bearer {self._get_token(site_host(url))}",
            "Accept": ODATA_JSON,
            "Content-Type": ODATA_JSON,
        }

    def _request(
        self,
        method: str,
        url: str,
        json: dict = None,
        params: dict = None,
    ) -> dict:
        """
        Make authenticated request to SharePoint REST.

        Returns:
            Response JSON as dict

        Raises:
            SharePointAPIError: If request fails
        """
        try:
            response = self._http.request(
                method=method,
                url=url,
                headers=self._headers(url),
                json=json,
                params=params,
            )
        except httpx.RequestError as e:
            raise SharePointAPIError(f"Request failed: {e}")

        if response.status_code >= 400:
            error_data = {}
            try:
                error_data = response.json()
                error_msg = error_data.get("odata.error", {}).get("message", {}).get(
                    "value", response.text
                )
            except (ValueError, AttributeError):
                error_msg = response.text

            raise SharePointAPIError(
                f"SharePoint error ({response.status_code}): {error_msg}",
                status_code=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
                response=error_data if isinstance(error_data, dict) else {},
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise SharePointAPIError(
                f"Invalid JSON from {url} ({response.status_code}): {e}",
                status_code=response.status_code,
            )

    def _get_paged(self, url: str, params: dict = None) -> list[dict]:
        """GET a collection, following odata.nextLink until exhausted."""
        results = []
        response = self._request("GET", url, params=params)
        results.extend(response.get("value", []))

        next_link = response.get("odata.nextLink")
        while next_link:
            response = self._request("GET", next_link)
            results.extend(response.get("value", []))
            next_link = response.get("odata.nextLink")

        return results

    # =========================================================================
    # Connection
    # =========================================================================

    def connect(self, site_url: str) -> SiteSession:
        """
        Open a session on a site.

        Verifies the site is reachable with the current credentials.

        Raises:
            SharePointAPIError: Site missing, access denied or throttled
            SharePointAuthError: Token could not be acquired
        """
        site_url = site_url.rstrip("/")
        try:
            site_host(site_url)
        except ValueError as e:
            raise SharePointAPIError(str(e))

        data = self._request(
            "GET",
            f"{site_url}/_api/web",
            params={"$select": "Title,Url"},
        )
        logger.debug(f"Connected to {site_url}")
        return SiteSession(self, site_url, title=data.get("Title", ""))

    def disconnect(self, session: SiteSession) -> None:
        """Release a site session."""
        session.closed = True
        logger.debug(f"Disconnected from {session.site_url}")

    def test_connection(self, site_url: str) -> bool:
        """Check that credentials work against a site."""
        try:
            self.disconnect(self.connect(site_url))
            return True
        except RemoteCallError:
            return False

    def close(self):
        """Close HTTP client."""
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def is_available() -> bool:
    """Check if SharePoint client dependencies are installed."""
    return HAS_MSAL and HAS_HTTPX

