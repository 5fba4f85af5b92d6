"""Spotify Web API and Accounts clients"""

import base64
import logging
import time
from typing import List, Optional
from urllib.parse import urlencode

import requests
from pydantic import ValidationError

from songaday.errors import AuthError, FetchError, PublishError
from songaday.models.aggregate import Credentials
from songaday.models.spotify import (
    HistoryPage, PlaylistCreated, RecentlyPlayedResponse, TokenResponse, UserProfile
)
from songaday.monitoring.metrics import record_api_call
from songaday.utils.batch import PLAYLIST_BATCH_SIZE
from songaday.utils.retry import raise_for_transient, retry_with_backoff


logger = logging.getLogger(__name__)

SCOPE = ("user-read-private user-read-email user-read-recently-played "
         "playlist-modify-public playlist-modify-private")
HISTORY_PAGE_LIMIT = 50
REQUEST_TIMEOUT = 30


class SpotifyAPI:
    """Spotify Web API calls the refresh cycle needs.

    The access token is passed per call because it changes every cycle.
    Transient failures are retried; anything left over is raised as the
    error type of the operation (FetchError, AuthError or PublishError).
    """

    def __init__(self, base_url: str = "https://api.spotify.com/v1",
                 session: Optional[requests.Session] = None,
                 max_retries: int = 3, retry_delay: float = 1.0):
        """Initialize Spotify API client.

        Args:
            base_url: Web API base URL
            session: Optional requests session (shared connection pool)
            max_retries: Attempts after the first for transient failures
            retry_delay: Initial backoff delay in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _request(self, method: str, url: str, access_token: str, **kwargs) -> requests.Response:
        """Make an authenticated request with retry on transient failures.

        Raises:
            requests.exceptions.RequestException: After retries are exhausted
        """
        if not url.startswith(("http://", "https://")):
            url = f"{self.base_url}/{url.lstrip('/')}"
        headers = {"Authorization": f"Bearer {access_token}"}

        @retry_with_backoff(max_retries=self.max_retries, initial_delay=self.retry_delay)
        def make_request():
            start = time.monotonic()
            try:
                r = self.session.request(method, url, headers=headers,
                                         timeout=REQUEST_TIMEOUT, **kwargs)
                raise_for_transient(r)
                r.raise_for_status()
            except requests.exceptions.RequestException:
                record_api_call("spotify", "error", time.monotonic() - start)
                raise
            record_api_call("spotify", "success", time.monotonic() - start)
            return r

        return make_request()

    def fetch_recent_plays(self, access_token: str, cursor: Optional[str] = None) -> HistoryPage:
        """Fetch one page of recently played tracks, newest first.

        Args:
            access_token: Bearer token
            cursor: ``next`` URL from the previous page, None for the newest page

        Raises:
            FetchError: Request failed or the payload did not match
        """
        url = cursor or f"me/player/recently-played?limit={HISTORY_PAGE_LIMIT}"
        try:
            r = self._request("GET", url, access_token)
            return HistoryPage.from_response(RecentlyPlayedResponse.model_validate(r.json()))
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Couldn't get recently played: {str(e)[:200]}") from e
        except (ValueError, ValidationError) as e:
            raise FetchError(f"Unexpected recently played payload: {str(e)[:200]}") from e

    def get_current_user(self, access_token: str) -> str:
        """Return the Spotify user id the token belongs to.

        Raises:
            AuthError: The token was rejected or the profile was malformed
        """
        try:
            r = self._request("GET", "me", access_token)
            return UserProfile.model_validate(r.json()).id
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Couldn't get user id: {str(e)[:200]}") from e
        except (ValueError, ValidationError) as e:
            raise AuthError(f"Unexpected profile payload: {str(e)[:200]}") from e

    def create_playlist(self, user_id: str, access_token: str, name: str, description: str) -> str:
        """Create a playlist for ``user_id`` and return its id.

        Raises:
            PublishError: The playlist could not be created
        """
        try:
            r = self._request("POST", f"users/{user_id}/playlists", access_token,
                              json={"name": name, "description": description})
            playlist_id = PlaylistCreated.model_validate(r.json()).id
        except requests.exceptions.RequestException as e:
            raise PublishError(f"Couldn't create playlist: {str(e)[:200]}") from e
        except (ValueError, ValidationError) as e:
            raise PublishError(f"Unexpected playlist payload: {str(e)[:200]}") from e

        logger.info("Created playlist %s for %s", playlist_id, user_id)
        return playlist_id

    def _check_batch(self, uris: List[str]) -> None:
        if len(uris) > PLAYLIST_BATCH_SIZE:
            raise ValueError(f"At most {PLAYLIST_BATCH_SIZE} URIs per request, got {len(uris)}")

    def replace_playlist_items(self, playlist_id: str, access_token: str, uris: List[str]) -> None:
        """Replace the entire playlist contents with ``uris``.

        Raises:
            PublishError: The write was rejected
        """
        self._check_batch(uris)
        try:
            self._request("PUT", f"playlists/{playlist_id}/tracks", access_token,
                          json={"uris": uris})
        except requests.exceptions.RequestException as e:
            raise PublishError(f"Couldn't replace playlist: {str(e)[:200]}") from e

    def append_playlist_items(self, playlist_id: str, access_token: str,
                              uris: List[str], position: int) -> None:
        """Insert ``uris`` at ``position``.

        Raises:
            PublishError: The write was rejected
        """
        self._check_batch(uris)
        try:
            self._request("POST", f"playlists/{playlist_id}/tracks", access_token,
                          json={"uris": uris, "position": position})
        except requests.exceptions.RequestException as e:
            raise PublishError(f"Couldn't add to playlist: {str(e)[:200]}") from e


class SpotifyAuth:
    """Authorization-code flow against the Spotify Accounts service."""

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 accounts_url: str = "https://accounts.spotify.com",
                 session: Optional[requests.Session] = None,
                 max_retries: int = 3, retry_delay: float = 1.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.accounts_url = accounts_url.rstrip("/")
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def authorize_url(self, state: str) -> str:
        """URL the user is redirected to for consent."""
        return f"{self.accounts_url}/authorize?" + urlencode({
            "response_type": "code",
            "client_id": self.client_id,
            "scope": SCOPE,
            "redirect_uri": self.redirect_uri,
            "state": state,
        })

    def _basic_auth(self) -> str:
        raw = f"{self.client_id}:{self.client_secret}".encode()
        return "Basic " + base64.b64encode(raw).decode()

    def _token(self, form: dict) -> TokenResponse:
        """POST to the token endpoint, retrying transient failures.

        Raises:
            AuthError: The grant was rejected or retries were exhausted
        """
        @retry_with_backoff(max_retries=self.max_retries, initial_delay=self.retry_delay)
        def post_token():
            start = time.monotonic()
            try:
                r = self.session.post(
                    f"{self.accounts_url}/api/token",
                    data=form,
                    headers={"Authorization": self._basic_auth()},
                    timeout=REQUEST_TIMEOUT,
                )
                raise_for_transient(r)
                r.raise_for_status()
            except requests.exceptions.RequestException:
                record_api_call("spotify_accounts", "error", time.monotonic() - start)
                raise
            record_api_call("spotify_accounts", "success", time.monotonic() - start)
            return r

        try:
            return TokenResponse.model_validate(post_token().json())
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Authorisation error: {str(e)[:200]}") from e
        except (ValueError, ValidationError) as e:
            raise AuthError(f"Unexpected token payload: {str(e)[:200]}") from e

    def exchange_code(self, code: str) -> Credentials:
        """Trade an authorization code for a token pair.

        Raises:
            AuthError: The code was rejected
        """
        token = self._token({
            "code": code,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        })
        if not token.refresh_token:
            raise AuthError("Token response carried no refresh token")
        return Credentials(access_token=token.access_token, refresh_token=token.refresh_token)

    def refresh(self, refresh_token: str) -> Credentials:
        """Get a fresh access token.

        Spotify may rotate the refresh token; when it does not, the old one
        stays valid and is kept.

        Raises:
            AuthError: The refresh token was rejected
        """
        token = self._token({
            "refresh_token": refresh_token,
            "redirect_uri": self.redirect_uri,
            "grant_type": "refresh_token",
        })
        return Credentials(
            access_token=token.access_token,
            refresh_token=token.refresh_token or refresh_token,
        )
