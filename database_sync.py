"""
Best-time store with server synchronization capabilities.
Use this as an alternative to database.py when records should follow the
player to other machines through the stats server.
"""
import os
import time
import uuid
import random
from typing import Dict, Optional

import requests

from classes import parse_time
from database import BestScoreDatabase

# Server configuration
SERVER_URL = "http://localhost:5000"
CLIENT_ID_FILE = ".client_id"


def get_client_id(path: str = CLIENT_ID_FILE) -> str:
    """Read this machine's client ID, generating and saving one the first time."""
    if os.path.exists(path):
        with open(path, "r") as f:
            client_id = f.read().strip()
        if client_id:
            return client_id

    client_id = str(uuid.uuid4())
    with open(path, "w") as f:
        f.write(client_id)
    return client_id


def normalize_server_url(server_url: str) -> str:
    """Ensure the URL has an http:// prefix and a trailing slash."""
    if server_url and not server_url.startswith(('http://', 'https://')):
        server_url = 'http://' + server_url
    if server_url and not server_url.endswith('/'):
        server_url += '/'
    return server_url


class SyncBestScoreDatabase(BestScoreDatabase):
    """
    Best-time store that mirrors every write to the remote server.
    Reads prefer the server copy and fall back to the local cache when offline.
    """

    def __init__(self, db_file="memory_game.db", server_url=SERVER_URL,
                 client_id=None, max_retries=5, base_delay=1.0, timeout=5):
        """
        Initialize the database connection with sync capabilities.

        Args:
            db_file: Local database file; the remote cache lives next to it
            server_url: Address of the stats server
            client_id: Identifier the server files records under
            max_retries: Attempts made for each write to the server
            base_delay: Initial backoff delay in seconds
            timeout: Timeout for each HTTP request in seconds
        """
        # Use a different database file for remote mode to ensure isolation
        db_dir, db_name = os.path.split(db_file)
        super().__init__(os.path.join(db_dir, "remote_" + db_name))

        self.server_url = normalize_server_url(server_url)
        print(f"Initializing sync database with server URL: {self.server_url}")

        self.client_id = client_id or get_client_id()
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self.online = False   # Assume offline until we verify connection

        self.check_server_connection()

    def _key_url(self, key: Optional[str] = None) -> str:
        base_url = self.server_url.rstrip('/')
        url = f"{base_url}/api/best/{self.client_id}"
        if key is not None:
            url += f"/{key}"
        return url

    def check_server_connection(self) -> bool:
        """Check if the server is available."""
        try:
            print(f"Checking server connection to: {self.server_url}")
            response = requests.get(self.server_url, timeout=self.timeout)
            self.online = response.status_code == 200
            print(f"Server connection: {'Online' if self.online else 'Offline'} (Status code: {response.status_code})")
            return self.online
        except requests.exceptions.ConnectionError as e:
            self.online = False
            print(f"Server connection failed (ConnectionError): {e}")
            return False
        except requests.exceptions.Timeout as e:
            self.online = False
            print(f"Server connection timeout: {e}")
            return False
        except requests.exceptions.RequestException as e:
            self.online = False
            print(f"Server connection error: {e}")
            return False

    def get(self, key: str) -> Optional[str]:
        """
        Read a value from the server, reconciled with the local cache.
        Falls back to the local copy when the server is unreachable or has no value.
        """
        if self.online:
            try:
                response = requests.get(self._key_url(key), timeout=self.timeout)
                if response.status_code == 200:
                    value = response.json().get('value')
                    if isinstance(value, str):
                        return self._keep_best(key, value)
                elif response.status_code != 404:
                    print(f"Unexpected response reading {key} from server: {response.status_code}")
            except requests.exceptions.RequestException as e:
                print(f"Network error reading {key}: {e}")
                self.online = False
            except ValueError as e:
                print(f"Invalid response reading {key}: {e}")

        return super().get(key)

    def _keep_best(self, key: str, remote: str) -> str:
        """
        Reconcile the server value with the local copy, keeping the faster time.
        A faster local time (saved while offline) is pushed back to the server.
        """
        local = super().get(key)
        if local is None or local == remote:
            super().set(key, remote)
            return remote

        try:
            remote_seconds = parse_time(remote)
        except ValueError:
            remote_seconds = None
        try:
            local_seconds = parse_time(local)
        except ValueError:
            local_seconds = None

        if local_seconds is not None and (remote_seconds is None or local_seconds < remote_seconds):
            print(f"Local {key}={local} beats server value {remote}, pushing it")
            self.push(key, local)
            return local

        super().set(key, remote)
        return remote

    def set(self, key: str, value: str) -> bool:
        """Save a value locally and directly to the server (no queuing)."""
        saved = super().set(key, value)

        if self.online or self.check_server_connection():
            self.push(key, value)

        # Local success is what counts; the server copy is best effort
        return saved

    def push(self, key: str, value: str) -> bool:
        """
        Send one value to the server with retry logic.

        Returns:
            True if the server accepted the value
        """
        url = self._key_url(key)

        for attempt in range(1, self.max_retries + 1):
            try:
                if attempt > 1:
                    print(f"Retry attempt {attempt}/{self.max_retries} for saving {key}")
                else:
                    print(f"Directly saving {key} to server: {url}")

                response = requests.put(
                    url,
                    json={"value": value},
                    timeout=self.timeout + (attempt * 5)  # Increasing timeout with each retry
                )

                if response.status_code == 200:
                    print(f"Successfully saved {key}={value} to server")
                    return True

                print(f"Attempt {attempt}: Failed to save {key} to server: {response.status_code}")
                # Only retry on 5xx server errors or rate limiting
                if response.status_code < 500 and response.status_code != 429:
                    print(f"Non-retriable error code {response.status_code}, abandoning retry")
                    return False

            except requests.exceptions.RequestException as e:
                print(f"Attempt {attempt}: Network error saving {key}: {e}")

            # Don't sleep after the last attempt
            if attempt < self.max_retries:
                # Exponential backoff with jitter to avoid thundering herd
                delay = self.base_delay * (2 ** (attempt - 1)) * (0.5 + random.random())
                print(f"Waiting {delay:.2f}s before retry...")
                time.sleep(delay)

        print(f"Failed to save {key} to server after {self.max_retries} attempts")
        return False

    def get_remote_scores(self) -> Dict[str, str]:
        """Fetch every record the server holds for this client."""
        try:
            response = requests.get(self._key_url(), timeout=self.timeout)
            if response.status_code == 200:
                return dict(response.json().get('best_scores', {}))
            print(f"Failed to fetch remote scores: {response.status_code}")
        except requests.exceptions.RequestException as e:
            print(f"Network error fetching remote scores: {e}")
        except ValueError as e:
            print(f"Invalid response fetching remote scores: {e}")
        return {}

    def force_sync_all(self) -> int:
        """
        Push every locally cached value to the server.

        Returns:
            Number of values the server accepted
        """
        if not (self.online or self.check_server_connection()):
            print("Server offline, nothing synced")
            return 0

        synced = 0
        for key, value in self.items().items():
            if self.push(key, value):
                synced += 1
        print(f"Synced {synced} value(s) to server")
        return synced


# Shared instance, created on first use
sync_db = None

def get_sync_database(server_url=None, db_file="memory_game.db") -> SyncBestScoreDatabase:
    """
    Get the syncing database instance.

    Args:
        server_url: Optional URL of the server to use.
                   If it differs from the current one, creates a new instance with this URL.
        db_file: Local database file backing the cache
    """
    global sync_db

    server_url = normalize_server_url(server_url or SERVER_URL)
    if sync_db is None or sync_db.server_url != server_url:
        print(f"Creating new sync database instance with server URL: {server_url}")
        sync_db = SyncBestScoreDatabase(db_file=db_file, server_url=server_url)
    return sync_db
