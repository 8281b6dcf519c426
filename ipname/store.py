"""
ipname Record Stores

The store collaborator holds one serialized record per name. Reads return
raw envelope bytes; writes are compare-and-swap on the sequence number the
writer based its update on.

Backends:
- InMemoryRecordStore: process-local, used by tests and the CLI dry runs
- W3NameHTTPStore: w3name HTTP API (GET/POST {api}/name/{name})
- GatewayRecordStore: read-only trustless IPFS gateway
- FallbackRecordStore: reads from the first store that answers
"""

import base64
import binascii
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

import requests
from pydantic import BaseModel, ValidationError

from . import config
from .envelope import decode_envelope
from .errors import DecodeError, RecordNotFound, StoreUnavailable

logger = logging.getLogger(__name__)

IPNS_RECORD_CONTENT_TYPE = "application/vnd.ipfs.ipns-record"


class PutOutcome(str, Enum):
    """Store answer to a write."""
    OK = "OK"
    CONFLICT = "CONFLICT"
    UNAVAILABLE = "UNAVAILABLE"
    REJECTED = "REJECTED"


class ResolveResponse(BaseModel):
    """w3name resolve response body."""
    value: str
    record: str


class RecordStore(ABC):
    """Abstract record store."""

    @abstractmethod
    def get(self, name: str) -> bytes:
        """
        Fetch the serialized record for a name.

        Raises:
            RecordNotFound: nothing is published under the name
            StoreUnavailable: the store could not answer
        """

    @abstractmethod
    def put(self, name: str, data: bytes, expected_previous_sequence: Optional[int]) -> PutOutcome:
        """
        Write a serialized record.

        expected_previous_sequence is the sequence the writer read before
        building this record (None if it saw no record).
        """


class InMemoryRecordStore(RecordStore):
    """In-memory store with compare-and-swap on sequence."""

    def __init__(self):
        self._records: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> bytes:
        with self._lock:
            data = self._records.get(name)
        if data is None:
            raise RecordNotFound(name)
        return data

    def put(self, name: str, data: bytes, expected_previous_sequence: Optional[int]) -> PutOutcome:
        try:
            new_sequence = decode_envelope(data).record.sequence
        except DecodeError as e:
            logger.warning("Rejected undecodable record for %s: %s", name, e)
            return PutOutcome.REJECTED

        with self._lock:
            existing = self._records.get(name)
            current_sequence = decode_envelope(existing).record.sequence if existing is not None else None

            if current_sequence != expected_previous_sequence:
                return PutOutcome.CONFLICT
            if current_sequence is not None and new_sequence <= current_sequence:
                return PutOutcome.CONFLICT

            self._records[name] = bytes(data)
        return PutOutcome.OK

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._records)


class W3NameHTTPStore(RecordStore):
    """
    Store backed by the w3name HTTP API.

    The service enforces sequence ordering itself, so
    expected_previous_sequence is not sent; a losing write comes back as a
    conflict status.
    """

    def __init__(self, api_url: Optional[str] = None, timeout: Optional[float] = None):
        self.api_url = (api_url or config.API_URL).rstrip("/")
        self.timeout = config.HTTP_TIMEOUT if timeout is None else timeout

    def _url(self, name: str) -> str:
        return f"{self.api_url}/name/{name}"

    def get(self, name: str) -> bytes:
        try:
            resp = requests.get(self._url(name), timeout=self.timeout)
        except requests.RequestException as e:
            raise StoreUnavailable(f"Resolve request for {name} failed: {e}") from e

        if resp.status_code == 404:
            raise RecordNotFound(name)
        if resp.status_code != 200:
            raise StoreUnavailable(f"Resolve for {name} returned HTTP {resp.status_code}: {resp.text}")

        try:
            body = ResolveResponse.model_validate(resp.json())
            return base64.b64decode(body.record, validate=True)
        except (ValueError, ValidationError, binascii.Error) as e:
            raise StoreUnavailable(f"Resolve response for {name} is unusable: {e}") from e

    def put(self, name: str, data: bytes, expected_previous_sequence: Optional[int]) -> PutOutcome:
        try:
            resp = requests.post(
                self._url(name),
                data=base64.b64encode(data),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Publish request for %s failed: %s", name, e)
            return PutOutcome.UNAVAILABLE

        return self._outcome_for(resp)

    @staticmethod
    def _outcome_for(resp) -> PutOutcome:
        status = resp.status_code
        if 200 <= status < 300:
            return PutOutcome.OK
        if status == 409 or (status == 400 and "sequence" in resp.text.lower()):
            return PutOutcome.CONFLICT
        if status >= 500:
            logger.warning("Publish returned HTTP %d: %s", status, resp.text)
            return PutOutcome.UNAVAILABLE
        logger.warning("Publish rejected with HTTP %d: %s", status, resp.text)
        return PutOutcome.REJECTED


class GatewayRecordStore(RecordStore):
    """Read-only store over a trustless IPFS gateway."""

    def __init__(self, gateway_url: Optional[str] = None, timeout: Optional[float] = None):
        self.gateway_url = (gateway_url or config.GATEWAY_URL).rstrip("/")
        self.timeout = config.HTTP_TIMEOUT if timeout is None else timeout

    def get(self, name: str) -> bytes:
        url = f"{self.gateway_url}/ipns/{name}"
        try:
            resp = requests.get(url, headers={"Accept": IPNS_RECORD_CONTENT_TYPE}, timeout=self.timeout)
        except requests.RequestException as e:
            raise StoreUnavailable(f"Gateway request for {name} failed: {e}") from e

        if resp.status_code == 404:
            raise RecordNotFound(name)
        if resp.status_code != 200:
            raise StoreUnavailable(f"Gateway returned HTTP {resp.status_code} for {name}")
        return resp.content

    def put(self, name: str, data: bytes, expected_previous_sequence: Optional[int]) -> PutOutcome:
        logger.warning("Gateway store is read-only; refusing write for %s", name)
        return PutOutcome.REJECTED


class FallbackRecordStore(RecordStore):
    """
    Reads from the primary store, falling back to the others in order when
    a store is unavailable. A RecordNotFound answer is final. Writes go to
    the primary only.
    """

    def __init__(self, primary: RecordStore, fallbacks: Sequence[RecordStore]):
        self.primary = primary
        self.fallbacks = list(fallbacks)

    def get(self, name: str) -> bytes:
        last_error: Optional[StoreUnavailable] = None
        for store in [self.primary, *self.fallbacks]:
            try:
                return store.get(name)
            except StoreUnavailable as e:
                logger.warning("%s unavailable for %s: %s", type(store).__name__, name, e)
                last_error = e
        raise StoreUnavailable(f"No store could resolve {name}: {last_error}")

    def put(self, name: str, data: bytes, expected_previous_sequence: Optional[int]) -> PutOutcome:
        return self.primary.put(name, data, expected_previous_sequence)


def default_store() -> RecordStore:
    """w3name API, falling back to the gateway for reads."""
    return FallbackRecordStore(W3NameHTTPStore(), [GatewayRecordStore()])
