"""
Signal Sources

The pipeline depends only on SignalSource.collect() -> List[Signal].
Concrete feed connectors live outside this package; the sources here cover
static batches, JSON files and a generic HTTP JSON endpoint.

Accepted payloads (file or HTTP body):
- a JSON list of signal objects
- an object with a "signals" list
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import requests

from pipeline.errors import SignalSourceError
from pipeline.signal import Signal

logger = logging.getLogger(__name__)


def signals_from_payload(payload: Any, source_name: str = "") -> List[Signal]:
    """
    Convert a decoded JSON payload into signals.

    Records missing an id get "<source>-<index>". Records that are not
    objects still become (empty) signals so batch size is preserved.
    """
    if isinstance(payload, dict):
        payload = payload.get("signals", [])
    if not isinstance(payload, list):
        raise SignalSourceError(
            f"Expected a list of signals from {source_name or 'source'}, "
            f"got {type(payload).__name__}"
        )

    prefix = source_name or "signal"
    return [
        Signal.from_dict(record, fallback_id=f"{prefix}-{index}")
        for index, record in enumerate(payload)
    ]


class SignalSource(ABC):
    """Supplies raw signal batches."""

    name: str = "source"

    @abstractmethod
    def collect(self) -> List[Signal]:
        """Return the next batch of signals."""


class StaticSignalSource(SignalSource):
    """A fixed, in-memory batch (Signals or raw dicts)."""

    name = "static"

    def __init__(self, signals: Optional[Iterable[Union[Signal, Dict[str, Any]]]] = None):
        self._signals: List[Signal] = []
        for index, item in enumerate(signals or []):
            if isinstance(item, Signal):
                self._signals.append(item)
            else:
                self._signals.append(Signal.from_dict(item, fallback_id=f"static-{index}"))

    def collect(self) -> List[Signal]:
        return list(self._signals)


class JsonFileSignalSource(SignalSource):
    """Reads a batch from a JSON file on every collect()."""

    name = "json_file"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def collect(self) -> List[Signal]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SignalSourceError(f"Cannot read signals from {self.path}: {e}")

        signals = signals_from_payload(payload, source_name=self.path.stem)
        logger.info(f"Collected {len(signals)} signals from {self.path}")
        return signals


class HttpSignalSource(SignalSource):
    """
    Polls a JSON endpoint.

    Uses a persistent requests session; non-200 responses and transport
    errors raise SignalSourceError so the run is recorded as failed.
    """

    name = "http"

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize HTTP source.

        Args:
            url: Endpoint returning signal JSON
            timeout: Request timeout in seconds
            headers: Extra request headers
            session: Injected session (tests)
        """
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": "SignalIntelligencePipeline/1.0",
            "Accept": "application/json"
        })
        if headers:
            self._session.headers.update(headers)

    def collect(self) -> List[Signal]:
        try:
            response = self._session.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            raise SignalSourceError(f"Request to {self.url} failed: {e}")

        if response.status_code != 200:
            raise SignalSourceError(f"Failed to fetch signals from {self.url}: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise SignalSourceError(f"Invalid JSON from {self.url}: {e}")

        signals = signals_from_payload(payload, source_name="http")
        logger.info(f"Collected {len(signals)} signals from {self.url}")
        return signals


def build_source(
    signal_file: Optional[str] = None,
    signal_url: Optional[str] = None,
    timeout: float = 10.0
) -> SignalSource:
    """
    Pick a source from settings: URL wins over file; neither means an empty batch.
    """
    if signal_url:
        return HttpSignalSource(signal_url, timeout=timeout)
    if signal_file:
        return JsonFileSignalSource(signal_file)
    logger.warning("No signal source configured, using an empty static source")
    return StaticSignalSource([])
