"""
Telemetry transports
Forward verified daily samples to a downstream telemetry sink
"""
import json
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Type

import requests
from azure.eventhub import EventData, EventHubProducerClient

from .exceptions import UnsupportedTransportError, UploadError
from .samples import SampleSet

logger = logging.getLogger(__name__)


class Transport(ABC):
    """A downstream telemetry sink"""

    name = ""

    @classmethod
    @abstractmethod
    def from_config(cls, options: Mapping[str, Any]) -> "Transport":
        """Build the transport from its configuration section"""

    @abstractmethod
    def upload(self, samples: SampleSet) -> bool:
        """Send samples, True on success"""

    def close(self):
        """Release any connection held by the transport"""


class PachubeTransport(Transport):
    """Pachube feed datastream, one datapoint per reading"""

    name = "pachube"

    def __init__(self, api_key: str, feed_id: str, datastream_id: str,
                 api_url: str = "https://api.pachube.com/v2", timeout: float = 30.0):
        self.api_key = api_key
        self.feed_id = feed_id
        self.datastream_id = datastream_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, options: Mapping[str, Any]) -> "PachubeTransport":
        missing = [key for key in ("api_key", "feed_id", "datastream_id") if not options.get(key)]
        if missing:
            raise UploadError(f"pachube transport is missing options: {', '.join(missing)}")
        return cls(
            api_key=str(options["api_key"]),
            feed_id=str(options["feed_id"]),
            datastream_id=str(options["datastream_id"]),
            api_url=options.get("api_url", "https://api.pachube.com/v2"),
        )

    @property
    def datapoints_url(self) -> str:
        return f"{self.api_url}/feeds/{self.feed_id}/datastreams/{self.datastream_id}/datapoints"

    def upload(self, samples: SampleSet) -> bool:
        datapoints = [
            {"at": sample.start.strftime("%Y-%m-%dT%H:%M:%SZ"), "value": f"{sample.kwh:.3f}"}
            for sample in samples
        ]
        if not datapoints:
            return True

        try:
            response = requests.post(
                self.datapoints_url,
                headers={"X-PachubeApiKey": self.api_key, "Content-Type": "application/json"},
                data=json.dumps({"datapoints": datapoints}),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to post {len(datapoints)} datapoints to Pachube: {e}")
            return False

        logger.info(f"Posted {len(datapoints)} datapoints to feed {self.feed_id}")
        return True


class EventstreamTransport(Transport):
    """Microsoft Fabric Eventstream via Azure Event Hubs, one JSON event per reading"""

    name = "eventstream"

    def __init__(self, connection_string: str, eventhub_name: str):
        """
        Args:
            connection_string: Azure Event Hubs connection string
            eventhub_name: Name of the Event Hub (Eventstream)
        """
        self.connection_string = connection_string
        self.eventhub_name = eventhub_name
        self.producer: Optional[EventHubProducerClient] = None

    @classmethod
    def from_config(cls, options: Mapping[str, Any]) -> "EventstreamTransport":
        missing = [key for key in ("connection_string", "eventhub_name") if not options.get(key)]
        if missing:
            raise UploadError(f"eventstream transport is missing options: {', '.join(missing)}")
        return cls(options["connection_string"], options["eventhub_name"])

    def connect(self):
        """Establish connection to Event Hub"""
        self.producer = EventHubProducerClient.from_connection_string(
            conn_str=self.connection_string,
            eventhub_name=self.eventhub_name
        )
        logger.info(f"Connected to Event Hub: {self.eventhub_name}")

    def _events(self, samples: SampleSet) -> List[Dict[str, Any]]:
        retrieved_at = datetime.now(timezone.utc).isoformat()
        return [
            {
                "day": sample.day.isoformat(),
                "start": sample.start.isoformat(),
                "duration": sample.duration,
                "kwh": sample.kwh,
                "retrieved_at": retrieved_at,
            }
            for sample in samples
        ]

    def upload(self, samples: SampleSet) -> bool:
        events = self._events(samples)
        if not events:
            return True

        try:
            if not self.producer:
                self.connect()

            batch = self.producer.create_batch()
            for event in events:
                event_data = EventData(json.dumps(event))
                try:
                    batch.add(event_data)
                except ValueError:
                    # Batch is full
                    self.producer.send_batch(batch)
                    batch = self.producer.create_batch()
                    batch.add(event_data)
            self.producer.send_batch(batch)
        except Exception as e:
            logger.error(f"Failed to send {len(events)} events to Eventstream: {e}")
            return False

        logger.info(f"Successfully sent {len(events)} events to Eventstream")
        return True

    def close(self):
        """Close the connection to Event Hub"""
        if self.producer:
            self.producer.close()
            self.producer = None
            logger.info("Closed Event Hub connection")


TRANSPORTS: Dict[str, Type[Transport]] = {
    PachubeTransport.name: PachubeTransport,
    EventstreamTransport.name: EventstreamTransport,
}


def create_transport(name: str, options: Mapping[str, Any]) -> Transport:
    """
    Instantiate the transport registered under name.

    Raises:
        UnsupportedTransportError: No transport has that name
    """
    try:
        transport_cls = TRANSPORTS[name]
    except KeyError:
        raise UnsupportedTransportError(
            f"Unknown transport {name!r}, expected one of: {', '.join(sorted(TRANSPORTS))}"
        )
    return transport_cls.from_config(options)


class UploadAdapter:
    """Dispatches uploads to the configured transport; a no-op when none is configured"""

    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport

    @classmethod
    def from_config(cls, name: Optional[str], options: Mapping[str, Any]) -> "UploadAdapter":
        if not name:
            return cls()
        return cls(create_transport(name, options))

    @property
    def enabled(self) -> bool:
        return self.transport is not None

    def upload(self, day: date, samples: SampleSet) -> bool:
        """
        Upload one day of samples.

        Returns:
            True when the transport accepted the samples. False when it
            failed or when no transport is configured.
        """
        if self.transport is None:
            logger.info(f"No transport configured, skipping upload for {day}")
            return False

        logger.info(f"Uploading {day} to {self.transport.name}")
        try:
            success = self.transport.upload(samples)
        except UploadError as e:
            logger.error(f"Upload for {day} failed: {e}")
            return False
        except Exception as e:
            logger.error(f"Upload for {day} failed unexpectedly: {e}", exc_info=True)
            return False

        if success:
            logger.info(f"Upload for {day} complete")
        else:
            logger.error(f"Upload for {day} failed")
        return success

    def close(self):
        if self.transport is not None:
            self.transport.close()
