from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional
from xml.etree import ElementTree as ET

import httpx

from smsgate.core.config import Settings

logger = logging.getLogger(__name__)

SEND_SMS_ENDPOINT = "sms.php"
GETSTATUS_ENDPOINT = "stat.php"
PROTOCOL_VERSION = "1.0"
PARAM_SEPARATOR = ":"
CONTENT_TEMPLATE = "{1}"
XML_HEADERS = {"Content-Type": "text/xml"}
MAX_RETRY_ATTEMPTS = 3
BASE_RETRY_DELAY = 0.4


class GatewayAPIError(RuntimeError):
    """SMS gateway call failure."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@dataclass(frozen=True)
class SmsRecipient:
    sms_id: int
    phone: str
    text: str


@dataclass(frozen=True)
class DeliveryStatus:
    msg_id: str
    code: str
    reason: Optional[str]


@dataclass
class SendResult:
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class GatewayClient:
    """
    Client for the XML SMS gateway.

    Two operations are supported: ``SEND_SMS`` (``{url}/sms.php``) hands a batch
    of recipients to the gateway, ``GETSTATUS`` (``{url}/stat.php``) asks for
    the delivery state of previously sent ids. Both use HTTP basic auth.
    """

    def __init__(
        self,
        base_url: str | None,
        login: str | None,
        password: str | None,
        sender_name: str = "",
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        retry_delay: float = BASE_RETRY_DELAY,
    ) -> None:
        self.base_url = base_url
        self.login = login
        self.password = password
        self.sender_name = sender_name
        self.timeout = timeout
        self.retry_delay = retry_delay
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GatewayClient":
        return cls(
            settings.sms_gateway_url,
            settings.sms_gateway_login,
            settings.sms_gateway_password,
            settings.sms_sender_name,
            timeout=settings.sms_gateway_timeout,
            **kwargs,
        )

    def send_sms(self, recipients: List[SmsRecipient]) -> SendResult:
        if not recipients:
            raise ValueError("recipients must not be empty")
        payload = build_send_sms_xml(recipients, self.sender_name)
        try:
            with self._client() as client:
                response = client.post(
                    self._url(SEND_SMS_ENDPOINT),
                    content=payload,
                    headers=XML_HEADERS,
                )
        except httpx.HTTPError as exc:
            raise GatewayAPIError(f"SEND_SMS call failed: {exc}", retryable=True) from exc
        return SendResult(status_code=response.status_code, body=response.text)

    def get_status(self, sms_ids: Iterable[int | str]) -> Iterator[DeliveryStatus]:
        """
        Poll delivery status, yielding items as soon as they are parsed.

        Retryable failures are retried with backoff, but only while nothing has
        been yielded yet.
        """
        ids = [str(sms_id) for sms_id in sms_ids]
        if not ids:
            return
        payload = build_getstatus_xml(ids)

        attempt = 1
        while True:
            yielded = False
            try:
                for item in self._stream_status(payload):
                    yielded = True
                    yield item
                return
            except GatewayAPIError as exc:
                if yielded or not exc.retryable or attempt >= MAX_RETRY_ATTEMPTS:
                    raise
                delay = min(self.retry_delay * (2 ** (attempt - 1)), 2.0)
                logger.warning("GETSTATUS retry %s after error: %s", attempt, exc)
                time.sleep(delay)
                attempt += 1

    # ----------------------------------------------------------------------- #
    # Internal helpers

    def _stream_status(self, payload: bytes) -> Iterator[DeliveryStatus]:
        try:
            with self._client() as client:
                with client.stream(
                    "POST",
                    self._url(GETSTATUS_ENDPOINT),
                    content=payload,
                    headers=XML_HEADERS,
                ) as response:
                    if response.status_code >= 400:
                        raise GatewayAPIError(
                            f"GETSTATUS HTTP error: {response.status_code}",
                            status_code=response.status_code,
                            retryable=response.status_code >= 500,
                        )
                    yield from parse_status_stream(response.iter_bytes())
        except httpx.HTTPError as exc:
            raise GatewayAPIError(f"GETSTATUS call failed: {exc}", retryable=True) from exc

    def _client(self) -> httpx.Client:
        auth = None
        if self.login is not None:
            auth = httpx.BasicAuth(self.login, self.password or "")
        return httpx.Client(
            timeout=self.timeout,
            verify=True,
            auth=auth,
            transport=self._transport,
        )

    def _url(self, endpoint: str) -> str:
        if not self.base_url:
            raise GatewayAPIError("SMS_GATEWAY_URL is not configured")
        return f"{self.base_url.rstrip('/')}/{endpoint}"


def build_send_sms_xml(recipients: Iterable[SmsRecipient], sender_name: str) -> bytes:
    root = ET.Element("SEND_SMS")
    ET.SubElement(root, "VERSION").text = PROTOCOL_VERSION
    ET.SubElement(root, "SENDER").text = sender_name
    ET.SubElement(root, "SEPARATOP").text = PARAM_SEPARATOR

    tm = ET.SubElement(ET.SubElement(root, "TM_LIST"), "TM")
    dst_list = ET.SubElement(tm, "DST_MSISDN_LIST")
    # the gateway splits param on PARAM_SEPARATOR and fills {1} with the first
    # part, so a ":" in the text truncates what the subscriber receives
    for recipient in recipients:
        dst = ET.SubElement(
            dst_list,
            "DST_MSISDN",
            {"extraID": str(recipient.sms_id), "param": recipient.text},
        )
        dst.text = recipient.phone

    content = ET.SubElement(ET.SubElement(tm, "CONTENT_LIST"), "CONTENT")
    ET.SubElement(content, "CONTENT_TEXT").text = CONTENT_TEMPLATE
    return _serialize(root)


def build_getstatus_xml(sms_ids: Iterable[int | str]) -> bytes:
    root = ET.Element("GETSTATUS")
    ET.SubElement(root, "VERSION").text = PROTOCOL_VERSION
    id_list = ET.SubElement(root, "MSGID_LIST")
    for sms_id in sms_ids:
        ET.SubElement(id_list, "MSGID").text = str(sms_id)
    return _serialize(root)


def parse_status_stream(chunks: Iterable[bytes]) -> Iterator[DeliveryStatus]:
    """
    Incrementally parse a ``STATUSRETURN`` document.

    Every child of ``STATUS_LIST`` is one status item; it is yielded as soon as
    its closing tag has been read.
    """
    parser = ET.XMLPullParser(events=("start", "end"))
    path: List[str] = []
    try:
        for chunk in chunks:
            parser.feed(chunk)
            yield from _drain_events(parser, path)
        parser.close()
    except ET.ParseError as exc:
        raise GatewayAPIError(f"GETSTATUS response XML parse failed: {exc}") from exc
    yield from _drain_events(parser, path)


def _drain_events(parser: ET.XMLPullParser, path: List[str]) -> Iterator[DeliveryStatus]:
    for event, element in parser.read_events():
        tag = element.tag.upper()
        if event == "start":
            path.append(tag)
            continue
        path.pop()
        if path and path[-1] == "STATUS_LIST":
            item = _to_delivery_status(element)
            element.clear()
            if item is not None:
                yield item


def _to_delivery_status(element: ET.Element) -> Optional[DeliveryStatus]:
    data = {child.tag.upper(): (child.text or "").strip() for child in element}
    msg_id = data.get("MSGID")
    if not msg_id:
        logger.warning("GETSTATUS item without MSGID skipped")
        return None
    return DeliveryStatus(
        msg_id=msg_id,
        code=data.get("MSGSTAT", ""),
        reason=data.get("REASON") or None,
    )


def _serialize(root: ET.Element) -> bytes:
    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
