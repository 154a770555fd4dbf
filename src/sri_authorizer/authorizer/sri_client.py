"""
SRI offline authorization web service client.

Posts the ``autorizacionComprobante`` SOAP request to the endpoint of the
voucher's own environment and turns the XML answer into an
AuthorizationResult. Only the fields the worker consumes are read from the
response.
"""

import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape

import requests

from sri_authorizer.core.errors import RemoteAuthorityError
from sri_authorizer.core.interfaces import AuthorityClient
from sri_authorizer.core.models import (
    AuthorizationResult,
    RawAuthorizationResponse,
    SriEnvironment,
)
from sri_authorizer.observability import metrics
from sri_authorizer.observability.logger import get_logger

logger = get_logger(__name__)

SRI_PRODUCTION_ENDPOINT = (
    "https://cel.sri.gob.ec/comprobantes-electronicos-ws/AutorizacionComprobantesOffline"
)
SRI_TEST_ENDPOINT = (
    "https://celcer.sri.gob.ec/comprobantes-electronicos-ws/AutorizacionComprobantesOffline"
)
DEFAULT_TIMEOUT_SECONDS = 60.0

SOAP_ENVELOPE = (
    '<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" '
    'xmlns:ec="http://ec.gob.sri.ws.autorizacion">'
    "<soapenv:Header/>"
    "<soapenv:Body>"
    "<ec:autorizacionComprobante>"
    "<claveAccesoComprobante>{access_key}</claveAccesoComprobante>"
    "</ec:autorizacionComprobante>"
    "</soapenv:Body>"
    "</soapenv:Envelope>"
)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element | None, name: str) -> ET.Element | None:
    if element is None:
        return None
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def _children(element: ET.Element | None, name: str) -> list[ET.Element]:
    if element is None:
        return []
    return [child for child in element if _local_name(child.tag) == name]


def _text(element: ET.Element | None, name: str) -> str | None:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def _find_anywhere(root: ET.Element, name: str) -> ET.Element | None:
    for element in root.iter():
        if _local_name(element.tag) == name:
            return element
    return None


def _format_message(mensaje: ET.Element) -> str:
    """Flatten one <mensaje> entry into a single diagnostic line."""
    if len(mensaje) == 0:
        return (mensaje.text or "").strip()

    identifier = _text(mensaje, "identificador")
    text = _text(mensaje, "mensaje")
    extra = _text(mensaje, "informacionAdicional")
    kind = _text(mensaje, "tipo")

    line = ": ".join(part for part in (identifier, text) if part)
    if extra:
        line = f"{line} - {extra}" if line else extra
    if kind:
        line = f"[{kind}] {line}"
    return line


def parse_authorization_response(xml_text: str | bytes) -> RawAuthorizationResponse:
    """
    Parse the SOAP answer of autorizacionComprobante.

    Args:
        xml_text: Raw SOAP response body

    Returns:
        RawAuthorizationResponse for the first authorization entry; all fields
        are None when the authority returned no entry. ``messages`` is a
        single string when exactly one message was returned.

    Raises:
        RemoteAuthorityError: On SOAP faults or unexpected response shape
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise RemoteAuthorityError(f"Unparseable response from SRI: {e}") from e

    fault = _find_anywhere(root, "Fault")
    if fault is not None:
        reason = _text(fault, "faultstring") or "unknown fault"
        raise RemoteAuthorityError(f"SRI SOAP fault: {reason}")

    answer = _find_anywhere(root, "RespuestaAutorizacionComprobante")
    if answer is None:
        raise RemoteAuthorityError("SRI response lacks RespuestaAutorizacionComprobante")

    entries = _children(_child(answer, "autorizaciones"), "autorizacion")
    if not entries:
        return RawAuthorizationResponse()

    entry = entries[0]
    messages = [
        _format_message(mensaje)
        for mensaje in _children(_child(entry, "mensajes"), "mensaje")
    ]

    voucher_element = _child(entry, "comprobante")
    voucher = voucher_element.text.strip() if voucher_element is not None and voucher_element.text else None

    return RawAuthorizationResponse(
        status=_text(entry, "estado"),
        voucher=voucher or None,
        authorization_date=_text(entry, "fechaAutorizacion"),
        authorization_number=_text(entry, "numeroAutorizacion"),
        environment=_text(entry, "ambiente"),
        messages=messages[0] if len(messages) == 1 else (messages or None),
    )


class SriAuthorizationClient(AuthorityClient):
    """
    HTTP client for the SRI authorization service.

    The endpoint is chosen per call from the voucher's environment, never
    globally.
    """

    def __init__(
        self,
        production_endpoint: str = SRI_PRODUCTION_ENDPOINT,
        test_endpoint: str = SRI_TEST_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        """
        Initialize the client.

        Args:
            production_endpoint: Production service URL
            test_endpoint: Test service URL
            timeout: Request timeout in seconds
            session: HTTP session (one per process, owned by the caller)
        """
        self.endpoints = {
            SriEnvironment.PRODUCTION: self._service_url(production_endpoint),
            SriEnvironment.TEST: self._service_url(test_endpoint),
        }
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def _service_url(endpoint: str) -> str:
        # WSDL URLs are accepted in configuration; requests go to the service itself
        return endpoint.split("?", 1)[0]

    def endpoint_for(self, environment: SriEnvironment) -> str:
        return self.endpoints[environment]

    def authorize(self, access_key: str, environment: SriEnvironment) -> AuthorizationResult:
        endpoint = self.endpoint_for(environment)
        envelope = SOAP_ENVELOPE.format(access_key=escape(access_key))

        try:
            with metrics.track_duration(
                metrics.remote_call_duration_seconds, environment=environment.value
            ):
                response = self.session.post(
                    endpoint,
                    data=envelope.encode("utf-8"),
                    headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": ""},
                    timeout=self.timeout,
                )
        except requests.exceptions.Timeout as e:
            raise RemoteAuthorityError(
                f"SRI request timed out after {self.timeout}s", access_key=access_key
            ) from e
        except requests.exceptions.RequestException as e:
            raise RemoteAuthorityError(f"SRI service error: {e}", access_key=access_key) from e

        # SOAP faults come back as HTTP 500 with a fault body
        if response.status_code >= 400 and "Fault" not in (response.text or ""):
            raise RemoteAuthorityError(
                f"SRI service returned HTTP {response.status_code}", access_key=access_key
            )

        raw = parse_authorization_response(response.content)
        result = AuthorizationResult.from_response(raw)

        logger.info(
            "SRI authorization response",
            extra={
                "access_key": access_key,
                "environment": environment.value,
                "sri_status": result.detail.status,
                "authorized": result.authorized,
                "message_count": len(result.detail.messages),
            },
        )
        return result
