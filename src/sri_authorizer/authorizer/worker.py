"""
Authorization worker.

Processes one AUTHORIZE_VOUCHER message at a time:

1. decode the access key into identity and company id
2. load the voucher (absent -> VoucherNotFoundError, nothing else happens;
   already AUTHORIZED / NOT_AUTHORIZED -> return without writing)
3. mark it PROCESSING
4. ask the remote authority
5. store the signed document when authorized
6. write AUTHORIZED / NOT_AUTHORIZED with the normalized messages

A failure after step 3 leaves the voucher at PROCESSING and is re-raised so
the queue redelivers the message. Duplicate deliveries of a finished voucher
are acknowledged without another remote call or write, so the PROCESSING
marker cannot reopen it.
"""

import json

from pydantic import ValidationError as PydanticValidationError

from sri_authorizer.core import access_key as access_key_codec
from sri_authorizer.core.errors import MalformedKeyError, RemoteAuthorityError, VoucherNotFoundError
from sri_authorizer.core.interfaces import AuthorityClient, VoucherStore
from sri_authorizer.core.models import (
    AuthorizationRequest,
    AuthorizationResult,
    SriEnvironment,
    VoucherStatus,
)
from sri_authorizer.observability import metrics
from sri_authorizer.observability.logger import get_logger, log_operation
from sri_authorizer.storage.artifact_store import (
    XML_CONTENT_TYPE,
    ArtifactStore,
    authorized_artifact_key,
)

logger = get_logger(__name__)

FINAL_STATUSES = frozenset({VoucherStatus.AUTHORIZED, VoucherStatus.NOT_AUTHORIZED})


class AuthorizationWorker:
    """
    Performs the external authorization call and persists its outcome.
    """

    def __init__(
        self,
        store: VoucherStore,
        authority: AuthorityClient,
        artifact_store: ArtifactStore | None = None,
    ):
        """
        Initialize the worker.

        Args:
            store: Voucher table
            authority: Remote authority client
            artifact_store: Blob store for authorized XML (None disables storage)
        """
        self.store = store
        self.authority = authority
        self.artifact_store = artifact_store

    def handle_message(self, body: str | bytes) -> None:
        """
        Process a queue message body of the form {"accessKey": "..."}.

        Raises:
            MalformedKeyError: If the body cannot be decoded
        """
        try:
            message = AuthorizationRequest.from_json(body)
        except (json.JSONDecodeError, PydanticValidationError, TypeError) as e:
            raise MalformedKeyError(f"Undecodable authorization message: {e}") from e

        self.process_voucher(message.access_key)

    def process_voucher(self, access_key: str) -> VoucherStatus:
        """
        Authorize a voucher.

        Args:
            access_key: Access key of the voucher

        Returns:
            Final status (AUTHORIZED or NOT_AUTHORIZED), written now or earlier

        Raises:
            MalformedKeyError: If the access key cannot be decoded
            VoucherNotFoundError: If the voucher does not exist
            RemoteAuthorityError: If the remote call fails
        """
        identity = access_key_codec.decode(access_key)
        company_id = access_key_codec.company_id(access_key)
        environment = identity.environment

        logger.info(
            "Processing voucher",
            extra={"access_key": access_key, "company_id": company_id, "voucher_id": identity.voucher_key},
        )

        current = self.store.get(company_id, identity)
        if current is None:
            logger.error("Voucher not found", extra={"access_key": access_key})
            metrics.increment_counter(
                metrics.authorizations_total, environment=environment.value, outcome="not_found"
            )
            raise VoucherNotFoundError(access_key)

        # A final status is never reopened; redeliveries stop here
        if current.status in FINAL_STATUSES:
            logger.info(
                f"Voucher already {current.status.value}, skipping",
                extra={"access_key": access_key, "status": current.status.value},
            )
            metrics.increment_counter(
                metrics.authorizations_total, environment=environment.value, outcome="already_final"
            )
            return current.status

        self.store.update_status(company_id, identity, VoucherStatus.PROCESSING)

        with log_operation("authorize voucher", logger=logger, access_key=access_key):
            try:
                result = self._authorize(access_key, environment)

                if result.authorized and result.detail.voucher:
                    self._store_authorized_xml(company_id, access_key, result.detail.voucher)

                status = VoucherStatus.AUTHORIZED if result.authorized else VoucherStatus.NOT_AUTHORIZED
                self.store.update_status(
                    company_id,
                    identity,
                    status,
                    messages=result.detail.messages,
                    sri_status=result.detail.status,
                    authorization_date=result.detail.authorization_date,
                )
            except Exception as e:
                # Voucher stays at PROCESSING; the queue retries the whole message
                metrics.increment_counter(
                    metrics.authorizations_total, environment=environment.value, outcome="error"
                )
                metrics.record_error(e, component="authorization_worker")
                raise

        metrics.increment_counter(
            metrics.authorizations_total,
            environment=environment.value,
            outcome=status.value.lower(),
        )
        logger.info(
            f"Voucher {access_key} status: {status.value}",
            extra={"access_key": access_key, "status": status.value, "sri_status": result.detail.status},
        )
        return status

    def _authorize(self, access_key: str, environment: SriEnvironment) -> AuthorizationResult:
        try:
            return self.authority.authorize(access_key, environment)
        except RemoteAuthorityError:
            raise
        except Exception as e:
            raise RemoteAuthorityError(f"SRI service error: {e}", access_key=access_key) from e

    def _store_authorized_xml(self, company_id: str, access_key: str, voucher_xml: str) -> None:
        if self.artifact_store is None:
            logger.warning(
                "Skipping XML upload: no artifact store configured",
                extra={"access_key": access_key},
            )
            metrics.increment_counter(metrics.artifacts_stored_total, status="skipped")
            return

        key = authorized_artifact_key(company_id, access_key)
        location = self.artifact_store.put(key, voucher_xml, XML_CONTENT_TYPE)
        metrics.increment_counter(metrics.artifacts_stored_total, status="stored")
        logger.info(
            "Authorized XML stored",
            extra={"access_key": access_key, "artifact_key": key, "location": location},
        )
