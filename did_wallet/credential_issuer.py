"""
Verifiable Credentials Issuer
=============================

Issues signed Verifiable Credentials following the
W3C Verifiable Credentials Data Model 1.1

Reference: https://www.w3.org/TR/vc-data-model/
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from . import disclosure
from .crypto import CryptoProvider
from .did_manager import DIDManager, DIDMethod
from .errors import NotFoundError, StorageError, ValidationError
from .key_manager import KeyManager
from .models import (
    BASE_CREDENTIAL_TYPE,
    PURPOSE_ASSERTION,
    SUBJECT_ID_KEY,
    VC_PREFIX,
    CredentialRequest,
    CredentialStatus,
    DIDDocument,
    Proof,
    VerifiableCredential,
    format_timestamp,
    utcnow,
)
from .storage import Store

logger = logging.getLogger(__name__)

STATUS_PREFIX = "status:"
REVOCATION_ENTRY_TYPE = "StoreRevocationEntry"


class CredentialIssuer:
    """
    Issuer side of the credential lifecycle

    Features:
    - Mint, resolve and list issuer/subject DIDs
    - Issue signed credentials
    - Revoke credentials through status entries in the store
    """

    def __init__(
        self,
        store: Store,
        key_manager: KeyManager,
        crypto: CryptoProvider,
        did_manager: Optional[DIDManager] = None
    ):
        self.store = store
        self.key_manager = key_manager
        self.crypto = crypto
        self.did_manager = did_manager or DIDManager(store, key_manager, crypto)

    # ==================== IDENTIFIERS ====================

    def generate_identifier(
        self,
        method: Union[str, DIDMethod] = DIDMethod.WALLET,
        options: Optional[Dict[str, Any]] = None
    ) -> DIDDocument:
        return self.did_manager.generate_identifier(method, options)

    def resolve_identifier(self, did: str) -> DIDDocument:
        return self.did_manager.resolve_identifier(did)

    def list_identifiers(self) -> List[DIDDocument]:
        return self.did_manager.list_identifiers()

    # ==================== CREDENTIAL ISSUANCE ====================

    def issue_credential(self, request: CredentialRequest) -> VerifiableCredential:
        """
        Issue a signed Verifiable Credential

        Args:
            request: issuer, subject, types, claims, validity

        Returns:
            The signed credential, already persisted under its id
        """
        if request is None:
            raise ValidationError("Credential request is missing", operation="issue_credential")
        if not request.issuer_did:
            raise ValidationError("issuerDID missing", operation="issue_credential")
        if not request.subject_did:
            raise ValidationError("subjectDID missing", operation="issue_credential")
        if request.validity_days < 0:
            raise ValidationError("validityDays must not be negative", operation="issue_credential")

        issued_at = utcnow().replace(microsecond=0)
        expires_at = None
        if request.validity_days > 0:
            expires_at = issued_at + timedelta(days=request.validity_days)

        local_id = (request.options or {}).get("id") or str(uuid.uuid4())
        vc_id = f"{VC_PREFIX}{request.subject_did}:{local_id}"
        if self.store.exists(vc_id):
            raise ValidationError("Credential id already in use", operation="issue_credential", entity_id=vc_id)

        vc = VerifiableCredential(
            id=vc_id,
            type=self._credential_types(request.credential_type),
            issuer=request.issuer_did,
            issuance_date=issued_at,
            expiration_date=expires_at,
            credential_subject=self._credential_subject(request)
        )
        if request.revocable:
            vc.credential_status = CredentialStatus(id=STATUS_PREFIX + vc_id, type=REVOCATION_ENTRY_TYPE)

        signed_vc = self._sign_credential(vc)

        try:
            self.store.save(signed_vc.id, signed_vc.to_dict())
        except StorageError as e:
            raise StorageError(
                f"Failed to save credential: {e.message}",
                operation="issue_credential",
                entity_id=vc_id
            ) from e

        logger.info("Issued credential %s by %s", signed_vc.id, signed_vc.issuer)
        return signed_vc

    @staticmethod
    def _credential_types(requested: List[str]) -> List[str]:
        types = [BASE_CREDENTIAL_TYPE]
        for cred_type in requested or []:
            if cred_type and cred_type not in types:
                types.append(cred_type)
        return types

    @staticmethod
    def _credential_subject(request: CredentialRequest) -> Dict[str, Any]:
        subject = {SUBJECT_ID_KEY: request.subject_did}
        for name, value in (request.claims or {}).items():
            if name == SUBJECT_ID_KEY:
                logger.warning("Ignoring claim overriding subject id for %s", request.subject_did)
                continue
            subject[name] = value
        return subject

    # ==================== SIGNING ====================

    def _sign_credential(self, vc: VerifiableCredential) -> VerifiableCredential:
        """Salt the claims, sign the digest view and attach the proof"""
        key = self.key_manager.resolve_signing_key(vc.issuer)

        salts, digests = disclosure.seal_claims(vc.credential_subject)
        vc.disclosures = salts

        signature = self.crypto.sign_document(
            disclosure.signing_payload(vc, digests),
            key.private_key,
            key.key_type
        )

        vc.proof = Proof(
            type=self.crypto.proof_type(key.key_type),
            created=vc.issuance_date,
            proof_purpose=PURPOSE_ASSERTION,
            verification_method=key.verification_method,
            proof_value=signature,
            claim_digests=digests
        )
        return vc

    # ==================== REVOCATION ====================

    def get_credential(self, credential_id: str) -> VerifiableCredential:
        try:
            return VerifiableCredential.from_dict(self.store.load(credential_id))
        except NotFoundError as e:
            raise NotFoundError("Credential not found", operation="get_credential", entity_id=credential_id) from e

    def revoke_credential(self, credential_id: str, reason: str = "") -> VerifiableCredential:
        """
        Revoke a credential issued with `revocable=True`

        Args:
            credential_id: The credential ID to revoke
            reason: Reason for revocation
        """
        vc = self.get_credential(credential_id)
        if vc.credential_status is None or vc.credential_status.type != REVOCATION_ENTRY_TYPE:
            raise ValidationError("Credential is not revocable", operation="revoke_credential", entity_id=credential_id)

        self.store.save(vc.credential_status.id, {
            "credentialId": credential_id,
            "revoked": True,
            "reason": reason,
            "revokedAt": format_timestamp(utcnow())
        })
        logger.info("Revoked credential %s", credential_id)
        return vc

    def is_revoked(self, credential_id: str) -> bool:
        """Check if credential is revoked"""
        try:
            entry = self.store.load(STATUS_PREFIX + credential_id)
        except NotFoundError:
            return False
        return bool(entry.get("revoked"))
