"""
Holder Wallet
=============

Local copies of DIDs, credentials and presentations, and construction of
signed presentations with selective disclosure.

Storage keys:
- DID Documents under the DID itself (`did:...`)
- credentials under their id (`vc:<subject>:<local-id>`)
- presentations under `vp:<nonce>`
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from . import disclosure
from .canonical import canonicalize
from .crypto import CryptoProvider
from .errors import DIDWalletError, NotFoundError, StorageError, ValidationError
from .key_manager import KeyManager
from .models import (
    DID_PREFIX,
    PURPOSE_AUTHENTICATION,
    VC_PREFIX,
    VP_PREFIX,
    CredentialFilter,
    DIDDocument,
    PresentationFilter,
    Proof,
    VerifiableCredential,
    VerifiablePresentation,
    presentation_key,
    utcnow,
)
from .storage import Store

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Wallet:
    """
    Holder side of the credential lifecycle

    Features:
    - Store, get and list DIDs, credentials and presentations
    - Local sanity checks of credentials and presentations
    - Build signed presentations revealing only requested claims
    """

    def __init__(
        self,
        store: Store,
        crypto: CryptoProvider,
        key_manager: KeyManager,
        holder_did: Optional[str] = None
    ):
        self.store = store
        self.crypto = crypto
        self.key_manager = key_manager
        self.holder_did = holder_did

    # ==================== STORAGE HELPERS ====================

    def _save_once(self, key: str, value: Dict[str, Any], operation: str):
        """
        Save a record that must never change once stored

        Saving identical content again is a no-op; different content under
        an existing key raises ValidationError.
        """
        try:
            existing = self.store.load(key)
        except NotFoundError:
            self.store.save(key, value)
            return

        if canonicalize(existing) != canonicalize(value):
            raise ValidationError("A different record is already stored", operation=operation, entity_id=key)

    def _load(self, key: str, factory: Callable[[Dict[str, Any]], T], label: str, operation: str) -> T:
        try:
            data = self.store.load(key)
        except NotFoundError as e:
            raise NotFoundError(f"Failed to load {label}", operation=operation, entity_id=key) from e

        try:
            return factory(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StorageError(f"Unreadable {label} record: {e}", operation=operation, entity_id=key) from e

    # ==================== DIDs ====================

    def store_identifier(self, doc: DIDDocument):
        """Store a DID Document; a published document is never replaced"""
        if not doc.id:
            raise ValidationError("DID must have an ID", operation="store_identifier")
        if not doc.id.startswith(DID_PREFIX):
            raise ValidationError("Not a DID", operation="store_identifier", entity_id=doc.id)
        self._save_once(doc.id, doc.to_dict(), "store_identifier")

    def get_identifier(self, did: str) -> DIDDocument:
        if not did:
            raise ValidationError("Empty DID", operation="get_identifier")
        if not did.startswith(DID_PREFIX):
            raise NotFoundError("Not a DID", operation="get_identifier", entity_id=did)
        return self._load(did, DIDDocument.from_dict, "DID", "get_identifier")

    def list_identifiers(self) -> List[DIDDocument]:
        documents = []
        for key in self.store.list_keys(DID_PREFIX):
            try:
                documents.append(DIDDocument.from_dict(self.store.load(key)))
            except (DIDWalletError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable DID Document %s: %s", key, e)
        return documents

    # ==================== CREDENTIALS ====================

    def store_credential(self, vc: VerifiableCredential):
        """Store a credential under its `vc:` id; a signed VC is never replaced"""
        if not vc.id:
            raise ValidationError("VC must have an ID", operation="store_credential")
        if not vc.id.startswith(VC_PREFIX):
            raise ValidationError("Not a credential id", operation="store_credential", entity_id=vc.id)
        self._save_once(vc.id, vc.to_dict(), "store_credential")

    def get_credential(self, vc_id: str) -> VerifiableCredential:
        if not vc_id:
            raise ValidationError("Empty VC ID", operation="get_credential")
        if not vc_id.startswith(VC_PREFIX):
            raise NotFoundError("Not a credential id", operation="get_credential", entity_id=vc_id)
        return self._load(vc_id, VerifiableCredential.from_dict, "VC", "get_credential")

    def list_credentials(
        self,
        filter: Optional[CredentialFilter] = None,
        now: Optional[datetime] = None
    ) -> List[VerifiableCredential]:
        filter = filter or CredentialFilter()
        now = now or utcnow()

        credentials = []
        for key in self.store.list_keys(VC_PREFIX):
            try:
                vc = VerifiableCredential.from_dict(self.store.load(key))
            except (DIDWalletError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable credential %s: %s", key, e)
                continue
            if filter.matches(vc, now):
                credentials.append(vc)
        return credentials

    def verify_credential(self, vc: VerifiableCredential) -> bool:
        """Holder-side check: proof present, disclosures and signature valid"""
        if vc.proof is None:
            raise ValidationError("Missing proof", operation="verify_credential", entity_id=vc.id)
        return self.crypto.verify_credential(vc)

    # ==================== PRESENTATIONS ====================

    def store_presentation(self, vp: VerifiablePresentation):
        """Store a presentation under `vp:<nonce>`; a used nonce is refused"""
        if not vp.nonce:
            raise ValidationError("VP must have a nonce", operation="store_presentation")
        key = vp.storage_key
        if self.store.exists(key):
            raise ValidationError("Nonce already used", operation="store_presentation", entity_id=key)
        self.store.save(key, vp.to_dict())

    def get_presentation(self, vp_id: str) -> VerifiablePresentation:
        """Load a presentation by nonce or by its `vp:` key"""
        if not vp_id:
            raise ValidationError("Empty VP ID", operation="get_presentation")
        key = presentation_key(vp_id)
        return self._load(key, VerifiablePresentation.from_dict, "VP", "get_presentation")

    def list_presentations(
        self,
        filter: Optional[PresentationFilter] = None,
        now: Optional[datetime] = None
    ) -> List[VerifiablePresentation]:
        filter = filter or PresentationFilter()
        now = now or utcnow()

        presentations = []
        for key in self.store.list_keys(VP_PREFIX):
            try:
                vp = VerifiablePresentation.from_dict(self.store.load(key))
            except (DIDWalletError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable presentation %s: %s", key, e)
                continue
            if filter.matches(vp, now):
                presentations.append(vp)
        return presentations

    def verify_presentation(self, vp: VerifiablePresentation) -> bool:
        """Holder-side sanity check only; use PresentationVerifier for real verification"""
        if vp.proof is None:
            raise ValidationError("Missing proof", operation="verify_presentation", entity_id=vp.storage_key)
        return True

    # ==================== VP BUILDER ====================

    def build_presentation(
        self,
        vc_ids: List[str],
        reveal_fields: Optional[Dict[str, List[str]]] = None,
        nonce: str = "",
        holder_did: Optional[str] = None
    ) -> VerifiablePresentation:
        """
        Build, sign and store a Verifiable Presentation

        Args:
            vc_ids: credentials to embed, in order
            reveal_fields: VC id -> claim names to reveal; a VC without an
                entry reveals all of its claims
            nonce: session value supplied by the verifier
            holder_did: signing holder; defaults to the wallet's holder

        Returns:
            The signed presentation, stored under `vp:<nonce>`
        """
        if not vc_ids:
            raise ValidationError("No VC IDs provided", operation="build_presentation")
        if not nonce:
            raise ValidationError("Nonce is required for Verifiable Presentation", operation="build_presentation")

        holder = holder_did or self.holder_did
        if not holder:
            raise ValidationError("No holder DID configured for the wallet", operation="build_presentation")

        key = presentation_key(nonce)
        if self.store.exists(key):
            raise ValidationError("Nonce already used", operation="build_presentation", entity_id=key)

        reveal_fields = reveal_fields or {}

        # 1. Load every credential first: no partial presentations
        disclosed = []
        for vc_id in vc_ids:
            vc = self.get_credential(vc_id)
            disclosed.append(disclosure.redact(vc, reveal_fields.get(vc_id)))

        # 2. Assemble
        created = utcnow().replace(microsecond=0)
        vp = VerifiablePresentation(
            holder=holder,
            nonce=nonce,
            created=created,
            verifiable_credential=disclosed
        )

        # 3. Sign with the holder's key
        signing_key = self.key_manager.resolve_signing_key(holder)
        signature = self.crypto.sign_document(vp.to_dict(), signing_key.private_key, signing_key.key_type)
        vp.proof = Proof(
            type=self.crypto.proof_type(signing_key.key_type),
            created=created,
            proof_purpose=PURPOSE_AUTHENTICATION,
            verification_method=signing_key.verification_method,
            proof_value=signature
        )

        # 4. Save
        self.store.save(key, vp.to_dict())
        logger.info("Built presentation %s with %d credential(s) for %s", key, len(disclosed), holder)
        return vp
