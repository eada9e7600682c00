"""
DID Manager - mint and resolve DID Documents following W3C DID Core 1.0

DID Format: did:<method>:<unique-identifier>

Reference: https://www.w3.org/TR/did-core/
"""

import logging
import secrets
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .crypto import DEFAULT_KEY_TYPE, SECP256K1_2019, CryptoProvider
from .errors import (
    DIDWalletError,
    KeyGenerationError,
    KeyNotFoundError,
    NotFoundError,
    StorageError,
    UnsupportedKeyTypeError,
    ValidationError,
)
from .key_manager import KeyManager, verification_method_id
from .models import DID_PREFIX, DIDDocument, VerificationMethod, utcnow
from .storage import Store

logger = logging.getLogger(__name__)


class DIDMethod(Enum):
    """Well-known DID methods"""
    WALLET = "wallet"    # Our default method
    EXAMPLE = "example"
    WEB = "web"
    TELCO = "telco"


class DIDManager:
    """
    Manages DID creation and resolution

    Features:
    - Create new DIDs with a fresh key pair
    - Resolve DIDs and verification methods
    - List stored DIDs
    """

    def __init__(
        self,
        store: Store,
        key_manager: KeyManager,
        crypto: CryptoProvider,
        key_type: str = DEFAULT_KEY_TYPE
    ):
        self.store = store
        self.key_manager = key_manager
        self.crypto = crypto
        self.key_type = key_type

    # ==================== DID CREATION ====================

    def generate_identifier(
        self,
        method: Union[str, DIDMethod] = DIDMethod.WALLET,
        options: Optional[Dict[str, Any]] = None
    ) -> DIDDocument:
        """
        Create a new DID with one verification method

        Args:
            method: DID method name
            options: "id" sets the identifier suffix, "keyType" the key type

        Returns:
            The public DID Document
        """
        options = options or {}
        method_name = method.value if isinstance(method, DIDMethod) else method
        if not method_name:
            raise ValidationError("DID method is empty", operation="generate_identifier")

        unique_id = options.get("id") or secrets.token_hex(16)
        did = f"did:{method_name}:{unique_id}"

        if self.store.exists(did):
            raise ValidationError("DID already exists", operation="generate_identifier", entity_id=did)

        key_type = options.get("keyType") or self.key_type
        try:
            private_key, public_jwk = self.crypto.generate_key_pair(key_type)
        except UnsupportedKeyTypeError as e:
            raise KeyGenerationError(
                f"Cannot generate key pair: {e.message}",
                operation="generate_identifier",
                entity_id=did
            ) from e

        key_id = verification_method_id(did)
        vm = VerificationMethod(
            id=key_id,
            type=key_type,
            controller=did,
            public_key_jwk=public_jwk
        )
        if key_type == SECP256K1_2019:
            vm.blockchain_account_id = self.crypto.account_id(public_jwk)

        doc = DIDDocument(
            id=did,
            verification_method=[vm],
            authentication=[key_id],
            assertion_method=[key_id],
            created=utcnow().replace(microsecond=0)
        )

        # Best effort: a document without a usable key is an accepted failure mode
        try:
            self.key_manager.save_private_key(key_id, private_key, key_type)
        except StorageError as e:
            logger.warning("Failed to store private key for %s: %s", did, e)

        try:
            self.store.save(did, doc.to_dict())
        except StorageError as e:
            raise StorageError(
                f"Failed to save public DID Document: {e.message}",
                operation="generate_identifier",
                entity_id=did
            ) from e

        logger.info("Created DID %s (%s)", did, key_type)
        return doc

    # ==================== DID RESOLUTION ====================

    def resolve_identifier(self, did: str) -> DIDDocument:
        """Resolve DID to DID Document, NotFoundError if absent"""
        if not did:
            raise ValidationError("DID is empty", operation="resolve_identifier")
        try:
            data = self.store.load(did)
        except NotFoundError as e:
            raise NotFoundError("DID not found", operation="resolve_identifier", entity_id=did) from e
        return DIDDocument.from_dict(data)

    def resolve_verification_method(self, method_id: str) -> VerificationMethod:
        """Resolve `<did>#key-N` to its entry in the DID Document"""
        did = method_id.split("#", 1)[0]
        doc = self.resolve_identifier(did)
        vm = doc.get_verification_method(method_id)
        if vm is None:
            raise KeyNotFoundError(
                "Verification method not found in DID Document",
                operation="resolve_verification_method",
                entity_id=method_id
            )
        return vm

    def list_identifiers(self) -> List[DIDDocument]:
        """List all stored DID Documents; unreadable entries are skipped"""
        documents = []
        for key in self.store.list_keys(DID_PREFIX):
            try:
                documents.append(DIDDocument.from_dict(self.store.load(key)))
            except (DIDWalletError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable DID Document %s: %s", key, e)
        return documents
