"""
Key Manager - custody of private key material for DIDs

Private keys are kept in the shared store under `privatekey:<verification-method-id>`
and are never returned through wallet or verifier read paths.

Which verification method signs for a DID is decided by a key policy.
The default policy is the single-key convention `<did>#key-1`.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .crypto import PRIVATE_KEY_SIZES
from .errors import KeyNotFoundError, NotFoundError, ValidationError
from .storage import Store

logger = logging.getLogger(__name__)

PRIVATE_KEY_PREFIX = "privatekey:"


def verification_method_id(did: str, index: int = 1) -> str:
    return f"{did}#key-{index}"


class DefaultKeyPolicy:
    """Sign with the first key of a DID: `<did>#key-1`"""

    def __init__(self, index: int = 1):
        self.index = index

    def __call__(self, did: str) -> str:
        return verification_method_id(did, self.index)


KeyPolicy = Callable[[str], str]


@dataclass
class KeyRecord:
    """Private key material for one verification method"""
    verification_method: str
    key_type: str
    private_key: bytes = field(repr=False)

    @property
    def controller(self) -> str:
        return self.verification_method.split("#", 1)[0]


class KeyManager:
    """
    Maps verification method ids to private key material

    Features:
    - Save and load raw private keys with size validation
    - Resolve the signing key of a DID through a key policy
    - List key ids (never key bytes)
    """

    def __init__(self, store: Store, policy: Optional[KeyPolicy] = None):
        self.store = store
        self.policy = policy or DefaultKeyPolicy()

    @staticmethod
    def _storage_key(method_id: str) -> str:
        return PRIVATE_KEY_PREFIX + method_id

    # ==================== STORAGE ====================

    def save_private_key(self, method_id: str, private_key: bytes, key_type: str):
        """
        Persist a private key

        Raises StorageError if the backend fails; the caller decides whether
        that is fatal.
        """
        if not method_id:
            raise ValidationError("Verification method id is empty", operation="save_private_key")

        expected = PRIVATE_KEY_SIZES.get(key_type)
        if expected is not None and len(private_key) != expected:
            raise ValidationError(
                f"Invalid private key size ({len(private_key)}) for {key_type}",
                operation="save_private_key",
                entity_id=method_id
            )

        self.store.save(self._storage_key(method_id), {
            "keyType": key_type,
            "privateKey": base64.b64encode(private_key).decode("ascii")
        })
        logger.debug("Stored private key for %s", method_id)

    def load_private_key(self, method_id: str) -> KeyRecord:
        """
        Load a private key

        A missing record, an undecodable record or a size that does not match
        the declared key type all raise KeyNotFoundError.
        """
        try:
            record = self.store.load(self._storage_key(method_id))
        except NotFoundError as e:
            raise KeyNotFoundError("Private key not found", operation="load_private_key", entity_id=method_id) from e

        try:
            key_type = record["keyType"]
            private_key = base64.b64decode(record["privateKey"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise KeyNotFoundError("Corrupt private key record", operation="load_private_key", entity_id=method_id) from e

        expected = PRIVATE_KEY_SIZES.get(key_type)
        if expected is None or len(private_key) != expected:
            raise KeyNotFoundError(
                f"Invalid private key size ({len(private_key)}) for {key_type}",
                operation="load_private_key",
                entity_id=method_id
            )

        return KeyRecord(verification_method=method_id, key_type=key_type, private_key=private_key)

    def has_key(self, method_id: str) -> bool:
        return self.store.exists(self._storage_key(method_id))

    # ==================== SIGNING KEY RESOLUTION ====================

    def resolve_signing_key(self, did: str) -> KeyRecord:
        """Private key the policy selects for signing on behalf of `did`"""
        if not did:
            raise KeyNotFoundError("Signing DID is empty", operation="resolve_signing_key")
        return self.load_private_key(self.policy(did))

    # ==================== KEY MANAGEMENT ====================

    def list_keys(self) -> List[str]:
        """List verification method ids with stored keys"""
        return [
            key[len(PRIVATE_KEY_PREFIX):]
            for key in self.store.list_keys(PRIVATE_KEY_PREFIX)
        ]
