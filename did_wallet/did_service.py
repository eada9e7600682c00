"""
DID Wallet Integration Service
==============================

Wires the engine components around one shared store:
- DID management and key custody
- Credential issuance and revocation
- Holder wallet and presentation building
- Presentation verification
"""

import logging
from typing import Any, Dict, Optional

from .config import WalletSettings, settings as default_settings
from .credential_issuer import STATUS_PREFIX, CredentialIssuer
from .credential_verifier import PresentationVerifier, StoreStatusChecker
from .crypto import CryptoProvider
from .did_manager import DIDManager
from .key_manager import PRIVATE_KEY_PREFIX, KeyManager
from .models import DID_PREFIX, VC_PREFIX, VP_PREFIX, DIDDocument
from .storage import Store, create_store
from .wallet import Wallet

logger = logging.getLogger(__name__)


class DIDService:
    """
    Main service class for DID Wallet operations

    Provides a unified interface for:
    - DID management
    - Credential issuance
    - Presentation building
    - Presentation verification
    """

    def __init__(self, settings: Optional[WalletSettings] = None, store: Optional[Store] = None):
        """
        Initialize DID Service

        Args:
            settings: configuration, defaults to the environment-loaded settings
            store: storage backend, defaults to the one named in settings
        """
        self.settings = settings or default_settings
        self.store = store or create_store(self.settings.STORE_BACKEND, self.settings.STORE_PATH)

        self.key_manager = KeyManager(self.store)
        self.crypto = CryptoProvider(store=self.store)
        self.did_manager = DIDManager(
            self.store,
            self.key_manager,
            self.crypto,
            key_type=self.settings.KEY_TYPE
        )

        self.issuer = CredentialIssuer(self.store, self.key_manager, self.crypto, self.did_manager)
        self.wallet = Wallet(self.store, self.crypto, self.key_manager, holder_did=self.settings.HOLDER_DID)
        self.verifier = PresentationVerifier(self.crypto, status_checker=StoreStatusChecker(self.store))

        logger.info("DID service ready (store=%r, method=%s)", self.store, self.settings.DID_METHOD)

    # ==================== HOLDER ====================

    def create_holder(self, options: Optional[Dict[str, Any]] = None) -> DIDDocument:
        """
        Mint a DID and make it the wallet's holder

        Returns:
            The holder's DID Document
        """
        doc = self.did_manager.generate_identifier(self.settings.DID_METHOD, options)
        self.wallet.holder_did = doc.id
        logger.info("Wallet holder set to %s", doc.id)
        return doc

    # ==================== STATISTICS ====================

    def get_statistics(self) -> Dict[str, Any]:
        """Count stored entities per key prefix"""
        return {
            "holder": self.wallet.holder_did,
            "dids": len(self.store.list_keys(DID_PREFIX)),
            "credentials": len(self.store.list_keys(VC_PREFIX)),
            "presentations": len(self.store.list_keys(VP_PREFIX)),
            "privateKeys": len(self.store.list_keys(PRIVATE_KEY_PREFIX)),
            "revocations": len(self.store.list_keys(STATUS_PREFIX))
        }
