"""
Issuer Tests
============

DID creation, key custody and credential issuance
"""

import logging
from datetime import timedelta

import pytest

from did_wallet.credential_issuer import REVOCATION_ENTRY_TYPE, STATUS_PREFIX, CredentialIssuer
from did_wallet.crypto import SECP256K1_2019, CryptoProvider
from did_wallet.did_manager import DIDManager, DIDMethod
from did_wallet.errors import (
    KeyGenerationError,
    KeyNotFoundError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from did_wallet.key_manager import PRIVATE_KEY_PREFIX, DefaultKeyPolicy, KeyManager
from did_wallet.models import CredentialRequest, DIDDocument, VerifiableCredential
from did_wallet.storage import MemoryStore


class KeylessStore(MemoryStore):
    """Backend that refuses to persist private keys"""

    def save(self, key, value):
        if key.startswith(PRIVATE_KEY_PREFIX):
            raise StorageError("disk full", operation="save", entity_id=key)
        super().save(key, value)


def _components(store):
    key_manager = KeyManager(store)
    crypto = CryptoProvider(store=store)
    did_manager = DIDManager(store, key_manager, crypto)
    return key_manager, crypto, did_manager


class TestKeyManager:
    """Test private key custody"""

    def setup_method(self):
        self.store = MemoryStore()
        self.key_manager = KeyManager(self.store)
        self.crypto = CryptoProvider()

    def test_save_and_load(self):
        private_key, _ = self.crypto.generate_key_pair()
        self.key_manager.save_private_key("did:wallet:a#key-1", private_key, "Ed25519VerificationKey2020")

        record = self.key_manager.load_private_key("did:wallet:a#key-1")
        assert record.private_key == private_key
        assert record.controller == "did:wallet:a"
        assert self.key_manager.list_keys() == ["did:wallet:a#key-1"]

    def test_missing_key(self):
        with pytest.raises(KeyNotFoundError):
            self.key_manager.load_private_key("did:wallet:none#key-1")

    def test_wrong_size_on_save(self):
        with pytest.raises(ValidationError):
            self.key_manager.save_private_key("did:wallet:a#key-1", b"\x01" * 10, SECP256K1_2019)

    def test_corrupt_record_is_key_not_found(self):
        """A stored key of the wrong size is treated as missing"""
        self.store.save(PRIVATE_KEY_PREFIX + "did:wallet:a#key-1", {
            "keyType": "Ed25519VerificationKey2020",
            "privateKey": "AAAA"
        })
        with pytest.raises(KeyNotFoundError):
            self.key_manager.load_private_key("did:wallet:a#key-1")

    def test_key_policy(self):
        """The policy picks which verification method signs for a DID"""
        assert KeyManager(self.store).policy("did:wallet:a") == "did:wallet:a#key-1"
        assert DefaultKeyPolicy(index=2)("did:wallet:a") == "did:wallet:a#key-2"


class TestDIDManager:
    """Test DID creation and resolution"""

    def setup_method(self):
        self.store = MemoryStore()
        self.key_manager, self.crypto, self.did_manager = _components(self.store)

    def test_generate_identifier(self):
        """One key, referenced for authentication and assertion"""
        doc = self.did_manager.generate_identifier(DIDMethod.WALLET)

        assert doc.id.startswith("did:wallet:")
        assert len(doc.id.split(":")[2]) == 32
        assert [vm.id for vm in doc.verification_method] == [doc.id + "#key-1"]
        assert doc.authentication == [doc.id + "#key-1"]
        assert doc.assertion_method == [doc.id + "#key-1"]
        assert self.key_manager.has_key(doc.id + "#key-1")

    def test_custom_id_and_method(self):
        doc = self.did_manager.generate_identifier("example", {"id": "alice"})
        assert doc.id == "did:example:alice"

    def test_secp256k1_identifier(self):
        doc = self.did_manager.generate_identifier(DIDMethod.TELCO, {"keyType": SECP256K1_2019})
        vm = doc.verification_method[0]
        assert vm.type == SECP256K1_2019
        assert vm.blockchain_account_id.startswith("eip155:1:0x")

    def test_duplicate_identifier(self):
        """Existing DID Documents are never overwritten"""
        self.did_manager.generate_identifier("example", {"id": "alice"})
        with pytest.raises(ValidationError):
            self.did_manager.generate_identifier("example", {"id": "alice"})

    def test_unsupported_key_type(self):
        with pytest.raises(KeyGenerationError):
            self.did_manager.generate_identifier(options={"keyType": "RsaVerificationKey2018"})

    def test_resolve(self):
        doc = self.did_manager.generate_identifier()
        resolved = self.did_manager.resolve_identifier(doc.id)
        assert resolved == doc
        assert self.did_manager.resolve_verification_method(doc.id + "#key-1") == doc.verification_method[0]

    def test_resolve_missing(self):
        with pytest.raises(NotFoundError):
            self.did_manager.resolve_identifier("did:wallet:nobody")

    def test_resolve_missing_method(self):
        doc = self.did_manager.generate_identifier()
        with pytest.raises(KeyNotFoundError):
            self.did_manager.resolve_verification_method(doc.id + "#key-9")

    def test_list_identifiers(self):
        """Unreadable entries are skipped"""
        first = self.did_manager.generate_identifier()
        second = self.did_manager.generate_identifier()
        self.store.save("did:wallet:broken", {"no": "id"})

        ids = {doc.id for doc in self.did_manager.list_identifiers()}
        assert ids == {first.id, second.id}

    def test_document_round_trip(self):
        doc = self.did_manager.generate_identifier(options={"keyType": SECP256K1_2019})
        assert DIDDocument.from_dict(doc.to_dict()) == doc

    def test_private_key_write_is_best_effort(self, caplog):
        """A failed key write is logged and the document is still stored"""
        store = KeylessStore()
        _, _, did_manager = _components(store)

        with caplog.at_level(logging.WARNING):
            doc = did_manager.generate_identifier()

        assert store.exists(doc.id)
        assert "Failed to store private key" in caplog.text


class TestCredentialIssuer:
    """Test credential issuance and revocation"""

    def setup_method(self):
        self.store = MemoryStore()
        self.key_manager, self.crypto, self.did_manager = _components(self.store)
        self.issuer = CredentialIssuer(self.store, self.key_manager, self.crypto, self.did_manager)

        self.issuer_did = self.issuer.generate_identifier().id
        self.subject_did = self.issuer.generate_identifier().id

    def _request(self, **kwargs) -> CredentialRequest:
        params = dict(
            issuer_did=self.issuer_did,
            subject_did=self.subject_did,
            credential_type=["KYCCredential"],
            claims={"name": "Alice", "age": 30, "verified": True, "tags": ["a", "b"]},
            validity_days=30
        )
        params.update(kwargs)
        return CredentialRequest(**params)

    def test_issue_credential(self):
        vc = self.issuer.issue_credential(self._request())

        assert vc.id.startswith(f"vc:{self.subject_did}:")
        assert vc.type == ["VerifiableCredential", "KYCCredential"]
        assert vc.issuer == self.issuer_did
        assert vc.credential_subject["id"] == self.subject_did
        assert vc.credential_subject["age"] == 30
        assert vc.issuance_date.microsecond == 0
        assert vc.expiration_date - vc.issuance_date == timedelta(days=30)
        assert vc.proof.proof_purpose == "assertionMethod"
        assert vc.proof.verification_method == self.issuer_did + "#key-1"
        assert self.crypto.verify_credential(vc)

    def test_issued_credential_is_stored(self):
        vc = self.issuer.issue_credential(self._request())
        assert self.issuer.get_credential(vc.id) == vc

    def test_round_trip(self):
        """Claim types survive serialization"""
        vc = self.issuer.issue_credential(self._request())
        restored = VerifiableCredential.from_dict(vc.to_dict())
        assert restored == vc
        assert restored.credential_subject["tags"] == ["a", "b"]
        assert restored.credential_subject["verified"] is True

    def test_no_expiration(self):
        vc = self.issuer.issue_credential(self._request(validity_days=0))
        assert vc.expiration_date is None
        assert "expirationDate" not in vc.to_dict()

    def test_local_id_option(self):
        vc = self.issuer.issue_credential(self._request(options={"id": "kyc-1"}))
        assert vc.id == f"vc:{self.subject_did}:kyc-1"
        with pytest.raises(ValidationError):
            self.issuer.issue_credential(self._request(options={"id": "kyc-1"}))

    def test_subject_id_cannot_be_overridden(self):
        vc = self.issuer.issue_credential(self._request(claims={"id": "did:wallet:mallory", "name": "Alice"}))
        assert vc.credential_subject == {"id": self.subject_did, "name": "Alice"}

    def test_duplicate_types_collapsed(self):
        vc = self.issuer.issue_credential(self._request(credential_type=["VerifiableCredential", "A", "A"]))
        assert vc.type == ["VerifiableCredential", "A"]

    @pytest.mark.parametrize("field, value", [
        ("issuer_did", ""),
        ("subject_did", ""),
        ("validity_days", -1),
    ])
    def test_invalid_request(self, field, value):
        with pytest.raises(ValidationError) as exc:
            self.issuer.issue_credential(self._request(**{field: value}))
        assert exc.value.status_code == 400

    def test_issuer_without_key(self):
        with pytest.raises(KeyNotFoundError):
            self.issuer.issue_credential(self._request(issuer_did="did:wallet:stranger"))

    def test_secp256k1_issuer(self):
        issuer = self.issuer.generate_identifier(DIDMethod.WALLET, {"keyType": SECP256K1_2019})
        vc = self.issuer.issue_credential(self._request(issuer_did=issuer.id))
        assert vc.proof.type == "EcdsaSecp256k1Signature2019"
        assert self.crypto.verify_credential(vc)

    def test_request_from_dict(self):
        request = CredentialRequest.from_dict({
            "issuerDID": self.issuer_did,
            "subjectDID": self.subject_did,
            "credentialType": ["EmailCredential"],
            "claims": {"email": "a@example.com"},
            "validityDays": 1
        })
        vc = self.issuer.issue_credential(request)
        assert vc.credential_subject["email"] == "a@example.com"

    def test_revocation(self):
        vc = self.issuer.issue_credential(self._request(revocable=True))
        assert vc.credential_status.id == STATUS_PREFIX + vc.id
        assert vc.credential_status.type == REVOCATION_ENTRY_TYPE
        assert not self.issuer.is_revoked(vc.id)

        self.issuer.revoke_credential(vc.id, reason="Compromised")
        assert self.issuer.is_revoked(vc.id)

    def test_revoke_non_revocable(self):
        vc = self.issuer.issue_credential(self._request())
        with pytest.raises(ValidationError):
            self.issuer.revoke_credential(vc.id)

    def test_revoke_unknown(self):
        with pytest.raises(NotFoundError):
            self.issuer.revoke_credential("vc:unknown")
