"""
Presentation Verifier Tests
===========================

Pipeline order, short-circuiting and per-credential failures
"""

from datetime import timedelta

import pytest

from did_wallet.credential_issuer import CredentialIssuer
from did_wallet.credential_verifier import (
    MinimumCredentialCount,
    PresentationVerifier,
    RequiredClaims,
    RequiredCredentialTypes,
    StoreStatusChecker,
    TrustedIssuers,
    VerificationStage,
    VerificationStatus,
)
from did_wallet.crypto import SECP256K1_2019, CryptoProvider
from did_wallet.did_manager import DIDManager
from did_wallet.errors import (
    ExpiredCredentialError,
    InvalidSignatureError,
    MalformedCredentialError,
    MalformedPresentationError,
    PolicyError,
    RevokedCredentialError,
    StatusCheckError,
    StorageError,
)
from did_wallet.key_manager import KeyManager
from did_wallet.models import CredentialRequest, CredentialStatus, VerifiableCredential
from did_wallet.storage import MemoryStore
from did_wallet.wallet import Wallet


class UnavailableStatusStore(MemoryStore):
    """Status backend that is offline for every read"""

    def load(self, key):
        raise StorageError("status backend offline", operation="load", entity_id=key)


class TestPresentationVerifier:
    """Test the verification pipeline end to end"""

    def setup_method(self):
        self.store = MemoryStore()
        self.key_manager = KeyManager(self.store)
        self.crypto = CryptoProvider(store=self.store)
        self.did_manager = DIDManager(self.store, self.key_manager, self.crypto)
        self.issuer = CredentialIssuer(self.store, self.key_manager, self.crypto, self.did_manager)

        self.issuer_did = self.did_manager.generate_identifier(options={"id": "issuer"}).id
        self.holder_did = self.did_manager.generate_identifier(options={"id": "holder"}).id
        self.wallet = Wallet(self.store, self.crypto, self.key_manager, holder_did=self.holder_did)
        self.verifier = PresentationVerifier(self.crypto, status_checker=StoreStatusChecker(self.store))
        self._nonce = 0

    def issue(self, credential_type="KYCCredential", validity_days=30, issuer_did=None, revocable=False):
        return self.issuer.issue_credential(CredentialRequest(
            issuer_did=issuer_did or self.issuer_did,
            subject_did=self.holder_did,
            credential_type=[credential_type],
            claims={"name": "Alice", "age": 30},
            validity_days=validity_days,
            revocable=revocable
        ))

    def present(self, *credentials, reveal=None):
        self._nonce += 1
        return self.wallet.build_presentation(
            [vc.id for vc in credentials],
            reveal,
            nonce=f"nonce-{self._nonce}"
        )

    def tamper(self, vc: VerifiableCredential, **changes) -> VerifiableCredential:
        """Rewrite a stored credential so the holder presents the altered copy"""
        altered = vc.copy()
        for name, value in changes.items():
            setattr(altered, name, value)
        self.store.save(vc.id, altered.to_dict())
        return altered

    def verifier_at(self, moment, **kwargs):
        return PresentationVerifier(self.crypto, clock=lambda: moment, **kwargs)

    # ==================== VALID ====================

    def test_valid_presentation(self):
        vp = self.present(self.issue(), self.issue("EmailCredential"))
        result = self.verifier.verify_presentation(vp, expected_nonce=vp.nonce)

        assert result.is_valid
        assert result.status == VerificationStatus.VALID
        assert all(result.checks.values())
        assert result.to_dict()["isValid"] is True

    def test_valid_with_selective_disclosure(self):
        vc = self.issue()
        vp = self.present(vc, reveal={vc.id: ["age"]})
        self.verifier.verify(vp)

    def test_valid_secp256k1(self):
        """Both issuer and holder may use secp256k1 keys"""
        issuer = self.did_manager.generate_identifier(options={"keyType": SECP256K1_2019}).id
        holder = self.did_manager.generate_identifier(options={"keyType": SECP256K1_2019}).id
        vc = self.issue(issuer_did=issuer)
        vp = self.wallet.build_presentation([vc.id], nonce="secp", holder_did=holder)
        assert self.verifier.verify_presentation(vp).is_valid

    # ==================== STAGE 1 ====================

    def test_missing_proof(self):
        vp = self.present(self.issue())
        vp.proof = None
        result = self.verifier.verify_presentation(vp)

        assert not result.is_valid
        assert result.status == VerificationStatus.MALFORMED
        assert result.stage == VerificationStage.STRUCTURE.value
        assert not any(result.checks.values())

    def test_no_credentials(self):
        vp = self.present(self.issue())
        vp.verifiable_credential = []
        with pytest.raises(MalformedPresentationError):
            self.verifier.verify(vp)

    def test_nonce_mismatch(self):
        vp = self.present(self.issue())
        with pytest.raises(MalformedPresentationError) as exc:
            self.verifier.verify(vp, expected_nonce="another-challenge")
        assert exc.value.stage == "structure"

    # ==================== STAGE 2 ====================

    def test_tampered_presentation(self):
        vp = self.present(self.issue())
        vp.nonce = "replayed"
        result = self.verifier.verify_presentation(vp)

        assert result.status == VerificationStatus.INVALID_SIGNATURE
        assert result.stage == VerificationStage.HOLDER_AUTHENTICATION.value
        assert result.checks["structure"] is True
        assert result.checks["holder_authentication"] is False

    def test_holder_swapped(self):
        """The signing key must belong to the declared holder"""
        vp = self.present(self.issue())
        vp.holder = self.issuer_did
        with pytest.raises(InvalidSignatureError) as exc:
            self.verifier.verify(vp)
        assert exc.value.stage == "holder_authentication"

    def test_wrong_proof_purpose(self):
        vp = self.present(self.issue())
        vp.proof.proof_purpose = "assertionMethod"
        with pytest.raises(InvalidSignatureError):
            self.verifier.verify(vp)

    def test_unresolvable_holder(self):
        vp = self.present(self.issue())
        vp.holder = "did:wallet:ghost"
        vp.proof.verification_method = "did:wallet:ghost#key-1"
        with pytest.raises(InvalidSignatureError) as exc:
            self.verifier.verify(vp)
        assert exc.value.stage == "holder_authentication"

    def test_short_circuits_before_credentials(self):
        """A holder failure is reported even when a credential is also bad"""
        vc = self.issue(validity_days=1)
        vp = self.present(vc)
        vp.nonce = "replayed"
        verifier = self.verifier_at(vc.expiration_date + timedelta(days=5))

        result = verifier.verify_presentation(vp)
        assert result.stage == "holder_authentication"
        assert result.credential_index is None
        assert result.checks["credentials"] is False

    # ==================== STAGE 3 ====================

    def test_tampered_claim(self):
        good = self.issue()
        bad = self.issue("EmailCredential")
        self.tamper(bad, credential_subject=dict(bad.credential_subject, age=18))
        vp = self.present(good, bad)

        result = self.verifier.verify_presentation(vp)
        assert result.status == VerificationStatus.INVALID_SIGNATURE
        assert result.stage == VerificationStage.CREDENTIALS.value
        assert result.credential_index == 1
        assert result.checks["holder_authentication"] is True
        assert "VC index 1" in result.errors[0]

    def test_first_failing_index_reported(self):
        first = self.issue()
        second = self.issue()
        self.tamper(first, type=["VerifiableCredential", "Forged"])
        self.tamper(second, type=["VerifiableCredential", "Forged"])
        vp = self.present(first, second)

        with pytest.raises(InvalidSignatureError) as exc:
            self.verifier.verify(vp)
        assert exc.value.credential_index == 0

    def test_forged_issuer(self):
        """A VC claiming an issuer whose key did not sign it is rejected"""
        other = self.did_manager.generate_identifier().id
        vc = self.issue(issuer_did=other)
        self.tamper(vc, issuer=self.issuer_did)
        vp = self.present(vc)

        with pytest.raises(InvalidSignatureError) as exc:
            self.verifier.verify(vp)
        assert exc.value.credential_index == 0

    def test_missing_credential_proof(self):
        vc = self.issue()
        self.tamper(vc, proof=None)
        vp = self.present(vc)

        result = self.verifier.verify_presentation(vp)
        assert result.status == VerificationStatus.MALFORMED
        assert result.credential_index == 0
        assert isinstance(result.error, MalformedCredentialError)

    def test_expiration_boundary(self):
        """Valid at the expiration instant, expired one second later"""
        vc = self.issue(validity_days=1)
        vp = self.present(vc)

        assert self.verifier_at(vc.expiration_date).verify_presentation(vp).is_valid

        result = self.verifier_at(vc.expiration_date + timedelta(seconds=1)).verify_presentation(vp)
        assert result.status == VerificationStatus.EXPIRED
        assert result.credential_index == 0

    def test_expired_at_index(self):
        fresh = self.issue(validity_days=0)
        short = self.issue(validity_days=1)
        vp = self.present(fresh, short)

        with pytest.raises(ExpiredCredentialError) as exc:
            self.verifier_at(short.expiration_date + timedelta(days=1)).verify(vp)
        assert exc.value.credential_index == 1

    def test_revoked_credential(self):
        kept = self.issue(revocable=True)
        revoked = self.issue(revocable=True)
        vp = self.present(kept, revoked)
        assert self.verifier.verify_presentation(vp).is_valid

        self.issuer.revoke_credential(revoked.id, reason="Compromised")
        with pytest.raises(RevokedCredentialError) as exc:
            self.verifier.verify(vp)
        assert exc.value.credential_index == 1
        assert "Compromised" in str(exc.value)

    def test_status_lookup_failure(self):
        """A status backend failure fails the credential at its index"""
        kept = self.issue()
        checked = self.issue(revocable=True)
        vp = self.present(kept, checked)
        verifier = PresentationVerifier(self.crypto, status_checker=StoreStatusChecker(UnavailableStatusStore()))

        result = verifier.verify_presentation(vp)
        assert not result.is_valid
        assert result.status == VerificationStatus.STATUS_UNAVAILABLE
        assert result.stage == VerificationStage.CREDENTIALS.value
        assert result.credential_index == 1
        assert isinstance(result.error, StatusCheckError)

    def test_unknown_status_type_passes(self):
        """Status references the store cannot resolve are not treated as revoked"""
        vc = self.issue(revocable=True)
        self.issuer.revoke_credential(vc.id)
        vc.credential_status = CredentialStatus(id="https://example.com/status/1", type="StatusList2021Entry")
        assert StoreStatusChecker(self.store).check(vc) is None

    def test_verify_single_credential(self):
        vc = self.issue(validity_days=1)
        assert self.verifier.verify_credential(vc).is_valid

        result = self.verifier_at(vc.expiration_date + timedelta(seconds=1)).verify_credential(vc)
        assert result.status == VerificationStatus.EXPIRED

    # ==================== STAGE 4 ====================

    def test_required_types(self):
        vp = self.present(self.issue("KYCCredential"))
        self.verifier.add_policy(RequiredCredentialTypes(["KYCCredential"]))
        self.verifier.verify(vp)

        self.verifier.add_policy(RequiredCredentialTypes(["EmailCredential"]))
        result = self.verifier.verify_presentation(vp)
        assert result.status == VerificationStatus.POLICY_FAILED
        assert result.stage == "policy"
        assert result.checks["credentials"] is True

    def test_minimum_count(self):
        vp = self.present(self.issue())
        verifier = PresentationVerifier(self.crypto, policies=[MinimumCredentialCount(2)])
        with pytest.raises(PolicyError):
            verifier.verify(vp)

    def test_required_claims_respect_disclosure(self):
        vc = self.issue()
        vp = self.present(vc, reveal={vc.id: ["name"]})

        PresentationVerifier(self.crypto, policies=[RequiredClaims(["name"], "KYCCredential")]).verify(vp)
        with pytest.raises(PolicyError):
            PresentationVerifier(self.crypto, policies=[RequiredClaims(["age"])]).verify(vp)

    def test_trusted_issuers(self):
        vp = self.present(self.issue())
        policy = TrustedIssuers([])
        verifier = PresentationVerifier(self.crypto, policies=[policy])
        with pytest.raises(PolicyError):
            verifier.verify(vp)

        policy.add(self.issuer_did)
        verifier.verify(vp)
