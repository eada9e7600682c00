"""
Selective disclosure with salted claim digests
==============================================

The issuer never signs claim values directly. Each claim except the subject
id gets a random salt, and the signature covers the sorted list of

    base64url(SHA-256(canonical([salt, name, value])))

A holder can then drop claims (and their salts) from a copy of the
credential without invalidating the issuer's signature; a verifier
recomputes the digest of every claim still present and requires it to be
one of the signed digests.
"""

import hashlib
import secrets
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .canonical import b64url_encode, canonicalize
from .models import SUBJECT_ID_KEY, VerifiableCredential

SALT_BYTES = 16


def generate_salt() -> str:
    return b64url_encode(secrets.token_bytes(SALT_BYTES))


def claim_digest(salt: str, name: str, value: Any) -> str:
    return b64url_encode(hashlib.sha256(canonicalize([salt, name, value])).digest())


def seal_claims(credential_subject: Dict[str, Any]) -> Tuple[Dict[str, str], List[str]]:
    """
    Salt every claim of a subject

    Returns:
        (claim name -> salt, sorted digest list)
    """
    salts = {}
    digests = []
    for name, value in credential_subject.items():
        if name == SUBJECT_ID_KEY:
            continue
        salt = generate_salt()
        salts[name] = salt
        digests.append(claim_digest(salt, name, value))
    return salts, sorted(digests)


def signing_payload(vc: VerifiableCredential, digests: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    The view of a credential the issuer signs

    Claim values and salts are replaced by the digest list; everything else
    in the credential is signed as-is.
    """
    if digests is None:
        digests = vc.proof.claim_digests if vc.proof and vc.proof.claim_digests else []

    payload = vc.to_dict()
    payload.pop("proof", None)
    payload.pop("disclosures", None)
    payload["credentialSubject"] = {SUBJECT_ID_KEY: vc.subject_id}
    payload["claimDigests"] = sorted(digests)
    return payload


def check_disclosures(vc: VerifiableCredential) -> bool:
    """Every disclosed claim must hash to one of the signed digests"""
    signed = set(vc.proof.claim_digests or []) if vc.proof else set()

    for name, value in vc.credential_subject.items():
        if name == SUBJECT_ID_KEY:
            continue
        salt = vc.disclosures.get(name)
        if salt is None:
            return False
        if claim_digest(salt, name, value) not in signed:
            return False
    return True


def redact(vc: VerifiableCredential, reveal: Optional[Iterable[str]] = None) -> VerifiableCredential:
    """
    Copy of `vc` keeping only the claims named in `reveal`

    The subject id is always kept. `reveal=None` keeps every claim.
    The original credential is left untouched.
    """
    disclosed = vc.copy()
    if reveal is None:
        return disclosed

    keep = set(reveal)
    keep.add(SUBJECT_ID_KEY)

    disclosed.credential_subject = {
        name: value for name, value in disclosed.credential_subject.items() if name in keep
    }
    disclosed.disclosures = {
        name: salt for name, salt in disclosed.disclosures.items() if name in keep
    }
    return disclosed
