"""
Key handling, signatures and address derivation for ledger principals.
"""
from Crypto.Hash import keccak
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


def generate_hash(data: bytes) -> bytes:
    """Keccak-256 digest."""
    return keccak.new(digest_bits=256, data=data).digest()


def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generates an ECDSA private/public key pair (SECP256R1)."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Public key as a PEM string."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')


def deserialize_public_key(pem_data: str) -> ec.EllipticCurvePublicKey:
    return serialization.load_pem_public_key(pem_data.encode('utf-8'))


def serialize_private_key(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """Unencrypted PKCS8 PEM, for local tooling only."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def load_private_key(pem_data: bytes) -> ec.EllipticCurvePrivateKey:
    return serialization.load_pem_private_key(pem_data, password=None)


def public_key_to_address(public_key_pem: str) -> bytes:
    """
    Principal address of a public key: the last 20 bytes of the keccak-256
    hash of the uncompressed curve point (without the 0x04 prefix).
    """
    public_key = deserialize_public_key(public_key_pem)
    point = public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint
    )
    return generate_hash(point[1:])[-20:]


def sign(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    """Signs byte data using ECDSA with SHA256."""
    return private_key.sign(data, ec.ECDSA(hashes.SHA256()))


def verify_signature(public_key_pem: str, signature: bytes, data: bytes) -> bool:
    """Verifies an ECDSA/SHA256 signature."""
    try:
        public_key = deserialize_public_key(public_key_pem)
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        return True
    except (InvalidSignature, ValueError):
        return False
