import datetime
import functools
from dataclasses import dataclass
from pathlib import Path

from asn1crypto import keys as asn1_keys
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID
from pyhanko.sign import signers
from pyhanko_certvalidator.registry import SimpleCertificateStore


# ------------------------------------------------------------------
# Self-signed signer identities
#
# Keys are generated once per test session (RSA-2048 generation is
# slow) and wrapped for both cryptography and asn1crypto consumers.
# No chain is built; the attestor does not validate chains.
# ------------------------------------------------------------------

@dataclass(frozen=True)
class FixtureSigner:
    private_key: object
    certificate: asn1_x509.Certificate

    @property
    def public_key(self):
        return self.private_key.public_key()

    def simple_signer(self) -> signers.SimpleSigner:
        key_der = self.private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return signers.SimpleSigner(
            signing_cert=self.certificate,
            signing_key=asn1_keys.PrivateKeyInfo.load(key_der),
            cert_registry=SimpleCertificateStore.from_certs(
                [self.certificate]
            ),
        )

    def write_pem(self, path: Path) -> Path:
        cert = x509.load_der_x509_certificate(self.certificate.dump())
        path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        return path

    def write_der(self, path: Path) -> Path:
        path.write_bytes(self.certificate.dump())
        return path


def _self_signed_certificate(private_key, common_name: str) -> asn1_x509.Certificate:
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Attestor Test Fixtures"),
    ])
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=True,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
            critical=False,
        )
        .sign(private_key, hashes.SHA256())
    )

    return asn1_x509.Certificate.load(
        cert.public_bytes(serialization.Encoding.DER)
    )


@functools.lru_cache(maxsize=None)
def rsa_signer(common_name: str = "Attestor RSA Signer") -> FixtureSigner:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return FixtureSigner(
        private_key=key,
        certificate=_self_signed_certificate(key, common_name),
    )


@functools.lru_cache(maxsize=None)
def ecdsa_signer(common_name: str = "Attestor ECDSA Signer") -> FixtureSigner:
    key = ec.generate_private_key(ec.SECP256R1())
    return FixtureSigner(
        private_key=key,
        certificate=_self_signed_certificate(key, common_name),
    )


@functools.lru_cache(maxsize=None)
def p384_signer() -> FixtureSigner:
    """Signer on an unsupported curve."""
    key = ec.generate_private_key(ec.SECP384R1())
    return FixtureSigner(
        private_key=key,
        certificate=_self_signed_certificate(key, "Attestor P-384 Signer"),
    )


@functools.lru_cache(maxsize=None)
def rsa3072_signer() -> FixtureSigner:
    """Signer whose modulus exceeds the fixed 256-byte width."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=3072)
    return FixtureSigner(
        private_key=key,
        certificate=_self_signed_certificate(key, "Attestor RSA-3072 Signer"),
    )
