"""TLS context construction."""

import ssl

from easysrv.domain.errors import TLSConfigError

# TLS 1.2 AEAD suites; TLS 1.3 suites are always AEAD and stay enabled.
STRONG_CIPHERS = (
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-ECDSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-RSA-CHACHA20-POLY1305",
    "ECDHE-ECDSA-CHACHA20-POLY1305",
)


def create_tls_context(
    cert_file: str, key_file: str, strong_ciphers: bool = True
) -> ssl.SSLContext:
    """Build a server-side TLS context requiring TLS 1.2 or newer."""
    if not cert_file or not key_file:
        raise TLSConfigError("TLS cert or key file not specified")

    tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    tls_context.minimum_version = ssl.TLSVersion.TLSv1_2
    try:
        tls_context.load_cert_chain(cert_file, key_file)
    except (OSError, ssl.SSLError) as error:
        raise TLSConfigError(f"failed to load TLS certificate: {error}") from error

    if strong_ciphers:
        tls_context.set_ciphers(":".join(STRONG_CIPHERS))
    return tls_context
