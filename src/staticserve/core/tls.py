"""
=============================================================================
TLS CONTEXT
=============================================================================

Server-side SSLContext for the HTTPS listener.

    Protocols   TLS 1.2 and newer (SSLv3 and TLS 1.0/1.1 are refused)
    Ciphers     ECDHE key exchange with AEAD ciphers only (TLS 1.2);
                TLS 1.3 suites are OpenSSL's defaults, which are all AEAD
    ALPN        http/1.1 (HTTP/2 is not offered)

The context is created once at startup. Failing to load the certificate
or key is fatal: the server must not run a half-configured HTTPS port.

=============================================================================
"""

import ssl


TLS_CIPHERS = ":".join([
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-ECDSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-ECDSA-CHACHA20-POLY1305",
    "ECDHE-RSA-CHACHA20-POLY1305",
])


def create_tls_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """
    Build the HTTPS listener's SSLContext.

    Args:
        cert_file: PEM certificate, optionally followed by its chain.
        key_file: PEM private key for the certificate.

    Raises:
        OSError: If either file cannot be read.
        ssl.SSLError: If the files are not a valid certificate/key pair.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.set_ciphers(TLS_CIPHERS)
    context.set_alpn_protocols(["http/1.1"])
    context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    return context
