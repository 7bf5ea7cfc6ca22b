"""Version bytes of base58check encoded addresses and WIF private keys.

Only the leading version byte is of interest to the portal: it identifies
the chain an address or key belongs to and never changes for a chain.
"""
import base58


def get_version_byte(text: str) -> int:
    """
    Version byte of a base58check encoded address or private key.

    Raises:
        ValueError: If the text is not base58 or its checksum does not match
    """
    payload = base58.b58decode_check(text.strip())
    if not payload:
        raise ValueError("base58check payload is empty")
    return payload[0]
