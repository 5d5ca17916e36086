# src/Warden/crypto.py
import nacl.encoding
import nacl.exceptions
import nacl.signing


def verify_ed25519(public_key_hex: str, timestamp: str, body: bytes, signature_hex: str) -> bool:
    """Check a Discord interaction signature over ``timestamp + body``."""
    if not public_key_hex or not signature_hex:
        return False
    try:
        key = nacl.signing.VerifyKey(public_key_hex, encoder=nacl.encoding.HexEncoder)
        key.verify(timestamp.encode() + body, bytes.fromhex(signature_hex))
    except (nacl.exceptions.BadSignatureError, nacl.exceptions.CryptoError, ValueError):
        return False
    return True
