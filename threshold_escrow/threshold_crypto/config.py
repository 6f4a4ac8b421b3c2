"""
WARNING: DRAFT - requires cryptographic review before production use.

Cryptographic configuration for the threshold escrow toolkit.

All sizes are in bytes unless the name says otherwise. Changing any value
in the ECIES or GF(2^8) sections breaks compatibility with previously
produced ciphertexts and shares.
"""

# ============================================================================
# CURVE SELECTION
# ============================================================================

# ECIES runs on secp256k1 so that existing wallet keys can receive escrow
# shares. Threshold signatures run on the BLS12-381 pairing-friendly pair.
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
BLS12_381_ORDER = 0x73EDA753299D7D483339D80809A1D80553BDA402FFFE5BFEFFFFFFFF00000001

# ============================================================================
# ECIES PARAMETERS
# ============================================================================

# Increment for breaking changes. Decryption accepts every version up to and
# including this one; version 0 is the legacy format without a version field.
ECIES_VERSION = 1

PRIVATE_KEY_BYTES = 32
PUBLIC_KEY_BYTES = 65  # SEC1 uncompressed (0x04 || X || Y)
COMPRESSED_PUBLIC_KEY_BYTES = 33
SYMMETRIC_KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16

# Fixed, non-zero HKDF salt (RFC 5869 section 3.1) plus a purpose string.
ECIES_HKDF_SALT = b"natlangchain-ecies-v1-salt"
ECIES_HKDF_INFO = b"ecies-encryption"

# Shared-payload ciphertexts in multi-recipient mode carry no ephemeral key.
MULTI_RECIPIENT_PLACEHOLDER_KEY = b"\x00" * PUBLIC_KEY_BYTES

# ============================================================================
# AEAD / PROVIDER SELECTION
# ============================================================================

AEAD_AES_256_GCM = "aes-256-gcm"
AEAD_CHACHA20_POLY1305 = "chacha20-poly1305"
SUPPORTED_AEADS = (AEAD_AES_256_GCM, AEAD_CHACHA20_POLY1305)
DEFAULT_AEAD = AEAD_AES_256_GCM

# ============================================================================
# GF(2^8) PARAMETERS (SHAMIR)
# ============================================================================

# AES reduction polynomial x^8 + x^4 + x^3 + x + 1. Under this polynomial the
# element 0x02 only has order 51; 0x03 generates the full multiplicative group.
GF256_POLYNOMIAL = 0x11B
GF256_GENERATOR = 0x03
GF256_MULTIPLICATIVE_ORDER = 255

SHAMIR_MIN_THRESHOLD = 2
SHAMIR_MAX_SHARES = 255

# ============================================================================
# THRESHOLD BLS PARAMETERS
# ============================================================================

BLS_SCALAR_BYTES = 32
BLS_G1_BYTES = 48
BLS_G2_BYTES = 96
BLS_FIELD_ELEMENT_BYTES = 48

WARRANT_DOMAIN_SEPARATOR = b"COMPLIANCE_REVEAL"

# encrypt_viewing_key output: iv || ciphertext || tag
VIEWING_KEY_ENVELOPE_MIN_BYTES = NONCE_BYTES + TAG_BYTES

# ============================================================================
# SERIALIZATION
# ============================================================================

MAX_CIPHERTEXT_CBOR_BYTES = 64 * 1024


# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert ECIES_VERSION >= 1, "ECIES version must be positive"
    assert NONCE_BYTES == 12, "AEAD nonce must be 96 bits"
    assert TAG_BYTES == 16, "AEAD tag must be 128 bits"
    assert SYMMETRIC_KEY_BYTES == 32, "Symmetric keys must be 256 bits"
    assert ECIES_HKDF_SALT, "HKDF salt must be non-empty"
    assert DEFAULT_AEAD in SUPPORTED_AEADS, "Invalid default AEAD"
    assert GF256_GENERATOR not in (0, 1), "Invalid GF(2^8) generator"
    assert 2 <= SHAMIR_MIN_THRESHOLD <= SHAMIR_MAX_SHARES <= 255
    assert BLS12_381_ORDER.bit_length() == 255, "Unexpected BLS12-381 order"
    assert SECP256K1_ORDER.bit_length() == 256, "Unexpected secp256k1 order"
    return True


# Auto-validate on import
validate_config()
