from bittensor_wallet import Keypair

from burn_register.errors import KeyParseError
from burn_register.models import SignedIdentity


def load_keypair(material: str, role: str) -> Keypair:
    """Keypair from a mnemonic, a secret URI (``//Alice``) or a 0x-prefixed hex seed."""
    material = (material or "").strip()
    if not material:
        raise KeyParseError(f"No {role} key material given")
    try:
        if material.startswith("0x"):
            return Keypair.create_from_seed(material)
        return Keypair.create_from_uri(material)
    except Exception as e:
        raise KeyParseError(f"Invalid {role}: {e}") from e


def load_identity(coldkey: str, hotkey: str) -> SignedIdentity:
    return SignedIdentity(coldkey=load_keypair(coldkey, "coldkey"), hotkey=load_keypair(hotkey, "hotkey"))
