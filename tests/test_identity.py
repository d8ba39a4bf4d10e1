import pytest

pytest.importorskip("bittensor_wallet")

from burn_register import identity  # noqa: E402
from burn_register.errors import KeyParseError  # noqa: E402


class StubKeypair:
    @staticmethod
    def create_from_uri(uri):
        if uri.startswith("//"):
            return ("uri", uri)
        raise ValueError("Invalid mnemonic")

    @staticmethod
    def create_from_seed(seed):
        return ("seed", seed)


@pytest.fixture(autouse=True)
def stub_keypair(monkeypatch):
    monkeypatch.setattr(identity, "Keypair", StubKeypair)


def test_uri_and_seed_material():
    ident = identity.load_identity("//Alice", "0x" + "11" * 32)
    assert ident.coldkey == ("uri", "//Alice")
    assert ident.hotkey == ("seed", "0x" + "11" * 32)


@pytest.mark.parametrize("coldkey,hotkey", [("", "//Bob"), ("//Alice", "not a mnemonic")])
def test_bad_material_is_a_key_parse_error(coldkey, hotkey):
    with pytest.raises(KeyParseError):
        identity.load_identity(coldkey, hotkey)
