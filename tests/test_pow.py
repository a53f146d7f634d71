import pytest

from wapfyi.pow import has_trailing_zeros, simple_hash, to_hex, verify_proof_of_work

CHALLENGE = (
    "eZwqr4RTaVbQDkrm9R3wAL3PbTZN41Zpe7NfWrig7m1YyCpcWYnVwn0fcihRfTp7KEoQgDMf"
    "pUECEoLOuoCZMA6lt06BEIhWOFHOTF89Dmf1PMrQFUzngkecoocMNN4Xpx8SOxHS8JPTyfdm"
    "v3VA6zhVDQ1fwwVuR5YmWHOOAsrLazA5YExA4B2yBAIsvGtxWWZ9vmp6"
)


@pytest.mark.parametrize(
    "text, expected",
    [("", 0), ("hello", 99162322), ("world", 113318802), ("a", 97)],
)
def test_simple_hash(text, expected):
    assert simple_hash(text) == expected


def test_simple_hash_stays_in_32_bits():
    for text in ["test123", "x" * 500, CHALLENGE, CHALLENGE + "6567"]:
        value = simple_hash(text)
        assert 0 < value < 2**32


def test_simple_hash_of_known_solution_ends_in_zeros():
    assert to_hex(simple_hash(CHALLENGE + "6567")).endswith("00")
    assert has_trailing_zeros(simple_hash(CHALLENGE + "6567"), 2) is True


@pytest.mark.parametrize(
    "num, expected",
    [
        (0, "00000000"),
        (15, "0000000f"),
        (255, "000000ff"),
        (4096, "00001000"),
        (99162322, "05e918d2"),
    ],
)
def test_to_hex(num, expected):
    assert to_hex(num) == expected


@pytest.mark.parametrize(
    "hash_num, zeros, expected",
    [
        (0x12345000, 3, True),
        (0x12345000, 4, False),
        (0x12340000, 4, True),
        (0x12340000, 5, False),
        (0x00000000, 8, True),
        (0x12345678, 1, False),
    ],
)
def test_has_trailing_zeros(hash_num, zeros, expected):
    assert has_trailing_zeros(hash_num, zeros) is expected


def test_verify_proof_of_work_valid_solution():
    assert verify_proof_of_work(CHALLENGE, 6567, 2) is True


def test_verify_proof_of_work_invalid_solution():
    assert verify_proof_of_work(CHALLENGE, 6567 + 1, 2) is False


def test_non_positive_difficulty_uses_default():
    for solution in range(50):
        assert verify_proof_of_work(CHALLENGE, solution, 0) == verify_proof_of_work(
            CHALLENGE, solution, 4
        )