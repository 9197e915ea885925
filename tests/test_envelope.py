from cryptography.fernet import Fernet

from jobboard.service.envelope import EnvelopeCodec


def test_round_trip_restores_plaintext():
    codec = EnvelopeCodec("envelope-key")
    assert codec.decrypt(codec.encrypt("secret-value")) == "secret-value"


def test_encryption_is_randomized_per_call():
    codec = EnvelopeCodec("envelope-key")
    first = codec.encrypt("same")
    second = codec.encrypt("same")
    assert first != second
    assert codec.decrypt(first) == codec.decrypt(second) == "same"


def test_same_key_material_opens_across_instances():
    ciphertext = EnvelopeCodec("shared").encrypt("payload")
    assert EnvelopeCodec("shared").decrypt(ciphertext) == "payload"


def test_garbage_and_foreign_ciphertexts_decrypt_to_none():
    codec = EnvelopeCodec("envelope-key")
    foreign = EnvelopeCodec("other-key").encrypt("payload")
    raw_fernet = Fernet(Fernet.generate_key()).encrypt(b"payload").decode()

    assert codec.decrypt("not-a-token") is None
    assert codec.decrypt(foreign) is None
    assert codec.decrypt(raw_fernet) is None


def test_corrupted_ciphertext_decrypts_to_none():
    codec = EnvelopeCodec("envelope-key")
    ciphertext = codec.encrypt("payload")
    flipped = ciphertext[:-5] + ("A" if ciphertext[-5] != "A" else "B") + ciphertext[-4:]
    assert codec.decrypt(flipped) is None


def test_empty_and_non_string_inputs_decrypt_to_none():
    codec = EnvelopeCodec("envelope-key")
    assert codec.decrypt("") is None
    assert codec.decrypt(None) is None
    assert codec.decrypt(12345) is None
