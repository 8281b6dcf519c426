"""
Name derivation tests.
"""

import unittest

from ipname import InvalidNameError, KeyType, Name, PublicKey, generate_signer
from ipname.name import base36_decode, base36_encode


class TestBase36(unittest.TestCase):

    def test_known_values(self):
        self.assertEqual(base36_encode(b"\x01\x00"), "74")
        self.assertEqual(base36_decode("74"), b"\x01\x00")

    def test_leading_zero_bytes_preserved(self):
        data = b"\x00\x00\x01\x72"
        self.assertEqual(base36_decode(base36_encode(data)), data)

    def test_invalid_character(self):
        with self.assertRaises(InvalidNameError):
            base36_decode("abc!")


class TestName(unittest.TestCase):

    def test_ed25519_name_prefix(self):
        name = Name.from_signer(generate_signer())
        self.assertTrue(str(name).startswith("k51qzi5uqu5d"))

    def test_cid_layout(self):
        public_key = generate_signer().public_key()
        name = Name.from_public_key(public_key)
        self.assertEqual(name.cid, b"\x01\x72\x00\x24" + public_key.marshal())

    def test_parse_round_trip(self):
        for key_type in (KeyType.ED25519, KeyType.SECP256K1):
            with self.subTest(key_type=key_type):
                signer = generate_signer(key_type)
                name = Name.from_signer(signer)

                self.assertEqual(Name.parse(str(name)), name)
                self.assertEqual(Name.parse("/ipns/" + str(name)), name)
                self.assertEqual(Name.parse(str(name)).public_key(), signer.public_key())

    def test_uppercase_multibase(self):
        name = Name.from_signer(generate_signer())
        upper = "K" + str(name)[1:].upper()
        self.assertEqual(Name.parse(upper), name)
        self.assertEqual(Name.parse("/ipns/" + upper), name)

    def test_mixed_case_rejected(self):
        body = str(Name.from_signer(generate_signer()))[1:]
        mixed = body[:10] + body[10:].upper()
        for text in ("k" + mixed, "K" + mixed, "k" + body.upper(), "K" + body):
            with self.subTest(text=text):
                with self.assertRaises(InvalidNameError):
                    Name.parse(text)

    def test_marshalled_bytes_accepted(self):
        public_key = generate_signer().public_key()
        self.assertEqual(Name.from_public_key(public_key.marshal()), Name.from_public_key(public_key))

    def test_matches(self):
        signer, other = generate_signer(), generate_signer()
        name = Name.from_signer(signer)
        self.assertTrue(name.matches(signer.public_key()))
        self.assertFalse(name.matches(other.public_key()))

    def test_long_keys_are_hashed(self):
        long_key = b"\x08\x00\x12\x40" + b"\x01" * 64
        name = Name.from_public_key(long_key)

        self.assertEqual(name.cid[:4], b"\x01\x72\x12\x20")
        self.assertEqual(Name.parse(str(name)), name)
        with self.assertRaises(InvalidNameError):
            name.public_key()

    def test_invalid_names(self):
        key_bytes = generate_signer().public_key().marshal()
        wrong_codec = "k" + base36_encode(b"\x01\x70\x00\x24" + key_bytes)
        wrong_length = "k" + base36_encode(b"\x01\x72\x00\x30" + key_bytes)
        for text in ("", "k", "bafzbeigai3eoy2ccc7ybwjfz5r3rdxqrinwi4rwytly24tdbh6yk7zslrm",
                     "k51qzi5uqu5d!", wrong_codec, wrong_length):
            with self.subTest(text=text):
                with self.assertRaises(InvalidNameError):
                    Name.parse(text)

    def test_unusable_inlined_key(self):
        name = Name(b"\x01\x72\x00\x05\x08\x01\x12\x01\x00")
        with self.assertRaises(InvalidNameError):
            name.public_key()


if __name__ == "__main__":
    unittest.main()
