import os
import unittest

import base58

from solpay.reference import (
    generate_reference,
    is_valid_solana_address,
    is_valid_transaction_signature,
)


class ReferenceTests(unittest.TestCase):
    def test_reference_decodes_to_pubkey_length(self):
        for _ in range(50):
            reference = generate_reference()
            self.assertEqual(len(base58.b58decode(reference)), 32)
            self.assertTrue(is_valid_solana_address(reference))

    def test_references_are_unique(self):
        references = {generate_reference() for _ in range(200)}
        self.assertEqual(len(references), 200)

    def test_rejects_malformed_addresses(self):
        self.assertFalse(is_valid_solana_address(''))
        self.assertFalse(is_valid_solana_address(None))
        self.assertFalse(is_valid_solana_address('0OIl' * 10))
        self.assertFalse(is_valid_solana_address(base58.b58encode(os.urandom(20)).decode()))
        self.assertTrue(is_valid_solana_address('11111111111111111111111111111111'))

    def test_signature_validation(self):
        signature = base58.b58encode(os.urandom(64)).decode()
        self.assertTrue(is_valid_transaction_signature(signature))
        self.assertFalse(is_valid_transaction_signature(generate_reference()))
        self.assertFalse(is_valid_transaction_signature('not-a-signature'))
