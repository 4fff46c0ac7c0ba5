from __future__ import annotations

import re
import unittest
from datetime import datetime, timezone

from app.services.reference_numbers import (
    INVOICE_PREFIX,
    TICKET_PREFIX,
    generate_reference_number,
    random_suffix,
)

REFERENCE_RE = re.compile(r'^[A-Z]+-\d+-[A-Z0-9]{4}$')


class ReferenceNumberTests(unittest.TestCase):
    def test_format_is_prefix_millis_suffix(self) -> None:
        moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        reference = generate_reference_number(INVOICE_PREFIX, now=moment)
        self.assertRegex(reference, REFERENCE_RE)
        prefix, millis, suffix = reference.split('-')
        self.assertEqual(prefix, 'INV')
        self.assertEqual(int(millis), int(moment.timestamp() * 1000))
        self.assertEqual(len(suffix), 4)

    def test_prefix_is_normalized(self) -> None:
        self.assertTrue(generate_reference_number(' tkt ').startswith(f'{TICKET_PREFIX}-'))

    def test_suffix_uses_upper_alphanumerics(self) -> None:
        for _ in range(50):
            self.assertRegex(random_suffix(), r'^[A-Z0-9]{4}$')

    def test_numbers_do_not_repeat_in_a_burst(self) -> None:
        references = {generate_reference_number(INVOICE_PREFIX) for _ in range(200)}
        self.assertGreater(len(references), 195)


if __name__ == '__main__':
    unittest.main()
