import unittest

from aura.core.cpf import is_valid_cpf, normalize_cpf


class TestCPFValidation(unittest.TestCase):

    VALID = "52998224725"

    def test_valid_raw_and_formatted(self):
        self.assertTrue(is_valid_cpf(self.VALID))
        self.assertTrue(is_valid_cpf("529.982.247-25"))
        self.assertTrue(is_valid_cpf("111.444.777-35"))

    def test_second_check_digit_zero_branch(self):
        # Remainder below 2 yields a 0 check digit
        self.assertTrue(is_valid_cpf("39053344705"))

    def test_repeated_digits_are_invalid(self):
        for digit in "0123456789":
            with self.subTest(digit=digit):
                self.assertFalse(is_valid_cpf(digit * 11))

    def test_single_digit_mutation_invalidates(self):
        for position in range(9):
            for replacement in "0123456789":
                if replacement == self.VALID[position]:
                    continue
                mutated = self.VALID[:position] + replacement + self.VALID[position + 1:]
                with self.subTest(cpf=mutated):
                    self.assertFalse(is_valid_cpf(mutated))

    def test_wrong_check_digits(self):
        self.assertFalse(is_valid_cpf("52998224724"))
        self.assertFalse(is_valid_cpf("52998224735"))

    def test_wrong_length(self):
        self.assertFalse(is_valid_cpf(""))
        self.assertFalse(is_valid_cpf("5299822472"))
        self.assertFalse(is_valid_cpf("529982247250"))

    def test_non_string_input_never_raises(self):
        for value in (None, 52998224725, ["52998224725"], b"52998224725"):
            with self.subTest(value=value):
                self.assertFalse(is_valid_cpf(value))

    def test_normalize_strips_punctuation(self):
        self.assertEqual(normalize_cpf("529.982.247-25"), self.VALID)


if __name__ == "__main__":
    unittest.main()
