import re

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_cpf(value: str) -> str:
    """
    Strip punctuation ("123.456.789-09" -> "12345678909").
    """
    return _NON_DIGITS.sub("", value)


def _check_digit(digits: list[int]) -> int:
    # Weights run from len(digits) + 1 down to 2
    weight = len(digits) + 1
    total = sum(d * (weight - i) for i, d in enumerate(digits))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_cpf(value) -> bool:
    """
    Validates a CPF (Cadastro de Pessoas Físicas) number.

    Accepts formatted or raw input. Anything that is not a string, does not
    have 11 digits, repeats a single digit, or fails either check digit
    is rejected. Never raises.
    """
    if not isinstance(value, str):
        return False

    cpf = normalize_cpf(value)
    if len(cpf) != 11:
        return False

    # 000.000.000-00, 111.111.111-11, ... pass the checksum but are not issued
    if len(set(cpf)) == 1:
        return False

    digits = [int(c) for c in cpf]
    if _check_digit(digits[:9]) != digits[9]:
        return False
    if _check_digit(digits[:10]) != digits[10]:
        return False

    return True
