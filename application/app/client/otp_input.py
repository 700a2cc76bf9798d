"""Box-per-digit OTP entry model (one character per box, paste fills forward)."""
import re
from typing import List

OTP_LENGTH = 6


class OTPInput:

    def __init__(self, length: int = OTP_LENGTH):
        self.length = length
        self.digits: List[str] = [''] * length
        self.focused_index = 0

    @property
    def value(self) -> str:
        return ''.join(self.digits)

    @property
    def is_complete(self) -> bool:
        return all(self.digits)

    def focus(self, index: int) -> None:
        self.focused_index = max(0, min(index, self.length - 1))

    def change_text(self, index: int, text: str) -> None:
        if len(text) > 1:
            # paste: spread the digits from this box onwards
            digits = re.sub(r'\D', '', text)[:self.length]
            for offset, digit in enumerate(digits):
                if index + offset < self.length:
                    self.digits[index + offset] = digit
            self.focus(index + len(digits))
            return

        digit = re.sub(r'\D', '', text)
        self.digits[index] = digit
        if digit and index < self.length - 1:
            self.focus(index + 1)

    def backspace(self, index: int) -> None:
        """Backspace on an empty box moves focus back one box."""
        if not self.digits[index] and index > 0:
            self.focus(index - 1)
        else:
            self.digits[index] = ''

    def clear(self) -> None:
        self.digits = [''] * self.length
        self.focused_index = 0
