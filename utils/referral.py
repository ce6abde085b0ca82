import random
import re
import string
import time
import uuid


class RefLink:
    def __init__(self):
        pass

    def _random_suffix(self, size: int) -> str:
        return ''.join(random.choices(string.ascii_uppercase + string.digits, k=size))

    def code_base(self, email: str) -> str:
        local = email.split("@")[0]
        return re.sub(r"[^A-Z0-9]", "", local.upper())[:8]

    def affiliate_code_candidate(self, email: str, size: int = 4) -> str:
        return self.code_base(email) + self._random_suffix(size)

    def fallback_affiliate_code(self, user_id: uuid.UUID) -> str:
        return "AFF" + user_id.hex[:8].upper()

    def reward_coupon_code(self) -> str:
        # REW + millisecond timestamp + 6 random chars
        return f"REW{int(time.time() * 1000)}{self._random_suffix(6)}"


def normalize_code(code: str) -> str:
    return code.strip().upper()
