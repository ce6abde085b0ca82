class NotFoundError(Exception): ...
class BusinessRuleError(Exception): ...
class ConflictError(Exception): ...


class InsufficientPoints(BusinessRuleError):
    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient points: balance {balance}, required {required}")


class AffiliateCodeConflict(ConflictError): ...
