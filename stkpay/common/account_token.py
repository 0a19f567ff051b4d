"""Business/account correlation carried through the provider's AccountReference.

Daraja echoes `AccountReference` back unchanged but propagates no other
caller context, so the owning business is packed into it as
`<business_id>:<account_reference>`.

Decoding splits on the first delimiter only: `acme:INV:7` is business `acme`,
account `INV:7`. A token without the delimiter, or with an empty side, is kept
whole as the account reference and its business is left unresolved (`None`)
for the caller to recover some other way.
"""

from dataclasses import dataclass


DELIMITER = ":"


@dataclass(frozen=True)
class AccountToken:
    business_id: str | None
    account_reference: str

    @property
    def resolved(self) -> bool:
        return self.business_id is not None

    def encode(self) -> str:
        if not self.business_id or not self.account_reference:
            raise ValueError("business_id and account_reference are both required")
        if DELIMITER in self.business_id:
            raise ValueError(f"business_id must not contain {DELIMITER!r}")
        return f"{self.business_id}{DELIMITER}{self.account_reference}"

    @classmethod
    def decode(cls, token: str) -> "AccountToken":
        head, sep, tail = token.partition(DELIMITER)
        if sep and head and tail:
            return cls(business_id=head, account_reference=tail)
        return cls(business_id=None, account_reference=token)


def encode_account_token(business_id: str, account_reference: str) -> str:
    return AccountToken(business_id, account_reference).encode()


def decode_account_token(token: str) -> AccountToken:
    return AccountToken.decode(token)
