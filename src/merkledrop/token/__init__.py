"""Token: the Minting capability consumed by the claim processor."""

from merkledrop.token.mintable import MintableToken, TokenStorage

__all__ = ["MintableToken", "TokenStorage"]
