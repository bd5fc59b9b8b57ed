"""Aave V3 contract access."""
from .client import AaveClient, ReserveToken, TxGas, UserReserveData, decode_event

__all__ = ["AaveClient", "ReserveToken", "TxGas", "UserReserveData", "decode_event"]
